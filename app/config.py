from typing import List, Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Основные настройки API
    project_name: str = "DevPerf"
    api_v1_str: str = "/api/v1"
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"

    # Хранилище сущностей (задачи, спринты, проекты, пользователи)
    entity_store_url: str = "http://localhost:8081"
    entity_store_timeout: float = 10.0
    entity_store_max_retries: int = 2
    entity_store_retry_delay: float = 1.0

    # Сервис аналитики (нарративные выводы)
    insight_backend: Literal["http", "yandexgpt"] = "http"
    insight_api_url: str = "http://localhost:3000/api/ai-analysis/performance"
    insight_recommendations_url: str = "http://localhost:3000/api/ai-analysis/recommendations"
    insight_timeout: float = 30.0

    yc_folder_id: str | None = None
    yc_api_key: str | None = None
    yc_iam_token: str | None = None
    yc_gpt_model: str = "yandexgpt"
    yc_gpt_version: str = "rc"
    yc_gpt_temperature: float = 0.5
    yc_gpt_max_tokens: int = 1000

    # Отчеты
    report_title: str = "Developer Performance Report"
    report_date_format: str = "%d %B %Y"

    class Config:
        env_file = ".env"


settings = Settings()
