from typing import Annotated, AsyncGenerator, Optional

import httpx
from fastapi import Depends, Query, Request

from app.config import Settings, settings
from app.schemas.performance import ScopeFilter
from app.services.entity_store import EntityStoreService
from app.services.insight_gateway import HttpInsightClient, InsightClient, InsightGateway
from app.services.report_assembler import ReportAssembler
from app.services.report_service import ReportService
from app.services.yandex_gpt_service import YandexGPTInsightClient


def get_settings() -> Settings:
    return settings


AppSettings = Annotated[Settings, Depends(get_settings)]


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    HTTP-клиент на время одного запроса.
    """
    client = httpx.AsyncClient()
    try:
        yield client
    finally:
        await client.aclose()


HttpClient = Annotated[httpx.AsyncClient, Depends(get_http_client)]


async def get_bearer_token(request: Request) -> Optional[str]:
    """
    Токен из заголовка Authorization, передается дальше в хранилище и сервис анализа.
    """
    header = request.headers.get("authorization")
    if not header or not header.lower().startswith("bearer "):
        return None
    return header[7:].strip() or None


BearerToken = Annotated[Optional[str], Depends(get_bearer_token)]


def get_entity_store(http_client: HttpClient, token: BearerToken, config: AppSettings):
    return EntityStoreService(
        http_client,
        base_url=config.entity_store_url,
        token=token,
        timeout=config.entity_store_timeout,
        max_retries=config.entity_store_max_retries,
        retry_delay=config.entity_store_retry_delay,
    )


EntityStore = Annotated[EntityStoreService, Depends(get_entity_store)]


def get_insight_client(http_client: HttpClient, token: BearerToken, config: AppSettings) -> InsightClient:
    if config.insight_backend == "yandexgpt":
        return YandexGPTInsightClient(config)
    return HttpInsightClient(
        http_client,
        analysis_url=config.insight_api_url,
        recommendations_url=config.insight_recommendations_url,
        token=token,
        timeout=config.insight_timeout,
    )


InsightClientDep = Annotated[InsightClient, Depends(get_insight_client)]


def get_insight_gateway(client: InsightClientDep, config: AppSettings):
    return InsightGateway(client, timeout=config.insight_timeout)


Gateway = Annotated[InsightGateway, Depends(get_insight_gateway)]


def get_report_service(entity_store: EntityStore, gateway: Gateway, config: AppSettings):
    assembler = ReportAssembler(
        gateway,
        title=config.report_title,
        date_format=config.report_date_format,
    )
    return ReportService(entity_store, gateway, assembler)


ReportSvc = Annotated[ReportService, Depends(get_report_service)]


def get_scope(
    project_id: Annotated[Optional[int], Query(description="Project scope")] = None,
    sprint_id: Annotated[Optional[int], Query(description="Sprint filter")] = None,
    developer_id: Annotated[Optional[int], Query(description="Developer filter")] = None,
) -> ScopeFilter:
    return ScopeFilter(project_id=project_id, sprint_id=sprint_id, developer_id=developer_id)


Scope = Annotated[ScopeFilter, Depends(get_scope)]
