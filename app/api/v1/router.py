from fastapi import APIRouter

from app.api.deps import AppSettings
from app.api.v1.endpoints import performance, reports

api_router = APIRouter()

# Подключаем все эндпоинты
api_router.include_router(performance.router, prefix="/performance", tags=["performance"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])


@api_router.get("/health", tags=["health"])
async def health_check(config: AppSettings):
    return {
        "status": "healthy",
        "entity_store": config.entity_store_url,
        "insight_backend": config.insight_backend,
    }
