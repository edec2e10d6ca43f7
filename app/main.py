import logging
from logging.config import dictConfig

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.config import Settings, settings
from app.services.errors import EmptyDatasetError, InputInconsistency, InsightUnavailable

log = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Логи приложения и uvicorn в одном формате"""
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "()": "uvicorn.logging.DefaultFormatter",
                    "fmt": "%(levelprefix)s %(asctime)s %(name)s: %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                    "use_colors": None,
                },
                "access": {
                    "()": "uvicorn.logging.AccessFormatter",
                    "fmt": '%(levelprefix)s %(client_addr)s - "%(request_line)s" %(status_code)s',
                },
            },
            "handlers": {
                "default": {
                    "formatter": "default",
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                },
                "access": {
                    "formatter": "access",
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                "uvicorn": {"handlers": ["default"], "level": "INFO"},
                "uvicorn.error": {"level": "INFO"},
                "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
                "httpx": {"handlers": ["default"], "level": "WARNING", "propagate": False},
                "app": {"handlers": ["default"], "level": level.upper(), "propagate": False},
            },
        }
    )


def _bearer_openapi(app: FastAPI, config: Settings):
    def openapi():
        if app.openapi_schema:
            return app.openapi_schema

        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        schema.setdefault("components", {})["securitySchemes"] = {
            "BearerAuth": {"type": "http", "scheme": "bearer"}
        }
        # Токен пробрасывается в хранилище и сервис анализа; служебным путям он не нужен
        public = {"/", f"{config.api_v1_str}/health"}
        for path, operations in schema["paths"].items():
            if path in public:
                continue
            for operation in operations.values():
                operation.setdefault("security", [{"BearerAuth": []}])

        app.openapi_schema = schema
        return schema

    return openapi


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(EmptyDatasetError)
    async def empty_dataset_handler(request: Request, exc: EmptyDatasetError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(InputInconsistency)
    async def inconsistency_handler(request: Request, exc: InputInconsistency):
        log.warning(f"Inconsistent entity data on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
        )

    @app.exception_handler(InsightUnavailable)
    async def insight_unavailable_handler(request: Request, exc: InsightUnavailable):
        log.error(f"Insight service unavailable on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Insight analysis unavailable"},
        )


def create_app(config: Settings = settings) -> FastAPI:
    configure_logging(config.log_level)

    app = FastAPI(
        title=config.project_name,
        description="Developer performance aggregation and reporting API",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.openapi = _bearer_openapi(app, config)
    _register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Report-Pages", "X-Insights-Available"],
    )
    app.include_router(api_router, prefix=config.api_v1_str)

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": config.project_name,
            "documentation": "/docs",
            "api_version": "v1",
            "insight_backend": config.insight_backend,
        }

    log.info(
        f"{config.project_name} configured: entity store {config.entity_store_url}, "
        f"insight backend {config.insight_backend}"
    )
    return app


app = create_app()
