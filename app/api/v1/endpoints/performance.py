import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from app.api.deps import ReportSvc, Scope
from app.schemas.insight import AnalysisResponse
from app.schemas.performance import ChartSeries, PerformanceOverview
from app.services.errors import InputInconsistency

log = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=PerformanceOverview,
    summary="Показатели разработчиков по спринтам",
    response_description="Записи производительности, метрики и нормализованная эффективность",
    responses={
        200: {"description": "Показатели успешно рассчитаны"},
        422: {"description": "Несогласованные данные в хранилище"},
        500: {"description": "Ошибка сервера"},
        503: {"description": "Хранилище недоступно"},
    },
)
async def get_performance(scope: Scope, reports: ReportSvc):
    """
    Возвращает записи производительности (спринт × разработчик) для выбранной области,
    метрики по области и нормализованную эффективность активных разработчиков.

    Параметры:
    - project_id: проект (необязательно)
    - sprint_id: фильтр по спринту (необязательно)
    - developer_id: фильтр по разработчику (необязательно)
    """
    try:
        return await reports.get_overview(scope)
    except HTTPException:
        raise
    except InputInconsistency as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except Exception as e:
        log.error(f"Error computing performance overview: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute performance metrics",
        )


@router.get(
    "/series",
    response_model=ChartSeries,
    summary="Ряды данных для графиков",
    responses={
        200: {"description": "Ряды успешно построены"},
        500: {"description": "Ошибка сервера"},
    },
)
async def get_performance_series(scope: Scope, reports: ReportSvc):
    """
    Часы и задачи по спринтам для каждого активного разработчика,
    суммарные часы по спринтам и эффективность по разработчикам.
    """
    try:
        return await reports.get_series(scope)
    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error building chart series: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build chart series",
        )


@router.post(
    "/analysis",
    response_model=AnalysisResponse,
    summary="AI-анализ производительности",
    response_description="Выводы сервиса анализа или резервная сводка",
    responses={
        200: {"description": "Анализ выполнен (success=false, если сервис анализа недоступен)"},
        500: {"description": "Ошибка сервера"},
    },
)
async def analyze_performance(scope: Scope, reports: ReportSvc):
    """
    Отправляет данные активных разработчиков в сервис анализа.
    Недоступность сервиса анализа не является ошибкой: в ответе будет success=false
    и локально сформированная сводка.
    """
    try:
        return await reports.analyze(scope)
    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error analyzing performance: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to analyze performance",
        )


@router.get(
    "/recommendations",
    response_model=list[str],
    summary="Рекомендации по улучшению производительности",
)
async def get_recommendations(
    reports: ReportSvc,
    sprint_id: Optional[int] = Query(default=None, description="Sprint filter"),
):
    return await reports.get_recommendations(sprint_id)
