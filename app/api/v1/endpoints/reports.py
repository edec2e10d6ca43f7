import logging

from fastapi import APIRouter, HTTPException, Response, status

from app.api.deps import ReportSvc
from app.schemas.performance import ScopeFilter
from app.services.errors import EmptyDatasetError

log = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/performance/export",
    summary="Экспорт отчета о производительности в PDF",
    response_description="PDF-документ",
    response_class=Response,
    responses={
        200: {"content": {"application/pdf": {}}, "description": "Отчет успешно сгенерирован"},
        404: {"description": "Нет данных для экспорта"},
        500: {"description": "Ошибка сервера"},
        503: {"description": "Хранилище недоступно"},
    },
)
async def export_performance_report(request: ScopeFilter, reports: ReportSvc):
    """
    Генерирует PDF-отчет о производительности разработчиков.

    Отчет содержит сводку, таблицу метрик, таблицы по разработчикам и спринтам,
    рейтинг эффективности и AI-анализ. Если сервис анализа недоступен,
    вместо раздела анализа выводится уведомление, отчет все равно формируется.

    Параметры:
    - request: область отчета (проект, спринт, разработчик)

    Исключения:
    - 404: Если в выбранной области нет данных
    - 500: При внутренних ошибках сервера
    """
    try:
        report = await reports.export(request)
    except EmptyDatasetError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        log.error(f"Error exporting performance report: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error generating report: {str(e)}",
        )

    headers = {
        "Content-Disposition": f'attachment; filename="{report.filename}"',
        "X-Report-Pages": str(report.page_count),
        "X-Insights-Available": str(report.insights_available).lower(),
    }
    if report.warnings:
        headers["X-Report-Warnings"] = str(len(report.warnings))
    return Response(content=report.content, media_type="application/pdf", headers=headers)
