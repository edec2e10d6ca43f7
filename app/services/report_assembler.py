"""
Builds the developer performance report.

The document is composed as an ordered list of sections (header, summary,
metrics table, per-developer table, sprint analysis, efficiency ranking,
insights, footer), paginated greedily and handed to the PDF renderer.
An insight failure only replaces the insight section with a notice; an
empty scope fails with EmptyDatasetError before anything is requested or
drawn.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from app.schemas.entities import Developer, Sprint
from app.schemas.insight import AnalysisResponse
from app.schemas.performance import Metrics, PerformanceRecord, RatioMetric, ScopeFilter
from app.schemas.report import (
    SECTION_ORDER,
    DocumentSection,
    ExportedReport,
    InsightBlock,
    PerformanceExportData,
    ReportDocument,
    ReportSection,
    TableBlock,
    TextBlock,
)
from app.services.aggregation import filter_records, scope_sprints
from app.services.errors import EmptyDatasetError
from app.services.insight_gateway import InsightGateway
from app.services.metrics import (
    compute_metrics,
    developer_efficiency,
    summarize_developers,
    summarize_sprints,
)
from app.services.pdf_renderer import PdfRenderer
from app.services.report_layout import PageGeometry, ReportLayout, ReportLayoutEngine
from app.services.series import total_hours_per_sprint

log = logging.getLogger(__name__)

INSIGHTS_UNAVAILABLE_NOTICE = (
    "AI analysis is currently unavailable. The figures and tables in this report "
    "are complete; the narrative analysis could not be generated."
)


def build_report_filename(scope: ScopeFilter, generated_at: datetime) -> str:
    return (
        f"performance-report-{scope.sprint_label}-{scope.developer_label}-"
        f"{generated_at:%Y-%m-%d}.pdf"
    )


def _pct(value: float) -> str:
    return f"{value:.1f}%"


def _hours(value: float) -> str:
    return f"{value:.1f}h"


def _ratio_cell(metric: RatioMetric, fmt: Callable[[float], str] = _pct) -> str:
    return fmt(metric.value) if metric.has_data else "n/a"


def _period(sprint: Sprint) -> str:
    if not sprint.start_date or not sprint.end_date:
        return "N/A"
    return f"{sprint.start_date:%d %b} - {sprint.end_date:%d %b %Y}"


class _ReportContext:
    """Inputs of a single compose() call."""

    def __init__(
        self,
        data: PerformanceExportData,
        records: List[PerformanceRecord],
        sprints: List[Sprint],
        metrics: Metrics,
        analysis: AnalysisResponse,
        generated_at: datetime,
    ):
        self.data = data
        self.scope = data.scope
        self.records = records
        self.sprints = sprints
        self.metrics = metrics
        self.analysis = analysis
        self.generated_at = generated_at


class ReportAssembler:
    def __init__(
        self,
        gateway: InsightGateway,
        renderer: Optional[PdfRenderer] = None,
        geometry: PageGeometry = PageGeometry(),
        title: str = "Developer Performance Report",
        date_format: str = "%d %B %Y",
    ):
        self.gateway = gateway
        self.renderer = renderer or PdfRenderer()
        self.layout_engine = ReportLayoutEngine(geometry)
        self.title = title
        self.date_format = date_format
        self._builders: Dict[ReportSection, Callable[[_ReportContext], DocumentSection]] = {
            ReportSection.HEADER: self._header,
            ReportSection.SUMMARY: self._summary,
            ReportSection.METRICS_TABLE: self._metrics_table,
            ReportSection.DEVELOPER_TABLE: self._developer_table,
            ReportSection.SPRINT_TABLE: self._sprint_table,
            ReportSection.EFFICIENCY_RANKING: self._efficiency_ranking,
            ReportSection.INSIGHTS: self._insights,
            ReportSection.FOOTER: self._footer,
        }

    # --- sections ---

    def _header(self, ctx: _ReportContext) -> DocumentSection:
        project = ctx.data.snapshot.project_name() or "All projects"
        sprint = "All sprints"
        if ctx.scope.sprint_id is not None:
            sprint = next(
                (s.name for s in ctx.sprints if s.id == ctx.scope.sprint_id),
                f"Sprint {ctx.scope.sprint_id}",
            )
        developer = "All developers"
        if ctx.scope.developer_id is not None:
            developer = next(
                (
                    d.display_name
                    for d in ctx.data.snapshot.developers
                    if d.id == ctx.scope.developer_id
                ),
                f"Developer {ctx.scope.developer_id}",
            )
        return DocumentSection(
            kind=ReportSection.HEADER,
            blocks=[
                TextBlock(text=self.title, font_size=20, bold=True, color=(40, 40, 40), align="C"),
                TextBlock(
                    text=f"Generated on: {ctx.generated_at.strftime(self.date_format)}",
                    color=(100, 100, 100),
                    align="C",
                ),
                TextBlock(
                    text=f"Project: {project} | Sprint: {sprint} | Developer: {developer}",
                    font_size=9,
                    color=(100, 100, 100),
                    align="C",
                ),
            ],
        )

    def _summary(self, ctx: _ReportContext) -> DocumentSection:
        m = ctx.metrics
        lines = [
            f"- Active developers: {m.active_developers} of {m.total_developers}",
            f"- Sprints with activity: {m.active_sprints}",
            f"- Tasks completed: {m.total_tasks_completed} of {m.total_tasks_assigned} "
            f"({_ratio_cell(m.completion_rate)})",
            f"- Tasks with logged hours: {m.tasks_with_logged_hours}",
            f"- Hours worked: {_hours(m.total_hours_worked)}",
            f"- Average normalized efficiency: {_ratio_cell(m.average_efficiency)}",
        ]
        return DocumentSection(
            kind=ReportSection.SUMMARY,
            title="Executive Summary",
            blocks=[TextBlock(text=line, indent=5, space_after=0.5) for line in lines],
        )

    def _metrics_table(self, ctx: _ReportContext) -> DocumentSection:
        m = ctx.metrics
        rows = [
            ["Tasks assigned", str(m.total_tasks_assigned), "-"],
            ["Tasks completed", str(m.total_tasks_completed), "-"],
            ["Completion rate", _ratio_cell(m.completion_rate), str(m.completion_rate.sample_size)],
            ["On-time delivery rate", _ratio_cell(m.on_time_delivery_rate), str(m.on_time_delivery_rate.sample_size)],
            ["Estimated hours", _hours(m.total_estimated_hours), "-"],
            ["Real hours", _hours(m.total_real_hours), "-"],
            ["Average hours per completed task", _ratio_cell(m.average_hours_per_task, _hours), str(m.average_hours_per_task.sample_size)],
            ["Productivity index", _ratio_cell(m.productivity_index), str(m.productivity_index.sample_size)],
            ["Time variance", _ratio_cell(m.time_variance), str(m.time_variance.sample_size)],
            ["Average efficiency (normalized)", _ratio_cell(m.average_efficiency), str(m.average_efficiency.sample_size)],
        ]
        return DocumentSection(
            kind=ReportSection.METRICS_TABLE,
            title="Key Metrics",
            blocks=[
                TableBlock(
                    headers=["Metric", "Value", "Sample size"],
                    rows=rows,
                    column_widths=[3, 1.5, 1.5],
                )
            ],
        )

    def _developer_table(self, ctx: _ReportContext) -> DocumentSection:
        rows = [
            [
                s.developer_name,
                str(s.sprints_active),
                _hours(s.hours_worked),
                str(s.tasks_completed),
                str(s.tasks_assigned),
                _pct(s.completion_rate),
                _pct(s.original_efficiency),
                _pct(s.normalized_efficiency),
            ]
            for s in summarize_developers(ctx.records)
        ]
        return DocumentSection(
            kind=ReportSection.DEVELOPER_TABLE,
            title="Performance by Developer",
            blocks=[
                TableBlock(
                    headers=[
                        "Developer",
                        "Sprints",
                        "Hours",
                        "Completed",
                        "Assigned",
                        "Completion",
                        "Efficiency",
                        "Normalized",
                    ],
                    rows=rows,
                    column_widths=[3, 1, 1.2, 1.2, 1.2, 1.3, 1.3, 1.3],
                )
            ],
        )

    def _sprint_table(self, ctx: _ReportContext) -> DocumentSection:
        data = ctx.data
        hours = {
            p.sprint_id: p.total_hours
            for p in total_hours_per_sprint(ctx.records, ctx.sprints, data.snapshot.developers)
        }
        by_id = {s.id: s for s in ctx.sprints}
        rows = []
        for summary in summarize_sprints(
            ctx.records,
            data.snapshot.tasks,
            data.snapshot.assignments,
            ctx.sprints,
            ScopeFilter(developer_id=ctx.scope.developer_id),
        ):
            rows.append(
                [
                    summary.sprint_name,
                    _period(by_id[summary.sprint_id]),
                    _hours(hours.get(summary.sprint_id, 0.0)),
                    str(summary.tasks_completed),
                    str(summary.tasks_assigned),
                    _pct(summary.completion_rate),
                    str(summary.active_developers),
                    _pct(summary.average_efficiency),
                ]
            )
        return DocumentSection(
            kind=ReportSection.SPRINT_TABLE,
            title="Sprint Analysis",
            blocks=[
                TableBlock(
                    headers=[
                        "Sprint",
                        "Period",
                        "Hours",
                        "Completed",
                        "Assigned",
                        "Completion",
                        "Developers",
                        "Avg. efficiency",
                    ],
                    rows=rows,
                    column_widths=[2.2, 2.6, 1.1, 1.2, 1.1, 1.3, 1.3, 1.4],
                )
            ],
        )

    def _efficiency_ranking(self, ctx: _ReportContext) -> DocumentSection:
        ranking = sorted(
            developer_efficiency(ctx.records),
            key=lambda e: (-e.normalized_efficiency, e.developer_name),
        )
        section = DocumentSection(kind=ReportSection.EFFICIENCY_RANKING, title="Efficiency Ranking")
        if not ranking:
            section.blocks.append(TextBlock(text="No efficiency data in the selected scope."))
            return section

        section.blocks.append(
            TextBlock(
                text="Normalized efficiency is relative to the best active developer "
                "in this scope (100%).",
                font_size=9,
                color=(100, 100, 100),
            )
        )
        section.blocks.append(
            TableBlock(
                headers=["#", "Developer", "Normalized", "Raw efficiency"],
                rows=[
                    [str(i), e.developer_name, _pct(e.normalized_efficiency), _pct(e.original_efficiency)]
                    for i, e in enumerate(ranking, start=1)
                ],
                column_widths=[0.6, 4, 1.6, 1.6],
            )
        )
        return section

    def _insights(self, ctx: _ReportContext) -> DocumentSection:
        analysis = ctx.analysis
        section = DocumentSection(kind=ReportSection.INSIGHTS, title="AI Analysis")
        if not analysis.success:
            section.blocks.append(
                TextBlock(text=INSIGHTS_UNAVAILABLE_NOTICE, bold=True, color=(220, 53, 69))
            )
            if analysis.summary:
                section.blocks.append(
                    TextBlock(text=analysis.summary, font_size=9, color=(100, 100, 100))
                )
            return section

        if analysis.summary:
            section.blocks.append(TextBlock(text=analysis.summary, space_after=4))
        for insight in analysis.insights:
            section.blocks.append(InsightBlock(insight=insight))
        if not analysis.insights:
            section.blocks.append(TextBlock(text="No notable findings for this scope."))
        return section

    def _footer(self, ctx: _ReportContext) -> DocumentSection:
        # Page numbers are stamped by the layout engine once all pages exist.
        return DocumentSection(kind=ReportSection.FOOTER)

    # --- pipeline ---

    def compose(
        self,
        data: PerformanceExportData,
        metrics: Metrics,
        analysis: AnalysisResponse,
        generated_at: datetime,
    ) -> ReportDocument:
        records = filter_records(data.records, data.scope)
        ctx = _ReportContext(
            data=data,
            records=records,
            sprints=self._sprints_in_scope(data),
            metrics=metrics,
            analysis=analysis,
            generated_at=generated_at,
        )
        sections = [self._builders[kind](ctx) for kind in SECTION_ORDER]
        return ReportDocument(
            title=self.title,
            footer_label=f"Generated {generated_at:%Y-%m-%d %H:%M}",
            sections=sections,
        )

    def paginate(self, document: ReportDocument) -> ReportLayout:
        return self.layout_engine.paginate(document)

    @staticmethod
    def _sprints_in_scope(data: PerformanceExportData) -> List[Sprint]:
        sprints = scope_sprints(data.snapshot.sprints, data.snapshot.project_id)
        if data.scope.sprint_id is not None:
            sprints = [s for s in sprints if s.id == data.scope.sprint_id]
        return sprints

    @staticmethod
    def _developers_in_scope(
        records: Sequence[PerformanceRecord], developers: Sequence[Developer]
    ) -> List[Developer]:
        present = {r.developer_id for r in records}
        return [d for d in developers if d.id in present]

    async def export_performance_report(
        self, data: PerformanceExportData, generated_at: Optional[datetime] = None
    ) -> ExportedReport:
        records = filter_records(data.records, data.scope)
        if not records:
            log.info(f"Nothing to export for scope {data.scope}")
            raise EmptyDatasetError()

        generated_at = generated_at or datetime.now()
        snapshot = data.snapshot
        metrics = compute_metrics(data.records, snapshot.tasks, snapshot.assignments, data.scope)
        analysis = await self.gateway.analyze_performance(
            records,
            self._sprints_in_scope(data),
            self._developers_in_scope(records, snapshot.developers),
            metrics,
        )

        document = self.compose(data, metrics, analysis, generated_at)
        layout = self.paginate(document)
        content = self.renderer.render(layout)
        filename = build_report_filename(data.scope, generated_at)
        log.info(
            f"Exported {filename}: {layout.page_count} pages, "
            f"insights {'included' if analysis.success else 'unavailable'}"
        )
        return ExportedReport(
            filename=filename,
            content=content,
            page_count=layout.page_count,
            insights_available=analysis.success,
            warnings=layout.warnings,
        )
