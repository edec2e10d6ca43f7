import logging
from datetime import datetime
from typing import List, Optional, Tuple

from app.schemas.entities import EntitySnapshot
from app.schemas.insight import AnalysisResponse
from app.schemas.performance import (
    ChartSeries,
    PerformanceOverview,
    PerformanceRecord,
    ScopeFilter,
)
from app.schemas.report import ExportedReport, PerformanceExportData
from app.services.aggregation import OrphanPolicy, aggregate_snapshot, filter_records, scope_sprints
from app.services.entity_store import EntityStoreService
from app.services.insight_gateway import InsightGateway
from app.services.metrics import compute_metrics, developer_efficiency
from app.services.report_assembler import ReportAssembler
from app.services.series import build_series

log = logging.getLogger(__name__)


class ReportService:
    """
    Service for developer performance reports.
    Relies on injected entity store, insight gateway and report assembler.
    """

    def __init__(
        self,
        entity_store: EntityStoreService,
        gateway: InsightGateway,
        assembler: ReportAssembler,
        on_orphan: OrphanPolicy = "drop",
    ):
        self.entity_store = entity_store
        self.gateway = gateway
        self.assembler = assembler
        self.on_orphan = on_orphan

    async def _load(self, scope: ScopeFilter) -> Tuple[EntitySnapshot, Tuple[PerformanceRecord, ...]]:
        snapshot = await self.entity_store.load_snapshot(scope.project_id)
        records = aggregate_snapshot(snapshot, on_orphan=self.on_orphan)
        return snapshot, records

    async def get_overview(self, scope: ScopeFilter) -> PerformanceOverview:
        """Records, scope metrics and normalized efficiency for the requested scope."""
        snapshot, records = await self._load(scope)
        filtered = filter_records(records, scope)
        return PerformanceOverview(
            scope=scope,
            records=filtered,
            metrics=compute_metrics(records, snapshot.tasks, snapshot.assignments, scope),
            efficiency=developer_efficiency(filtered),
        )

    async def get_series(self, scope: ScopeFilter) -> ChartSeries:
        snapshot, records = await self._load(scope)
        sprints = scope_sprints(snapshot.sprints, scope.project_id)
        return build_series(records, sprints, snapshot.developers, scope)

    async def analyze(self, scope: ScopeFilter) -> AnalysisResponse:
        """
        Ask the insight collaborator about the scope.
        Never fails because of the collaborator: a failure comes back as success=False.
        """
        snapshot, records = await self._load(scope)
        filtered = filter_records(records, scope)
        sprints = scope_sprints(snapshot.sprints, scope.project_id)
        if scope.sprint_id is not None:
            sprints = [s for s in sprints if s.id == scope.sprint_id]
        present = {r.developer_id for r in filtered}
        metrics = compute_metrics(records, snapshot.tasks, snapshot.assignments, scope)
        return await self.gateway.analyze_performance(
            filtered,
            sprints,
            [d for d in snapshot.developers if d.id in present],
            metrics,
        )

    async def get_recommendations(self, sprint_id: Optional[int] = None) -> List[str]:
        return await self.gateway.get_recommendations(sprint_id)

    async def export(
        self, scope: ScopeFilter, generated_at: Optional[datetime] = None
    ) -> ExportedReport:
        snapshot, records = await self._load(scope)
        log.info(f"Exporting performance report for scope {scope}")
        return await self.assembler.export_performance_report(
            PerformanceExportData(snapshot=snapshot, records=records, scope=scope),
            generated_at=generated_at,
        )
