"""
Pivots the performance batch into chart-ready series.

Sprints keep the order supplied by the entity store and developers keep the
order of the active-developer list; nothing depends on dict or set ordering.
"""
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from app.schemas.entities import Developer, Sprint
from app.schemas.performance import (
    ChartSeries,
    DeveloperEfficiency,
    PerformanceRecord,
    ScopeFilter,
    SeriesDeveloper,
    SprintSeriesRow,
    SprintTotalPoint,
)
from app.services.aggregation import filter_records
from app.services.metrics import active_developers, developer_efficiency


def series_key(developer: Developer) -> str:
    return developer.username


def _sprints_in_scope(
    records: Sequence[PerformanceRecord], sprints: Sequence[Sprint], scope: ScopeFilter
) -> List[Sprint]:
    present = {r.sprint_id for r in records}
    return [
        s
        for s in sprints
        if s.id in present and (scope.sprint_id is None or s.id == scope.sprint_id)
    ]


def total_hours_per_sprint(
    records: Sequence[PerformanceRecord],
    sprints: Sequence[Sprint],
    developers: Sequence[Developer],
    scope: Optional[ScopeFilter] = None,
) -> List[SprintTotalPoint]:
    scope = scope or ScopeFilter()
    filtered = filter_records(records, scope)
    active_ids = {d.id for d in active_developers(filtered, developers)}
    return [
        SprintTotalPoint(
            sprint_id=sprint.id,
            sprint=sprint.name,
            total_hours=sum(
                r.hours_worked
                for r in filtered
                if r.sprint_id == sprint.id and r.developer_id in active_ids
            ),
        )
        for sprint in _sprints_in_scope(records, sprints, scope)
    ]


def _pivot(
    records: Sequence[PerformanceRecord],
    sprints: Sequence[Sprint],
    developers: Sequence[Developer],
    scope: ScopeFilter,
    value: Callable[[PerformanceRecord], float],
) -> List[SprintSeriesRow]:
    filtered = filter_records(records, scope)
    columns = active_developers(filtered, developers)
    lookup: Dict[Tuple[int, int], PerformanceRecord] = {
        (r.sprint_id, r.developer_id): r for r in filtered
    }

    rows = []
    for sprint in _sprints_in_scope(records, sprints, scope):
        values = {}
        for developer in columns:
            record = lookup.get((sprint.id, developer.id))
            values[series_key(developer)] = value(record) if record else 0
        rows.append(SprintSeriesRow(sprint_id=sprint.id, sprint=sprint.name, values=values))
    return rows


def hours_per_developer_per_sprint(
    records: Sequence[PerformanceRecord],
    sprints: Sequence[Sprint],
    developers: Sequence[Developer],
    scope: Optional[ScopeFilter] = None,
) -> List[SprintSeriesRow]:
    return _pivot(records, sprints, developers, scope or ScopeFilter(), lambda r: r.hours_worked)


def tasks_per_developer_per_sprint(
    records: Sequence[PerformanceRecord],
    sprints: Sequence[Sprint],
    developers: Sequence[Developer],
    scope: Optional[ScopeFilter] = None,
) -> List[SprintSeriesRow]:
    return _pivot(records, sprints, developers, scope or ScopeFilter(), lambda r: r.tasks_completed)


def efficiency_per_developer(
    records: Sequence[PerformanceRecord], scope: Optional[ScopeFilter] = None
) -> List[DeveloperEfficiency]:
    return developer_efficiency(filter_records(records, scope or ScopeFilter()))


def build_series(
    records: Sequence[PerformanceRecord],
    sprints: Sequence[Sprint],
    developers: Sequence[Developer],
    scope: Optional[ScopeFilter] = None,
) -> ChartSeries:
    scope = scope or ScopeFilter()
    columns = active_developers(filter_records(records, scope), developers)
    return ChartSeries(
        developers=[
            SeriesDeveloper(developer_id=d.id, key=series_key(d), name=d.display_name)
            for d in columns
        ],
        total_hours_per_sprint=total_hours_per_sprint(records, sprints, developers, scope),
        hours_per_developer_per_sprint=hours_per_developer_per_sprint(
            records, sprints, developers, scope
        ),
        tasks_per_developer_per_sprint=tasks_per_developer_per_sprint(
            records, sprints, developers, scope
        ),
        efficiency_per_developer=efficiency_per_developer(records, scope),
    )
