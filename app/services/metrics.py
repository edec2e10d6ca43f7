"""
Scope-wide metrics, active-developer filtering and efficiency normalization.

Normalized efficiency is relative to the active population it is computed
on, so it is recomputed from the filtered batch on every call and never
cached across scopes.
"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Set

from app.schemas.entities import Developer, Sprint, Task, TaskAssignment
from app.schemas.performance import (
    DeveloperEfficiency,
    DeveloperSummary,
    Metrics,
    NormalizedPerformanceRecord,
    PerformanceRecord,
    RatioMetric,
    ScopeFilter,
    SprintSummary,
)
from app.services.aggregation import filter_records

log = logging.getLogger(__name__)


def _ratio(numerator: float, denominator: float, sample_size: int, scale: float = 100.0) -> RatioMetric:
    if denominator <= 0:
        return RatioMetric()
    return RatioMetric(value=numerator / denominator * scale, sample_size=sample_size)


def _percentage(part: int, whole: int) -> RatioMetric:
    if whole <= 0:
        return RatioMetric(value=0.0, sample_size=0)
    return RatioMetric(value=min(100.0, max(0.0, part / whole * 100)), sample_size=whole)


def active_developer_ids(records: Iterable[PerformanceRecord]) -> List[int]:
    """Developer ids with any assignment, hours or completion across the given records."""
    order: List[int] = []
    active: Set[int] = set()
    for record in records:
        if record.developer_id not in order:
            order.append(record.developer_id)
        if record.is_active:
            active.add(record.developer_id)
    return [dev_id for dev_id in order if dev_id in active]


def filter_active_developers(records: Sequence[PerformanceRecord]) -> List[PerformanceRecord]:
    """Keep the records of developers that are active somewhere in the scope."""
    active = set(active_developer_ids(records))
    return [r for r in records if r.developer_id in active]


def active_developers(
    records: Sequence[PerformanceRecord], developers: Sequence[Developer]
) -> List[Developer]:
    active = set(active_developer_ids(records))
    return [d for d in developers if d.id in active]


def developer_efficiency(records: Sequence[PerformanceRecord]) -> List[DeveloperEfficiency]:
    """
    Average raw efficiency per active developer, normalized so that the
    best average is exactly 100.

    Only records with a positive efficiency enter the average; developers
    without any are left out.
    """
    values: Dict[int, List[float]] = defaultdict(list)
    names: Dict[int, str] = {}
    for record in filter_active_developers(records):
        names.setdefault(record.developer_id, record.developer_name)
        if record.efficiency > 0:
            values[record.developer_id].append(record.efficiency)

    averages = {
        dev_id: sum(values[dev_id]) / len(values[dev_id])
        for dev_id in active_developer_ids(records)
        if values.get(dev_id)
    }
    if not averages:
        return []

    best = max(averages.values())
    return [
        DeveloperEfficiency(
            developer_id=dev_id,
            developer_name=names[dev_id],
            original_efficiency=average,
            normalized_efficiency=average / best * 100 if best > 0 else 0.0,
        )
        for dev_id, average in averages.items()
    ]


def normalize_efficiency(
    records: Sequence[PerformanceRecord],
) -> List[NormalizedPerformanceRecord]:
    """Attach the developer-level normalized efficiency to each record."""
    by_developer = {e.developer_id: e for e in developer_efficiency(records)}
    normalized = []
    for record in records:
        stats = by_developer.get(record.developer_id)
        normalized.append(
            NormalizedPerformanceRecord(
                **record.model_dump(),
                original_efficiency=record.efficiency,
                normalized_efficiency=stats.normalized_efficiency if stats else 0.0,
            )
        )
    return normalized


def scoped_tasks(
    tasks: Sequence[Task],
    assignments: Sequence[TaskAssignment],
    sprint_ids: Set[int],
    developer_ids: Set[int],
    developer_id: Optional[int] = None,
) -> List[Task]:
    """
    Distinct tasks in the given sprints that are assigned to a known
    developer (or to developer_id when a developer filter is active).
    """
    assignees: Dict[int, Set[int]] = defaultdict(set)
    for assignment in assignments:
        if assignment.developer_id in developer_ids:
            assignees[assignment.task_id].add(assignment.developer_id)

    result = []
    seen: Set[int] = set()
    for task in tasks:
        if task.id in seen or task.sprint_id not in sprint_ids:
            continue
        owners = assignees.get(task.id)
        if not owners:
            continue
        if developer_id is not None and developer_id not in owners:
            continue
        seen.add(task.id)
        result.append(task)
    return result


def compute_metrics(
    records: Sequence[PerformanceRecord],
    tasks: Sequence[Task],
    assignments: Sequence[TaskAssignment],
    scope: Optional[ScopeFilter] = None,
) -> Metrics:
    """
    Scope-wide metrics for the filtered batch.

    Task counts are deduplicated on task id, so a task completed by two
    co-assignees counts once. Ratios carry their sample size; a 0 with
    sample_size 0 means "no data".
    """
    scope = scope or ScopeFilter()
    filtered = filter_records(records, scope)
    total_developers = len({r.developer_id for r in filtered})
    active_ids = active_developer_ids(filtered)
    if not active_ids:
        log.debug(f"No active developers in scope {scope}")
        return Metrics(total_developers=total_developers)

    active_set = set(active_ids)
    active_records = [r for r in filtered if r.developer_id in active_set]
    in_scope = scoped_tasks(
        tasks,
        assignments,
        sprint_ids={r.sprint_id for r in filtered},
        developer_ids={r.developer_id for r in records},
        developer_id=scope.developer_id,
    )

    assigned = len(in_scope)
    completed = sum(1 for t in in_scope if t.is_completed)
    logged = sum(1 for t in in_scope if t.has_logged_hours)
    estimated_tasks = sum(1 for t in in_scope if t.estimated_hours > 0)
    total_estimated = sum(t.estimated_hours for t in in_scope)
    total_real = sum(t.real_hours for t in in_scope)

    completion_rate = _percentage(completed, assigned)
    efficiencies = developer_efficiency(active_records)
    average_efficiency = (
        RatioMetric(
            value=sum(e.normalized_efficiency for e in efficiencies) / len(efficiencies),
            sample_size=len(efficiencies),
        )
        if efficiencies
        else RatioMetric()
    )

    return Metrics(
        total_tasks_assigned=assigned,
        total_tasks_completed=completed,
        tasks_with_logged_hours=logged,
        total_hours_worked=sum(r.hours_worked for r in active_records),
        total_estimated_hours=total_estimated,
        total_real_hours=total_real,
        completion_rate=completion_rate,
        average_hours_per_task=_ratio(total_real, completed, completed, scale=1.0),
        productivity_index=_ratio(total_estimated, total_real, logged),
        time_variance=_ratio(total_real - total_estimated, total_estimated, estimated_tasks),
        # No due-date comparison yet: on-time delivery mirrors completion.
        on_time_delivery_rate=completion_rate,
        average_efficiency=average_efficiency,
        active_developers=len(active_ids),
        total_developers=total_developers,
        active_sprints=len({r.sprint_id for r in active_records if r.is_active}),
    )


def summarize_sprints(
    records: Sequence[PerformanceRecord],
    tasks: Sequence[Task],
    assignments: Sequence[TaskAssignment],
    sprints: Sequence[Sprint],
    scope: Optional[ScopeFilter] = None,
) -> List[SprintSummary]:
    scope = scope or ScopeFilter()
    filtered = filter_active_developers(filter_records(records, scope))
    developer_ids = {r.developer_id for r in records}
    sprint_ids = {r.sprint_id for r in filtered}

    summaries = []
    for sprint in sprints:
        if sprint.id not in sprint_ids:
            continue
        sprint_records = [r for r in filtered if r.sprint_id == sprint.id]
        sprint_tasks = scoped_tasks(
            tasks, assignments, {sprint.id}, developer_ids, scope.developer_id
        )
        effs = [r.efficiency for r in sprint_records if r.efficiency > 0]
        summaries.append(
            SprintSummary(
                sprint_id=sprint.id,
                sprint_name=sprint.name,
                tasks_assigned=len(sprint_tasks),
                tasks_completed=sum(1 for t in sprint_tasks if t.is_completed),
                active_developers=sum(1 for r in sprint_records if r.is_active),
                average_efficiency=sum(effs) / len(effs) if effs else 0.0,
            )
        )
    return summaries


def summarize_developers(
    records: Sequence[PerformanceRecord], scope: Optional[ScopeFilter] = None
) -> List[DeveloperSummary]:
    """Per-developer totals; co-assigned tasks credit every assignee."""
    filtered = filter_active_developers(filter_records(records, scope or ScopeFilter()))
    efficiency = {e.developer_id: e for e in developer_efficiency(filtered)}

    summaries = []
    for dev_id in active_developer_ids(filtered):
        dev_records = [r for r in filtered if r.developer_id == dev_id]
        completed = sum(r.tasks_completed for r in dev_records)
        assigned = sum(r.tasks_assigned for r in dev_records)
        stats = efficiency.get(dev_id)
        summaries.append(
            DeveloperSummary(
                developer_id=dev_id,
                developer_name=dev_records[0].developer_name,
                sprints_active=sum(1 for r in dev_records if r.is_active),
                hours_worked=sum(r.hours_worked for r in dev_records),
                tasks_completed=completed,
                tasks_assigned=assigned,
                completion_rate=_percentage(completed, assigned).value,
                original_efficiency=stats.original_efficiency if stats else 0.0,
                normalized_efficiency=stats.normalized_efficiency if stats else 0.0,
            )
        )
    return summaries
