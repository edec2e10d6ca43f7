"""
Joins task assignments to tasks, sprints and developers and produces one
PerformanceRecord per (sprint, developer) pair.

Everything here is a pure function of an immutable snapshot: the same input
always yields the same tuple of records, in sprint order then developer order.
"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Set, Tuple

from app.schemas.entities import Developer, EntitySnapshot, Sprint, Task, TaskAssignment
from app.schemas.performance import PerformanceRecord, ScopeFilter
from app.services.errors import InputInconsistency

log = logging.getLogger(__name__)

OrphanPolicy = Literal["drop", "raise"]


def resolve_assignments(
    assignments: Iterable[TaskAssignment],
    tasks_by_id: Dict[int, Task],
    developer_ids: Set[int],
    on_orphan: OrphanPolicy = "drop",
) -> List[Tuple[int, int]]:
    """
    Validate assignment rows against the supplied collections.

    Returns distinct (task_id, developer_id) pairs in first-seen order.
    Orphans are dropped with a warning, or raised as InputInconsistency
    when on_orphan == "raise".
    """
    pairs: List[Tuple[int, int]] = []
    seen: Set[Tuple[int, int]] = set()
    for assignment in assignments:
        reason = None
        if assignment.task_id not in tasks_by_id:
            reason = "unknown task"
        elif assignment.developer_id not in developer_ids:
            reason = "unknown developer"

        if reason:
            error = InputInconsistency(assignment.task_id, assignment.developer_id, reason)
            if on_orphan == "raise":
                raise error
            log.warning(f"Dropping assignment: {error}")
            continue

        pair = (assignment.task_id, assignment.developer_id)
        if pair in seen:
            continue
        seen.add(pair)
        pairs.append(pair)
    return pairs


def scope_sprints(sprints: Sequence[Sprint], project_id: Optional[int]) -> List[Sprint]:
    if project_id is None:
        return list(sprints)
    return [s for s in sprints if s.project_id == project_id]


def _build_record(
    sprint: Sprint,
    developer: Developer,
    tasks: List[Task],
    assignee_count: Dict[int, int],
) -> PerformanceRecord:
    completed = [t for t in tasks if t.is_completed]
    logged = [t for t in tasks if t.has_logged_hours]

    hours_worked = sum(t.real_hours / max(assignee_count.get(t.id, 1), 1) for t in logged)
    estimated = sum(t.estimated_hours for t in logged)
    efficiency = estimated / hours_worked * 100 if hours_worked > 0 and estimated > 0 else 0.0

    return PerformanceRecord(
        sprint_id=sprint.id,
        sprint_name=sprint.name,
        developer_id=developer.id,
        developer_name=developer.display_name,
        hours_worked=hours_worked,
        tasks_completed=len(completed),
        tasks_assigned=len(tasks),
        tasks_with_logged_hours=len(logged),
        efficiency=efficiency,
    )


def aggregate_performance(
    tasks: Sequence[Task],
    sprints: Sequence[Sprint],
    developers: Sequence[Developer],
    assignments: Sequence[TaskAssignment],
    project_id: Optional[int] = None,
    on_orphan: OrphanPolicy = "drop",
) -> Tuple[PerformanceRecord, ...]:
    """Produce the performance batch for every sprint in scope and every developer."""
    tasks_by_id = {t.id: t for t in tasks}
    pairs = resolve_assignments(
        assignments, tasks_by_id, {d.id for d in developers}, on_orphan=on_orphan
    )

    assignee_count: Dict[int, int] = defaultdict(int)
    # (sprint_id, developer_id) -> task ids in assignment order
    assigned: Dict[Tuple[int, int], List[int]] = defaultdict(list)
    for task_id, developer_id in pairs:
        assignee_count[task_id] += 1
        task = tasks_by_id[task_id]
        if task.sprint_id is not None:
            assigned[(task.sprint_id, developer_id)].append(task_id)

    records = []
    for sprint in scope_sprints(sprints, project_id):
        for developer in developers:
            task_ids = assigned.get((sprint.id, developer.id), [])
            records.append(
                _build_record(
                    sprint,
                    developer,
                    [tasks_by_id[tid] for tid in task_ids],
                    assignee_count,
                )
            )

    log.debug(
        f"Aggregated {len(records)} performance records "
        f"({len(pairs)} assignments, project={project_id})"
    )
    return tuple(records)


def aggregate_snapshot(
    snapshot: EntitySnapshot, on_orphan: OrphanPolicy = "drop"
) -> Tuple[PerformanceRecord, ...]:
    return aggregate_performance(
        snapshot.tasks,
        snapshot.sprints,
        snapshot.developers,
        snapshot.assignments,
        project_id=snapshot.project_id,
        on_orphan=on_orphan,
    )


def filter_records(
    records: Iterable[PerformanceRecord], scope: ScopeFilter
) -> List[PerformanceRecord]:
    return [
        r
        for r in records
        if (scope.sprint_id is None or r.sprint_id == scope.sprint_id)
        and (scope.developer_id is None or r.developer_id == scope.developer_id)
    ]
