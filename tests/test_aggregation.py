"""Tests for the aggregation engine."""

import pytest

from app.schemas.entities import Developer, Sprint
from app.schemas.performance import ScopeFilter
from app.services.aggregation import (
    aggregate_performance,
    aggregate_snapshot,
    filter_records,
    resolve_assignments,
)
from app.services.errors import InputInconsistency
from conftest import assign, make_task


def _record(records, sprint_id, developer_id):
    return next(r for r in records if r.sprint_id == sprint_id and r.developer_id == developer_id)


class TestAggregatePerformance:
    """Tests for aggregate_performance."""

    def test_one_record_per_sprint_and_developer(self, snapshot):
        """Project scope keeps sprints 1 and 2 and crosses them with every developer."""
        records = aggregate_snapshot(snapshot)

        assert len(records) == 6
        assert [(r.sprint_id, r.developer_id) for r in records] == [
            (1, 1), (1, 2), (1, 3), (2, 1), (2, 2), (2, 3),
        ]

    def test_co_assigned_task_splits_hours_evenly(self, snapshot):
        """A task with two assignees credits each with half the real hours."""
        records = aggregate_snapshot(snapshot)

        alice = _record(records, 1, 1)
        bob = _record(records, 1, 2)
        assert bob.hours_worked == pytest.approx(4.0)
        assert bob.tasks_completed == 1
        # 8h / 2 from the shared task plus 4h of her own
        assert alice.hours_worked == pytest.approx(8.0)
        assert alice.tasks_completed == 2

    def test_efficiency_uses_estimate_over_hours_worked(self, snapshot):
        records = aggregate_snapshot(snapshot)

        assert _record(records, 1, 1).efficiency == pytest.approx(14 / 8 * 100)
        assert _record(records, 1, 2).efficiency == pytest.approx(250.0)
        assert _record(records, 2, 1).efficiency == pytest.approx(50.0)

    def test_efficiency_zero_without_logged_hours(self, snapshot):
        """Assigned but unlogged work leaves efficiency at 0, not NaN."""
        bob = _record(aggregate_snapshot(snapshot), 2, 2)

        assert bob.tasks_assigned == 1
        assert bob.hours_worked == 0
        assert bob.tasks_with_logged_hours == 0
        assert bob.efficiency == 0.0

    def test_completion_counts_status_not_hours(self):
        """Hours logged on an open task do not make it completed."""
        records = aggregate_performance(
            tasks=[make_task(1, 1, estimated=3, real=5)],
            sprints=[Sprint(id=1, name="S1")],
            developers=[Developer(id=1, username="dev")],
            assignments=[assign(1, 1)],
        )

        assert records[0].tasks_completed == 0
        assert records[0].tasks_with_logged_hours == 1

    def test_idle_developer_has_zero_record(self, snapshot):
        carol = _record(aggregate_snapshot(snapshot), 1, 3)

        assert not carol.is_active
        assert carol.hours_worked == 0
        assert carol.tasks_assigned == 0

    def test_unscoped_includes_all_sprints(self, snapshot):
        records = aggregate_snapshot(snapshot.model_copy(update={"project_id": None}))

        assert {r.sprint_id for r in records} == {1, 2, 3}

    def test_idempotent(self, snapshot):
        """Two runs over the same snapshot give identical batches."""
        first = aggregate_snapshot(snapshot)
        second = aggregate_snapshot(snapshot)

        assert first == second
        assert [r.model_dump_json() for r in first] == [r.model_dump_json() for r in second]

    def test_duplicate_assignment_counted_once(self, snapshot):
        doubled = snapshot.model_copy(
            update={"assignments": snapshot.assignments + (assign(2, 1),)}
        )

        assert aggregate_snapshot(doubled) == aggregate_snapshot(snapshot)


class TestOrphanAssignments:
    """Tests for dangling assignment references."""

    def test_orphans_dropped_by_default(self, snapshot):
        with_orphans = snapshot.model_copy(
            update={"assignments": snapshot.assignments + (assign(99, 1), assign(2, 42))}
        )

        assert aggregate_snapshot(with_orphans) == aggregate_snapshot(snapshot)

    def test_orphan_raises_when_requested(self, snapshot):
        with_orphans = snapshot.model_copy(
            update={"assignments": snapshot.assignments + (assign(99, 1),)}
        )

        with pytest.raises(InputInconsistency) as exc_info:
            aggregate_snapshot(with_orphans, on_orphan="raise")
        assert exc_info.value.task_id == 99
        assert exc_info.value.reason == "unknown task"

    def test_resolve_reports_unknown_developer(self, tasks):
        with pytest.raises(InputInconsistency, match="unknown developer"):
            resolve_assignments(
                [assign(1, 7)], {t.id: t for t in tasks}, {1, 2}, on_orphan="raise"
            )

    def test_resolve_keeps_first_seen_order(self, tasks):
        pairs = resolve_assignments(
            [assign(2, 1), assign(1, 2), assign(2, 1), assign(1, 1)],
            {t.id: t for t in tasks},
            {1, 2},
        )

        assert pairs == [(2, 1), (1, 2), (1, 1)]


class TestFilterRecords:
    def test_sprint_and_developer_filters(self, snapshot):
        records = aggregate_snapshot(snapshot)

        assert {r.sprint_id for r in filter_records(records, ScopeFilter(sprint_id=2))} == {2}
        only_bob = filter_records(records, ScopeFilter(developer_id=2))
        assert [r.sprint_id for r in only_bob] == [1, 2]
        assert filter_records(records, ScopeFilter(sprint_id=1, developer_id=3)) == [
            _record(records, 1, 3)
        ]
