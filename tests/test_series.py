"""Tests for the chart series builder."""

import pytest

from app.schemas.entities import Developer, Sprint, TaskStatus
from app.schemas.performance import ScopeFilter
from app.services.aggregation import aggregate_performance, aggregate_snapshot
from app.services.series import (
    build_series,
    hours_per_developer_per_sprint,
    tasks_per_developer_per_sprint,
    total_hours_per_sprint,
)
from conftest import assign, make_task


class TestTotalHoursPerSprint:
    def test_two_sprints_in_supplied_order(self):
        """Sprint totals of 10h and 30h come back in the supplied sprint order."""
        sprints = [Sprint(id=7, name="Later id first"), Sprint(id=3, name="Second")]
        developers = [Developer(id=1, username="a"), Developer(id=2, username="b")]
        tasks = [
            make_task(1, 7, estimated=10, real=10, status=TaskStatus.COMPLETED),
            make_task(2, 3, estimated=20, real=20, status=TaskStatus.COMPLETED),
            make_task(3, 3, estimated=10, real=10),
        ]
        records = aggregate_performance(
            tasks, sprints, developers, [assign(1, 1), assign(2, 1), assign(3, 2)]
        )

        points = total_hours_per_sprint(records, sprints, developers)

        assert [p.sprint for p in points] == ["Later id first", "Second"]
        assert [p.total_hours for p in points] == [10.0, 30.0]

    def test_respects_sprint_filter(self, snapshot):
        records = aggregate_snapshot(snapshot)

        points = total_hours_per_sprint(
            records, snapshot.sprints, snapshot.developers, ScopeFilter(sprint_id=2)
        )

        assert [(p.sprint_id, p.total_hours) for p in points] == [(2, 10.0)]


class TestPivots:
    def test_columns_are_active_developers_only(self, snapshot):
        rows = hours_per_developer_per_sprint(
            aggregate_snapshot(snapshot), snapshot.sprints, snapshot.developers
        )

        assert [list(row.values) for row in rows] == [["alice", "bob"], ["alice", "bob"]]
        assert rows[0].values == {"alice": pytest.approx(8.0), "bob": pytest.approx(4.0)}

    def test_absent_value_is_zero(self, snapshot):
        rows = tasks_per_developer_per_sprint(
            aggregate_snapshot(snapshot), snapshot.sprints, snapshot.developers
        )

        assert rows[1].values["bob"] == 0
        assert rows[1].values["alice"] == 1

    def test_deterministic(self, snapshot):
        records = aggregate_snapshot(snapshot)

        first = build_series(records, snapshot.sprints, snapshot.developers)
        second = build_series(records, snapshot.sprints, snapshot.developers)

        assert first.model_dump_json() == second.model_dump_json()


class TestBuildSeries:
    def test_bundle(self, snapshot):
        series = build_series(aggregate_snapshot(snapshot), snapshot.sprints, snapshot.developers)

        assert [d.key for d in series.developers] == ["alice", "bob"]
        assert [d.name for d in series.developers] == ["Alice Smith", "Bob Jones"]
        assert [p.total_hours for p in series.total_hours_per_sprint] == [
            pytest.approx(12.0),
            pytest.approx(10.0),
        ]
        efficiency = {e.developer_id: e for e in series.efficiency_per_developer}
        assert efficiency[2].normalized_efficiency == 100.0
        assert efficiency[1].original_efficiency == pytest.approx(112.5)

    def test_developer_filter(self, snapshot):
        series = build_series(
            aggregate_snapshot(snapshot),
            snapshot.sprints,
            snapshot.developers,
            ScopeFilter(developer_id=1),
        )

        assert [d.developer_id for d in series.developers] == [1]
        assert [e.normalized_efficiency for e in series.efficiency_per_developer] == [100.0]
