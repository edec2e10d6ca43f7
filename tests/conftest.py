"""Shared fixtures: a small two-sprint project with one co-assigned task and one idle developer."""

from datetime import datetime

import pytest

from app.schemas.entities import (
    Developer,
    EntitySnapshot,
    Project,
    Sprint,
    SprintStatus,
    Task,
    TaskAssignment,
    TaskStatus,
)


def make_task(task_id, sprint_id, estimated=0.0, real=0.0, status=TaskStatus.TODO):
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        sprint_id=sprint_id,
        status=status,
        estimated_hours=estimated,
        real_hours=real,
    )


def assign(task_id, developer_id):
    return TaskAssignment(task_id=task_id, developer_id=developer_id)


@pytest.fixture
def sprints():
    return (
        Sprint(
            id=1,
            name="Sprint 1",
            project_id=1,
            start_date=datetime(2024, 3, 1),
            end_date=datetime(2024, 3, 14),
            status=SprintStatus.COMPLETED,
        ),
        Sprint(
            id=2,
            name="Sprint 2",
            project_id=1,
            start_date=datetime(2024, 3, 15),
            end_date=datetime(2024, 3, 28),
            status=SprintStatus.ACTIVE,
        ),
        Sprint(id=3, name="Other project sprint", project_id=2),
    )


@pytest.fixture
def developers():
    return (
        Developer(id=1, username="alice", full_name="Alice Smith"),
        Developer(id=2, username="bob", full_name="Bob Jones"),
        Developer(id=3, username="carol"),
    )


@pytest.fixture
def tasks():
    return (
        # Co-assigned to alice and bob.
        make_task(1, 1, estimated=10, real=8, status=TaskStatus.COMPLETED),
        make_task(2, 1, estimated=4, real=4, status=TaskStatus.COMPLETED),
        make_task(3, 2, estimated=6, real=0, status=TaskStatus.IN_PROGRESS),
        make_task(4, 2, estimated=5, real=10, status=TaskStatus.COMPLETED),
        make_task(5, 3, estimated=2, real=2, status=TaskStatus.COMPLETED),
    )


@pytest.fixture
def assignments():
    return (
        assign(1, 1),
        assign(1, 2),
        assign(2, 1),
        assign(3, 2),
        assign(4, 1),
        assign(5, 2),
    )


@pytest.fixture
def snapshot(sprints, developers, tasks, assignments):
    return EntitySnapshot(
        projects=(Project(id=1, name="Apollo"), Project(id=2, name="Gemini")),
        sprints=sprints,
        tasks=tasks,
        developers=developers,
        assignments=assignments,
        project_id=1,
    )
