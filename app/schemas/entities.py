from datetime import datetime
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field


class TaskStatus(IntEnum):
    TODO = 0
    IN_PROGRESS = 1
    COMPLETED = 2
    BLOCKED = 3


class SprintStatus(IntEnum):
    PLANNING = 0
    ACTIVE = 1
    COMPLETED = 2


class EntityModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class Project(EntityModel):
    id: int
    name: str
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: int | None = None


class Sprint(EntityModel):
    id: int
    name: str
    project_id: int | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: SprintStatus = SprintStatus.PLANNING


class Task(EntityModel):
    id: int
    title: str
    sprint_id: int | None = None
    project_id: int | None = None
    status: TaskStatus = TaskStatus.TODO
    estimated_hours: float = Field(default=0.0, ge=0)
    real_hours: float = Field(default=0.0, ge=0)
    due_date: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def has_logged_hours(self) -> bool:
        return self.real_hours > 0


class Developer(EntityModel):
    id: int
    username: str
    full_name: str | None = None
    role: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.username


class TaskAssignment(EntityModel):
    task_id: int
    developer_id: int = Field(alias="user_id")
    task: Task | None = None


class EntitySnapshot(EntityModel):
    """Read-only view of the entity store for one aggregation pass."""

    projects: tuple[Project, ...] = ()
    sprints: tuple[Sprint, ...] = ()
    tasks: tuple[Task, ...] = ()
    developers: tuple[Developer, ...] = ()
    assignments: tuple[TaskAssignment, ...] = ()
    project_id: int | None = None

    def project_name(self) -> str | None:
        if self.project_id is None:
            return None
        for project in self.projects:
            if project.id == self.project_id:
                return project.name
        return None
