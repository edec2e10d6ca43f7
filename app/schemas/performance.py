from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ScopeFilter(BaseModel):
    """Project scope plus the optional sprint / developer selection."""

    model_config = ConfigDict(frozen=True)

    project_id: Optional[int] = None
    sprint_id: Optional[int] = None
    developer_id: Optional[int] = None

    @property
    def sprint_label(self) -> str:
        return str(self.sprint_id) if self.sprint_id is not None else "all"

    @property
    def developer_label(self) -> str:
        return str(self.developer_id) if self.developer_id is not None else "all"


class PerformanceRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    sprint_id: int
    sprint_name: str
    developer_id: int
    developer_name: str
    hours_worked: float = 0.0
    tasks_completed: int = 0
    tasks_assigned: int = 0
    tasks_with_logged_hours: int = 0
    efficiency: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.tasks_assigned > 0 or self.hours_worked > 0 or self.tasks_completed > 0


class NormalizedPerformanceRecord(PerformanceRecord):
    original_efficiency: float = 0.0
    normalized_efficiency: float = 0.0


class DeveloperEfficiency(BaseModel):
    model_config = ConfigDict(frozen=True)

    developer_id: int
    developer_name: str
    original_efficiency: float
    normalized_efficiency: float


class RatioMetric(BaseModel):
    """A ratio plus the number of items behind it; 0 with sample_size 0 means no data."""

    model_config = ConfigDict(frozen=True)

    value: float = 0.0
    sample_size: int = 0

    @property
    def has_data(self) -> bool:
        return self.sample_size > 0


class Metrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_tasks_assigned: int = 0
    total_tasks_completed: int = 0
    tasks_with_logged_hours: int = 0
    total_hours_worked: float = 0.0
    total_estimated_hours: float = 0.0
    total_real_hours: float = 0.0
    completion_rate: RatioMetric = RatioMetric()
    average_hours_per_task: RatioMetric = RatioMetric()
    productivity_index: RatioMetric = RatioMetric()
    time_variance: RatioMetric = RatioMetric()
    on_time_delivery_rate: RatioMetric = RatioMetric()
    average_efficiency: RatioMetric = RatioMetric()
    active_developers: int = 0
    total_developers: int = 0
    active_sprints: int = 0


class SprintSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    sprint_id: int
    sprint_name: str
    tasks_assigned: int
    tasks_completed: int
    active_developers: int
    average_efficiency: float

    @property
    def completion_rate(self) -> float:
        if self.tasks_assigned == 0:
            return 0.0
        return min(100.0, self.tasks_completed / self.tasks_assigned * 100)


class DeveloperSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    developer_id: int
    developer_name: str
    sprints_active: int
    hours_worked: float
    tasks_completed: int
    tasks_assigned: int
    completion_rate: float
    original_efficiency: float
    normalized_efficiency: float


class SprintTotalPoint(BaseModel):
    sprint_id: int
    sprint: str
    total_hours: float


class SprintSeriesRow(BaseModel):
    sprint_id: int
    sprint: str
    values: Dict[str, float] = Field(default_factory=dict)


class SeriesDeveloper(BaseModel):
    developer_id: int
    key: str
    name: str


class ChartSeries(BaseModel):
    developers: List[SeriesDeveloper]
    total_hours_per_sprint: List[SprintTotalPoint]
    hours_per_developer_per_sprint: List[SprintSeriesRow]
    tasks_per_developer_per_sprint: List[SprintSeriesRow]
    efficiency_per_developer: List[DeveloperEfficiency]


class PerformanceOverview(BaseModel):
    scope: ScopeFilter
    records: List[PerformanceRecord]
    metrics: Metrics
    efficiency: List[DeveloperEfficiency]
