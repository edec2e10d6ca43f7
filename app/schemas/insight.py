from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, computed_field

from app.schemas.entities import Developer, Sprint
from app.schemas.performance import Metrics, NormalizedPerformanceRecord

InsightCategory = Literal["performance", "efficiency", "workload", "sprint", "general"]
InsightSeverity = Literal["low", "medium", "high"]


class Insight(BaseModel):
    category: InsightCategory = "general"
    severity: InsightSeverity = "medium"
    title: str
    description: str
    recommendation: str
    data_points: Optional[List[str]] = None


class AnalysisMetadata(BaseModel):
    active_developers: int = Field(default=0, alias="activeDevelopers")
    total_developers: int = Field(default=0, alias="totalDevelopers")
    normalized_efficiency: bool = Field(default=False, alias="normalizedEfficiency")
    analysis_timestamp: Optional[datetime] = Field(default=None, alias="analysisTimestamp")

    model_config = {"populate_by_name": True}


class AnalysisRequest(BaseModel):
    """Payload sent to the insight collaborator: active developers only, efficiency normalized."""

    performance_data: List[NormalizedPerformanceRecord] = Field(alias="performanceData")
    sprints: List[Sprint]
    developers: List[Developer]
    # Имена неактивных разработчиков остаются локально (только для промпта), наружу уходит их число
    inactive_developers: List[Developer] = Field(default_factory=list, exclude=True)
    metrics: Metrics

    model_config = {"populate_by_name": True}

    @computed_field(alias="inactiveDeveloperCount")
    @property
    def inactive_developer_count(self) -> int:
        return len(self.inactive_developers)


class AnalysisResponse(BaseModel):
    success: bool
    insights: List[Insight] = Field(default_factory=list)
    summary: str = ""
    error: Optional[str] = None
    metadata: Optional[AnalysisMetadata] = None


class InsightPayload(BaseModel):
    """Structured output expected from the LLM: {"insights": [...], "summary": "..."}."""

    insights: List[Insight] = Field(description="List of findings about the team.")
    summary: str = Field(description="Short executive summary.")


class RecommendationsPayload(BaseModel):
    recommendations: List[str] = Field(description="Short actionable recommendations.")
