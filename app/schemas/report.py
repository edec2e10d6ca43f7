from enum import Enum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from app.schemas.entities import EntitySnapshot
from app.schemas.insight import Insight
from app.schemas.performance import PerformanceRecord, ScopeFilter

RGB = Tuple[int, int, int]


class ReportSection(str, Enum):
    HEADER = "header"
    SUMMARY = "summary"
    METRICS_TABLE = "metrics_table"
    DEVELOPER_TABLE = "developer_table"
    SPRINT_TABLE = "sprint_table"
    EFFICIENCY_RANKING = "efficiency_ranking"
    INSIGHTS = "insights"
    FOOTER = "footer"


SECTION_ORDER: List[ReportSection] = [
    ReportSection.HEADER,
    ReportSection.SUMMARY,
    ReportSection.METRICS_TABLE,
    ReportSection.DEVELOPER_TABLE,
    ReportSection.SPRINT_TABLE,
    ReportSection.EFFICIENCY_RANKING,
    ReportSection.INSIGHTS,
    ReportSection.FOOTER,
]


class TextBlock(BaseModel):
    kind: Literal["text"] = "text"
    text: str
    font_size: float = 10
    bold: bool = False
    color: RGB = (60, 60, 60)
    align: Literal["L", "C", "R"] = "L"
    indent: float = 0.0
    space_after: float = 2.0


class TableBlock(BaseModel):
    kind: Literal["table"] = "table"
    headers: List[str]
    rows: List[List[str]]
    # Relative width weights, scaled to the content width at layout time.
    column_widths: List[float]
    font_size: float = 8
    space_after: float = 6.0


class InsightBlock(BaseModel):
    kind: Literal["insight"] = "insight"
    insight: Insight
    space_after: float = 4.0


Block = Annotated[Union[TextBlock, TableBlock, InsightBlock], Field(discriminator="kind")]


class DocumentSection(BaseModel):
    kind: ReportSection
    title: Optional[str] = None
    blocks: List[Block] = Field(default_factory=list)


class ReportDocument(BaseModel):
    title: str
    footer_label: str = ""
    sections: List[DocumentSection]


class PerformanceExportData(BaseModel):
    """Everything one export needs: the snapshot, its aggregated batch and the scope."""

    snapshot: EntitySnapshot
    records: Tuple[PerformanceRecord, ...]
    scope: ScopeFilter = ScopeFilter()


class ExportedReport(BaseModel):
    filename: str
    content: bytes
    page_count: int
    insights_available: bool
    warnings: List[str] = Field(default_factory=list)
