"""
Greedy pagination of a ReportDocument into positioned items.

Every block is measured first and then placed with a fits-or-breaks rule:
if it does not fit into the space left on the current page, exactly one
page break is emitted before it. Tables are split between rows and repeat
their header row on the continuation page. A block that does not fit even
on an empty page is clipped and reported as RenderOverflow.

The Paginator is created per document, so concurrent exports never share
a cursor or a page buffer.
"""
import logging
import textwrap
import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from app.schemas.report import (
    RGB,
    DocumentSection,
    InsightBlock,
    ReportDocument,
    ReportSection,
    TableBlock,
    TextBlock,
)
from app.services.errors import RenderOverflow

log = logging.getLogger(__name__)

PT_TO_MM = 0.3528
CELL_PADDING = 1.5

HEADER_FILL: RGB = (66, 139, 202)
ALT_ROW_FILL: RGB = (245, 245, 245)

SEVERITY_COLORS = {
    "high": (220, 53, 69),
    "medium": (255, 152, 0),
    "low": (40, 167, 69),
}


@dataclass(frozen=True)
class PageGeometry:
    """A4 portrait in millimetres."""

    width: float = 210.0
    height: float = 297.0
    margin_top: float = 20.0
    margin_bottom: float = 20.0
    margin_left: float = 15.0
    margin_right: float = 15.0
    footer_offset: float = 10.0

    @property
    def content_width(self) -> float:
        return self.width - self.margin_left - self.margin_right

    @property
    def bottom(self) -> float:
        return self.height - self.margin_bottom

    @property
    def usable_height(self) -> float:
        return self.bottom - self.margin_top


def line_height(font_size: float) -> float:
    return font_size * PT_TO_MM * 1.5


def wrap_text(text: str, width: float, font_size: float) -> List[str]:
    """Wrap by an average Helvetica glyph width; good enough to measure blocks."""
    char_width = font_size * PT_TO_MM * 0.5
    max_chars = max(1, int(width / char_width))
    lines: List[str] = []
    for paragraph in text.splitlines() or [""]:
        lines.extend(textwrap.wrap(paragraph, max_chars) or [""])
    return lines


@dataclass
class PlacedText:
    x: float
    y: float
    width: float
    lines: List[str]
    font_size: float
    bold: bool = False
    color: RGB = (60, 60, 60)
    align: str = "L"

    @property
    def line_height(self) -> float:
        return line_height(self.font_size)


@dataclass
class PlacedRow:
    x: float
    y: float
    widths: List[float]
    cells: List[List[str]]
    height: float
    font_size: float
    header: bool = False
    fill: Optional[RGB] = None


@dataclass
class PlacedRule:
    x: float
    y: float
    width: float


PlacedItem = Union[PlacedText, PlacedRow, PlacedRule]


@dataclass
class Page:
    number: int
    items: List[PlacedItem] = field(default_factory=list)
    footer: List[PlacedText] = field(default_factory=list)


@dataclass
class ReportLayout:
    title: str
    geometry: PageGeometry
    pages: List[Page]
    warnings: List[str] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)


@dataclass
class _Segment:
    lines: List[str]
    font_size: float
    bold: bool = False
    color: RGB = (60, 60, 60)
    align: str = "L"
    indent: float = 0.0

    @property
    def height(self) -> float:
        return len(self.lines) * line_height(self.font_size)


class Paginator:
    def __init__(self, geometry: PageGeometry):
        self.geometry = geometry
        self.pages: List[Page] = []
        self.warnings: List[str] = []
        self.cursor_y = geometry.margin_top
        self.new_page()

    @property
    def page(self) -> Page:
        return self.pages[-1]

    @property
    def at_top(self) -> bool:
        return self.cursor_y <= self.geometry.margin_top

    def new_page(self) -> Page:
        self.pages.append(Page(number=len(self.pages) + 1))
        self.cursor_y = self.geometry.margin_top
        return self.page

    def fits(self, height: float) -> bool:
        return self.cursor_y + height <= self.geometry.bottom

    def ensure(self, height: float) -> None:
        """Break once if height does not fit and the page already has content."""
        if not self.fits(height) and not self.at_top:
            self.new_page()

    def reserve(
        self, height: float, label: str, allow_break: bool = True
    ) -> Tuple[float, float]:
        """
        Claim vertical space for an undividable block.

        Returns (y, granted_height). granted_height is smaller than height
        only when the block is taller than a whole page.
        """
        if allow_break:
            self.ensure(height)
        available = self.geometry.bottom - self.cursor_y
        if height > available:
            self.overflow(label, height, available)
            height = available
        y = self.cursor_y
        self.cursor_y += height
        return y, height

    def advance(self, gap: float) -> None:
        self.cursor_y = min(self.cursor_y + gap, self.geometry.bottom)

    def overflow(self, label: str, height: float, available: float) -> None:
        message = (
            f"{label} is {height:.1f}mm tall but only {available:.1f}mm fit on "
            f"page {self.page.number}; content was clipped"
        )
        log.warning(f"Render overflow: {message}")
        warnings.warn(message, RenderOverflow, stacklevel=3)
        self.warnings.append(message)

    def place(self, item: PlacedItem) -> None:
        self.page.items.append(item)


def _clip_segments(segments: Sequence[_Segment], height: float) -> List[_Segment]:
    clipped = []
    remaining = height
    for segment in segments:
        step = line_height(segment.font_size)
        keep = min(len(segment.lines), int(remaining // step))
        if keep <= 0:
            break
        clipped.append(
            _Segment(
                segment.lines[:keep],
                segment.font_size,
                segment.bold,
                segment.color,
                segment.align,
                segment.indent,
            )
        )
        remaining -= keep * step
    return clipped


class ReportLayoutEngine:
    def __init__(self, geometry: PageGeometry = PageGeometry()):
        self.geometry = geometry

    # --- measurement ---

    def _text_segment(self, block: TextBlock) -> _Segment:
        width = self.geometry.content_width - block.indent
        return _Segment(
            wrap_text(block.text, width, block.font_size),
            block.font_size,
            block.bold,
            block.color,
            block.align,
            block.indent,
        )

    def _insight_segments(self, block: InsightBlock) -> List[_Segment]:
        insight = block.insight
        width = self.geometry.content_width - 4
        segments = [
            _Segment(
                wrap_text(f"[{insight.severity.upper()}] {insight.title}", width, 10),
                10,
                bold=True,
                color=SEVERITY_COLORS.get(insight.severity, (60, 60, 60)),
                indent=2,
            ),
            _Segment(wrap_text(insight.description, width, 9), 9, indent=4),
        ]
        if insight.recommendation:
            segments.append(
                _Segment(
                    wrap_text(f"Recommendation: {insight.recommendation}", width, 9),
                    9,
                    color=(40, 40, 40),
                    indent=4,
                )
            )
        for point in insight.data_points or []:
            segments.append(
                _Segment(wrap_text(f"- {point}", width - 4, 8), 8, color=(100, 100, 100), indent=8)
            )
        return segments

    def _column_widths(self, block: TableBlock) -> List[float]:
        weights = block.column_widths or [1.0] * len(block.headers)
        total = sum(weights)
        return [self.geometry.content_width * w / total for w in weights]

    def _measure_row(
        self, cells: Sequence[str], widths: Sequence[float], font_size: float
    ) -> Tuple[List[List[str]], float]:
        wrapped = [
            wrap_text(str(cell), max(1.0, width - 2 * CELL_PADDING), font_size)
            for cell, width in zip(cells, widths)
        ]
        tallest = max((len(lines) for lines in wrapped), default=1)
        return wrapped, tallest * line_height(font_size) + 2 * CELL_PADDING

    def _block_min_height(self, block) -> float:
        """Height that must follow a section title so the title is not orphaned."""
        if isinstance(block, TextBlock):
            return line_height(block.font_size)
        if isinstance(block, TableBlock):
            widths = self._column_widths(block)
            _, header_h = self._measure_row(block.headers, widths, block.font_size + 1)
            first_h = 0.0
            if block.rows:
                _, first_h = self._measure_row(block.rows[0], widths, block.font_size)
            return header_h + first_h
        return sum(s.height for s in self._insight_segments(block))

    # --- placement ---

    def _place_segments(self, paginator: Paginator, segments: List[_Segment], label: str) -> None:
        height = sum(s.height for s in segments)
        y, granted = paginator.reserve(height, label)
        if granted < height:
            segments = _clip_segments(segments, granted)
        for segment in segments:
            paginator.place(
                PlacedText(
                    x=self.geometry.margin_left + segment.indent,
                    y=y,
                    width=self.geometry.content_width - segment.indent,
                    lines=segment.lines,
                    font_size=segment.font_size,
                    bold=segment.bold,
                    color=segment.color,
                    align=segment.align,
                )
            )
            y += segment.height

    def _place_table(self, paginator: Paginator, block: TableBlock, label: str) -> None:
        widths = self._column_widths(block)
        header_font = block.font_size + 1
        header_cells, header_h = self._measure_row(block.headers, widths, header_font)
        rows = [self._measure_row(row, widths, block.font_size) for row in block.rows]

        def place_header() -> None:
            y, height = paginator.reserve(header_h, f"{label} header")
            paginator.place(
                PlacedRow(
                    x=self.geometry.margin_left,
                    y=y,
                    widths=widths,
                    cells=header_cells,
                    height=height,
                    font_size=header_font,
                    header=True,
                    fill=HEADER_FILL,
                )
            )

        paginator.ensure(header_h + (rows[0][1] if rows else 0))
        place_header()
        rows_on_page = 0
        for index, (cells, row_h) in enumerate(rows):
            if rows_on_page and not paginator.fits(row_h):
                paginator.new_page()
                place_header()
                rows_on_page = 0
            y, height = paginator.reserve(
                row_h, f"{label} row {index + 1}", allow_break=False
            )
            rows_on_page += 1
            if height < row_h:
                max_lines = max(1, int((height - 2 * CELL_PADDING) // line_height(block.font_size)))
                cells = [lines[:max_lines] for lines in cells]
            paginator.place(
                PlacedRow(
                    x=self.geometry.margin_left,
                    y=y,
                    widths=widths,
                    cells=cells,
                    height=height,
                    font_size=block.font_size,
                    fill=ALT_ROW_FILL if index % 2 else None,
                )
            )

    def _place_title(self, paginator: Paginator, section: DocumentSection) -> None:
        segment = _Segment(
            wrap_text(section.title, self.geometry.content_width, 14), 14, bold=True, color=(40, 40, 40)
        )
        follow = self._block_min_height(section.blocks[0]) if section.blocks else 0.0
        paginator.ensure(segment.height + 2 + follow)
        self._place_segments(paginator, [segment], f"{section.kind.value} title")
        paginator.advance(2)

    def _place_section(self, paginator: Paginator, section: DocumentSection) -> None:
        if section.title:
            self._place_title(paginator, section)
        for index, block in enumerate(section.blocks):
            label = f"{section.kind.value} block {index + 1}"
            if isinstance(block, TextBlock):
                self._place_segments(paginator, [self._text_segment(block)], label)
            elif isinstance(block, TableBlock):
                self._place_table(paginator, block, label)
            else:
                self._place_segments(paginator, self._insight_segments(block), label)
            paginator.advance(block.space_after)

        if section.kind == ReportSection.HEADER:
            y, _ = paginator.reserve(0, "header rule")
            paginator.place(PlacedRule(self.geometry.margin_left, y, self.geometry.content_width))
            paginator.advance(6)
        elif section.blocks:
            paginator.advance(4)

    def _stamp_footers(self, pages: List[Page], label: str) -> None:
        total = len(pages)
        y = self.geometry.height - self.geometry.footer_offset - line_height(8) / 2
        for page in pages:
            page.footer.append(
                PlacedText(
                    x=self.geometry.margin_left,
                    y=y,
                    width=self.geometry.content_width,
                    lines=[f"Page {page.number} of {total}"],
                    font_size=8,
                    color=(100, 100, 100),
                    align="C",
                )
            )
            if label:
                page.footer.append(
                    PlacedText(
                        x=self.geometry.margin_left,
                        y=y,
                        width=self.geometry.content_width,
                        lines=[label],
                        font_size=8,
                        color=(100, 100, 100),
                        align="L",
                    )
                )

    def paginate(self, document: ReportDocument) -> ReportLayout:
        paginator = Paginator(self.geometry)
        for section in document.sections:
            if section.kind == ReportSection.FOOTER:
                # Needs the final page count, stamped below.
                continue
            self._place_section(paginator, section)
        self._stamp_footers(paginator.pages, document.footer_label)
        log.debug(f"Paginated '{document.title}' into {len(paginator.pages)} pages")
        return ReportLayout(
            title=document.title,
            geometry=self.geometry,
            pages=paginator.pages,
            warnings=list(paginator.warnings),
        )
