import logging

from fpdf import FPDF

from app.services.report_layout import (
    CELL_PADDING,
    PageGeometry,
    PlacedItem,
    PlacedRow,
    PlacedRule,
    PlacedText,
    ReportLayout,
    line_height,
)

log = logging.getLogger(__name__)

FONT_FAMILY = "Helvetica"


def to_latin1(text: str) -> str:
    """Core PDF fonts only cover Latin-1; anything else becomes '?'."""
    return text.encode("latin-1", "replace").decode("latin-1")


class PerformanceReportPDF(FPDF):
    """Page frame for the performance report; positions come from the layout."""

    def __init__(self, geometry: PageGeometry):
        super().__init__(orientation="P", unit="mm", format=(geometry.width, geometry.height))
        self.set_auto_page_break(False)
        self.set_margins(geometry.margin_left, geometry.margin_top, geometry.margin_right)

    def draw_text(self, item: PlacedText):
        self.set_font(FONT_FAMILY, "B" if item.bold else "", item.font_size)
        self.set_text_color(*item.color)
        for index, line in enumerate(item.lines):
            self.set_xy(item.x, item.y + index * item.line_height)
            self.cell(item.width, item.line_height, to_latin1(line), align=item.align)

    def draw_row(self, row: PlacedRow):
        self.set_draw_color(200, 200, 200)
        self.set_font(FONT_FAMILY, "B" if row.header else "", row.font_size)
        if row.header:
            self.set_text_color(255, 255, 255)
        else:
            self.set_text_color(40, 40, 40)

        step = line_height(row.font_size)
        x = row.x
        for width, lines in zip(row.widths, row.cells):
            if row.fill:
                self.set_fill_color(*row.fill)
                self.rect(x, row.y, width, row.height, style="DF")
            else:
                self.rect(x, row.y, width, row.height, style="D")
            for index, line in enumerate(lines):
                self.set_xy(x + CELL_PADDING, row.y + CELL_PADDING + index * step)
                self.cell(width - 2 * CELL_PADDING, step, to_latin1(line))
            x += width

    def draw_rule(self, rule: PlacedRule):
        self.set_draw_color(60, 60, 60)
        self.line(rule.x, rule.y, rule.x + rule.width, rule.y)

    def draw(self, item: PlacedItem):
        if isinstance(item, PlacedText):
            self.draw_text(item)
        elif isinstance(item, PlacedRow):
            self.draw_row(item)
        elif isinstance(item, PlacedRule):
            self.draw_rule(item)


class PdfRenderer:
    """Turns a paginated layout into PDF bytes with fpdf2."""

    def render(self, layout: ReportLayout) -> bytes:
        pdf = PerformanceReportPDF(layout.geometry)
        pdf.set_title(to_latin1(layout.title))
        pdf.set_creator("DevPerf")

        for page in layout.pages:
            pdf.add_page()
            for item in page.items:
                pdf.draw(item)
            for item in page.footer:
                pdf.draw(item)

        content = bytes(pdf.output())
        log.debug(f"Rendered {layout.page_count} pages, {len(content)} bytes")
        return content
