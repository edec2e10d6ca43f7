"""Tests for report composition, pagination and PDF export."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.schemas.insight import AnalysisResponse, Insight
from app.schemas.performance import ScopeFilter
from app.schemas.report import (
    SECTION_ORDER,
    DocumentSection,
    PerformanceExportData,
    ReportDocument,
    ReportSection,
    TableBlock,
    TextBlock,
)
from app.services.aggregation import aggregate_snapshot
from app.services.errors import EmptyDatasetError, RenderOverflow
from app.services.insight_gateway import InsightGateway
from app.services.metrics import compute_metrics
from app.services.pdf_renderer import PdfRenderer, to_latin1
from app.services.report_assembler import (
    INSIGHTS_UNAVAILABLE_NOTICE,
    ReportAssembler,
    build_report_filename,
)
from app.services.report_layout import (
    PageGeometry,
    Paginator,
    PlacedRow,
    PlacedText,
    ReportLayoutEngine,
)

GENERATED_AT = datetime(2024, 4, 2, 9, 30)


def _texts(layout):
    lines = []
    for page in layout.pages:
        for item in page.items:
            if isinstance(item, PlacedText):
                lines.extend(item.lines)
            elif isinstance(item, PlacedRow):
                for cell in item.cells:
                    lines.extend(cell)
    return "\n".join(lines)


def _gateway(response=None, side_effect=None, timeout=5.0):
    client = AsyncMock()
    if side_effect is not None:
        client.analyze.side_effect = side_effect
    else:
        client.analyze.return_value = response
    return InsightGateway(client, timeout=timeout)


@pytest.fixture
def export_data(snapshot):
    return PerformanceExportData(snapshot=snapshot, records=aggregate_snapshot(snapshot))


@pytest.fixture
def capturing_renderer():
    renderer = MagicMock()
    renderer.render.return_value = b"%PDF-fake"
    return renderer


class TestPaginator:
    """Greedy fits-or-breaks placement."""

    def test_block_that_fits_does_not_break(self):
        paginator = Paginator(PageGeometry())

        paginator.reserve(100, "block")

        assert len(paginator.pages) == 1

    def test_block_exceeding_remaining_space_breaks_exactly_once(self):
        geometry = PageGeometry()
        paginator = Paginator(geometry)
        paginator.reserve(200, "first")

        y, height = paginator.reserve(100, "second")

        assert len(paginator.pages) == 2
        assert y == geometry.margin_top
        assert height == 100

    def test_taller_than_page_breaks_once_then_clips(self):
        geometry = PageGeometry()
        paginator = Paginator(geometry)
        paginator.reserve(10, "intro")

        with pytest.warns(RenderOverflow):
            y, height = paginator.reserve(geometry.usable_height + 50, "huge")

        assert len(paginator.pages) == 2
        assert height == pytest.approx(geometry.usable_height)
        assert len(paginator.warnings) == 1

    def test_no_break_on_empty_page(self):
        paginator = Paginator(PageGeometry())

        with pytest.warns(RenderOverflow):
            paginator.reserve(PageGeometry().usable_height + 1, "huge")

        assert len(paginator.pages) == 1


class TestLayoutEngine:
    def _document(self, *sections):
        return ReportDocument(title="Test", sections=list(sections))

    def test_table_repeats_header_on_continuation(self):
        table = TableBlock(
            headers=["Name", "Value"],
            rows=[[f"row {i}", str(i)] for i in range(120)],
            column_widths=[2, 1],
        )
        layout = ReportLayoutEngine().paginate(
            self._document(DocumentSection(kind=ReportSection.METRICS_TABLE, title="Big", blocks=[table]))
        )

        assert layout.page_count > 1
        for page in layout.pages:
            rows = [i for i in page.items if isinstance(i, PlacedRow)]
            assert rows[0].header
            assert rows[0].cells == [["Name"], ["Value"]]
        body_rows = [
            i for p in layout.pages for i in p.items if isinstance(i, PlacedRow) and not i.header
        ]
        assert len(body_rows) == 120
        assert not layout.warnings

    def test_rows_stay_inside_page(self):
        geometry = PageGeometry()
        table = TableBlock(
            headers=["A"], rows=[["x"] for _ in range(200)], column_widths=[1]
        )
        layout = ReportLayoutEngine(geometry).paginate(
            self._document(DocumentSection(kind=ReportSection.SPRINT_TABLE, blocks=[table]))
        )

        for page in layout.pages:
            for item in page.items:
                assert item.y + item.height <= geometry.bottom + 1e-6

    def test_footer_page_i_of_n(self):
        blocks = [TextBlock(text=f"Paragraph {i}") for i in range(150)]
        layout = ReportLayoutEngine().paginate(
            self._document(DocumentSection(kind=ReportSection.SUMMARY, blocks=blocks))
        )

        total = layout.page_count
        assert total > 1
        for page in layout.pages:
            assert f"Page {page.number} of {total}" in [l for f in page.footer for l in f.lines]

    def test_oversized_text_block_warns_and_clips(self):
        huge = TextBlock(text="\n".join(f"line {i}" for i in range(400)))
        with pytest.warns(RenderOverflow):
            layout = ReportLayoutEngine().paginate(
                self._document(DocumentSection(kind=ReportSection.SUMMARY, blocks=[huge]))
            )

        assert layout.page_count == 1
        assert len(layout.warnings) == 1
        (placed,) = layout.pages[0].items
        assert 0 < len(placed.lines) < 400

    def test_section_title_kept_with_content(self):
        filler = [TextBlock(text=f"filler {i}") for i in range(32)]
        table = TableBlock(headers=["A"], rows=[["x"]], column_widths=[1])
        layout = ReportLayoutEngine().paginate(
            self._document(
                DocumentSection(kind=ReportSection.SUMMARY, blocks=filler),
                DocumentSection(kind=ReportSection.METRICS_TABLE, title="Key Metrics", blocks=[table]),
            )
        )

        title_page = next(
            p for p in layout.pages for i in p.items
            if isinstance(i, PlacedText) and i.lines == ["Key Metrics"]
        )
        assert any(isinstance(i, PlacedRow) for i in title_page.items)


class TestReportAssembler:
    """Tests for ReportAssembler.export_performance_report."""

    @pytest.mark.asyncio
    async def test_sections_in_order(self, export_data, capturing_renderer):
        assembler = ReportAssembler(
            _gateway(AnalysisResponse(success=True, summary="All good.")),
            renderer=capturing_renderer,
        )

        report = await assembler.export_performance_report(export_data, GENERATED_AT)

        (layout,) = capturing_renderer.render.call_args.args
        text = _texts(layout)
        positions = [
            text.index(title)
            for title in [
                "Developer Performance Report",
                "Executive Summary",
                "Key Metrics",
                "Performance by Developer",
                "Sprint Analysis",
                "Efficiency Ranking",
                "AI Analysis",
            ]
        ]
        assert positions == sorted(positions)
        assert "All good." in text
        assert "Project: Apollo" in text
        assert report.insights_available
        assert report.content == b"%PDF-fake"
        assert report.filename == "performance-report-all-all-2024-04-02.pdf"

    def test_compose_walks_every_section(self, export_data, snapshot):
        metrics = compute_metrics(export_data.records, snapshot.tasks, snapshot.assignments)
        assembler = ReportAssembler(_gateway(AnalysisResponse(success=True)))

        document = assembler.compose(
            export_data, metrics, AnalysisResponse(success=True), GENERATED_AT
        )

        assert [s.kind for s in document.sections] == SECTION_ORDER
        assert document.sections[-1].blocks == []

    @pytest.mark.asyncio
    async def test_gateway_timeout_keeps_tables_and_shows_notice(self, export_data, capturing_renderer):
        async def slow(request):
            await asyncio.sleep(10)

        assembler = ReportAssembler(_gateway(side_effect=slow, timeout=0.01), renderer=capturing_renderer)

        report = await assembler.export_performance_report(export_data, GENERATED_AT)

        (layout,) = capturing_renderer.render.call_args.args
        text = _texts(layout)
        assert not report.insights_available
        assert "Key Metrics" in text
        assert "Performance by Developer" in text
        assert "Sprint Analysis" in text
        assert "Efficiency Ranking" in text
        assert "Alice Smith" in text and "Bob Jones" in text
        assert "AI analysis is currently unavailable." in " ".join(text.split())

    @pytest.mark.asyncio
    async def test_empty_scope_fails_before_drawing(self, snapshot, capturing_renderer):
        client = AsyncMock()
        assembler = ReportAssembler(InsightGateway(client), renderer=capturing_renderer)
        data = PerformanceExportData(snapshot=snapshot, records=(), scope=ScopeFilter())

        with pytest.raises(EmptyDatasetError, match="No data available to export"):
            await assembler.export_performance_report(data, GENERATED_AT)

        client.analyze.assert_not_awaited()
        capturing_renderer.render.assert_not_called()

    @pytest.mark.asyncio
    async def test_filter_with_no_matching_records_is_empty(self, export_data, capturing_renderer):
        assembler = ReportAssembler(_gateway(AnalysisResponse(success=True)), renderer=capturing_renderer)
        data = export_data.model_copy(update={"scope": ScopeFilter(sprint_id=99)})

        with pytest.raises(EmptyDatasetError):
            await assembler.export_performance_report(data, GENERATED_AT)

    @pytest.mark.asyncio
    async def test_insights_rendered(self, export_data, capturing_renderer):
        insight = Insight(
            category="workload",
            severity="high",
            title="Uneven workload",
            description="Alice carries most of the completed work.",
            recommendation="Rebalance assignments.",
            data_points=["Alice: 3 tasks", "Bob: 1 task"],
        )
        assembler = ReportAssembler(
            _gateway(AnalysisResponse(success=True, insights=[insight], summary="Summary.")),
            renderer=capturing_renderer,
        )

        await assembler.export_performance_report(export_data, GENERATED_AT)

        text = _texts(capturing_renderer.render.call_args.args[0])
        assert "[HIGH] Uneven workload" in text
        assert "Recommendation: Rebalance assignments." in text
        assert "- Bob: 1 task" in text
        assert INSIGHTS_UNAVAILABLE_NOTICE.split(".")[0] not in text

    @pytest.mark.asyncio
    async def test_cancellation_aborts_export(self, export_data, capturing_renderer):
        started = asyncio.Event()

        async def hang(request):
            started.set()
            await asyncio.sleep(10)

        assembler = ReportAssembler(_gateway(side_effect=hang, timeout=30), renderer=capturing_renderer)
        task = asyncio.create_task(assembler.export_performance_report(export_data, GENERATED_AT))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        capturing_renderer.render.assert_not_called()

    @pytest.mark.asyncio
    async def test_real_pdf_output(self, export_data):
        assembler = ReportAssembler(
            _gateway(AnalysisResponse(success=True, summary="Résumé – naïve “quotes”")),
            renderer=PdfRenderer(),
        )

        report = await assembler.export_performance_report(
            export_data.model_copy(update={"scope": ScopeFilter(developer_id=1)}), GENERATED_AT
        )

        assert report.content.startswith(b"%PDF")
        assert report.page_count >= 1
        assert report.filename == "performance-report-all-1-2024-04-02.pdf"


class TestHelpers:
    def test_filename_encodes_filters_and_date(self):
        assert (
            build_report_filename(ScopeFilter(sprint_id=3, developer_id=7), GENERATED_AT)
            == "performance-report-3-7-2024-04-02.pdf"
        )

    def test_to_latin1_replaces_unsupported(self):
        assert to_latin1("naïve – ok") == "naïve ? ok"
