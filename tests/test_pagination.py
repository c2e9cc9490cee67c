"""Unit tests for page-break accounting and table continuation."""
import pytest

from progress_reports.domain.document import (
    ClosingBlock,
    NoticeBlock,
    PageGeometry,
    SectionHeading,
    SpacerBlock,
    TableHeader,
    TableRow,
    TitleBlock,
)
from progress_reports.services.layout import DETAIL_COLUMNS, LayoutEngine
from progress_reports.services.pagination import LayoutError, PaginationController


def make_controller(geometry=None):
    engine = LayoutEngine(geometry or PageGeometry())
    return PaginationController(engine, generated_on="10/15/2024", product_name="FreeLearning Platform")


def short_rows(count, table_id="records"):
    return [
        TableRow(table_id=table_id, cells=[str(i), "a@b.c", "HCI", "Usability", "80%", ""], record_index=i)
        for i in range(count)
    ]


def header(table_id="records"):
    return TableHeader(table_id=table_id, columns=DETAIL_COLUMNS)


class TestTableContinuation:
    """Test overflow of a long table onto further pages."""

    def test_fifty_rows_break_after_row_39(self):
        """Rows 1-39 fit page 1; page 2 opens with the header then rows 40-50."""
        controller = make_controller(PageGeometry(top=40))
        pages = controller.run([header()] + short_rows(50))

        assert len(pages) == 2
        assert [r.record_index for r in pages[0].table_rows] == list(range(39))
        assert [r.record_index for r in pages[1].table_rows] == list(range(39, 50))

        first = pages[1].items[0]
        assert first.block.kind == "table_header"
        assert first.repeated is True
        assert first.y == 40
        assert pages[0].footer.page_number == 1
        assert pages[1].footer.page_number == 2

    def test_every_row_placed_once(self):
        """Test no row is dropped or duplicated across many pages."""
        pages = make_controller().run([header()] + short_rows(300))
        indices = [r.record_index for page in pages for r in page.table_rows if not r.continued]
        assert indices == list(range(300))
        assert len(pages) > 5

    def test_pages_with_rows_start_with_header(self):
        """Test table content on each page is introduced by a header."""
        pages = make_controller().run(
            [TitleBlock(title="T", subtitle="S", generated_at="now"), header()] + short_rows(200)
        )
        for page in pages:
            kinds = [item.block.kind for item in page.items]
            if "table_row" in kinds:
                assert kinds.index("table_header") < kinds.index("table_row")
        for page in pages[1:]:
            assert page.items[0].block.kind == "table_header"

    def test_rows_stay_within_body(self):
        """Test nothing is placed below the page body limit."""
        controller = make_controller()
        limit = controller.geometry.body_limit
        pages = controller.run([header()] + short_rows(120))
        for page in pages:
            for item in page.items:
                assert item.y + item.height <= limit

    def test_alternate_row_shading(self):
        pages = make_controller().run([header()] + short_rows(4))
        rows = [item for item in pages[0].items if item.block.kind == "table_row"]
        assert [item.shaded for item in rows] == [False, True, False, True]


class TestBreakRules:
    """Test keep-with-next and reserved space rules."""

    def test_heading_keeps_with_table(self):
        """Test a heading near the bottom moves to the next page."""
        controller = make_controller()
        controller.add(TitleBlock(title="T", subtitle="S", generated_at="now"))
        controller.add(SpacerBlock(height=controller.geometry.body_limit - controller.page.cursor_y - 100))
        controller.add(SectionHeading(text="Detailed Progress Records", space_after=25, keep_with_next=120))
        assert controller.page.number == 2
        assert controller.page.items[0].block.kind == "section_heading"

    def test_closing_needs_reserve(self):
        """Test the closing line moves to a new page when under 50pt remain."""
        controller = make_controller()
        controller.add(TitleBlock(title="T", subtitle="S", generated_at="now"))
        controller.add(SpacerBlock(height=controller.geometry.body_limit - controller.page.cursor_y - 40))
        controller.add(ClosingBlock())
        pages = controller.finish()
        assert len(pages) == 2
        assert pages[1].blocks[0].kind == "closing"
        assert pages[1].blocks[-1].kind == "footer"

    def test_notice_replaces_table(self):
        pages = make_controller().run([
            SectionHeading(text="Detailed Progress Records", space_after=25),
            NoticeBlock(text="No data."),
            ClosingBlock(),
        ])
        assert len(pages) == 1
        assert [b.kind for b in pages[0].blocks] == ["section_heading", "notice", "closing", "footer"]


class TestOversizedRows:
    """Test rows taller than a whole page body."""

    def _tall_row(self, index=1, lines=150):
        notes = "\n".join(f"line {n}" for n in range(lines))
        return TableRow(table_id="records", cells=["d", "e", "t", "y", "s", notes], record_index=index)

    def test_row_split_across_pages(self):
        """Test an oversized row continues under repeated headers."""
        pages = make_controller().run([header()] + short_rows(1) + [self._tall_row()])

        assert len(pages) == 4
        fragments = [item for page in pages[1:] for item in page.items if item.block.kind == "table_row"]
        assert [f.block.continued for f in fragments] == [False, True, True]
        assert all(f.block.record_index == 1 for f in fragments)
        assert [line for f in fragments for line in f.lines[5]] == [f"line {n}" for n in range(150)]
        for page in pages[1:]:
            assert page.items[0].block.kind == "table_header"

    def test_heading_moves_with_split_row(self):
        """Test the section heading follows its header onto the split row's page."""
        heading = SectionHeading(text="Detailed Progress Records", space_after=25, keep_with_next=120)
        pages = make_controller().run(
            [TitleBlock(title="T", subtitle="S", generated_at="now"), heading, header(), self._tall_row(0)]
        )

        assert [item.block.kind for item in pages[0].items] == ["title"]
        lead = pages[1].items[:3]
        assert [item.block.kind for item in lead] == ["section_heading", "table_header", "table_row"]
        assert lead[0].y == make_controller().geometry.top
        assert lead[1].repeated is False
        assert lead[2].block.continued is False
        for page in pages[2:]:
            assert page.items[0].block.kind == "table_header"
            assert page.items[0].repeated is True

    def test_heading_at_page_top_not_duplicated(self):
        """Test a heading already at the top of a page stays there without a blank page."""
        heading = SectionHeading(text="Detailed Progress Records", space_after=25, keep_with_next=120)
        pages = make_controller().run([heading, header(), self._tall_row(0)])

        assert [item.block.kind for item in pages[0].items[:3]] == [
            "section_heading", "table_header", "table_row",
        ]
        headings = [item for page in pages for item in page.items if item.block.kind == "section_heading"]
        assert len(headings) == 1

    def test_split_row_counts_once(self):
        pages = make_controller().run([header()] + short_rows(3) + [self._tall_row(3)] + short_rows(2))
        indices = [r.record_index for page in pages for r in page.table_rows if not r.continued]
        assert sorted(indices) == [0, 0, 1, 1, 2, 3]

    def test_following_rows_continue_after_split(self):
        pages = make_controller().run([header(), self._tall_row(0)] + short_rows(1))
        last = pages[-1].table_rows
        assert last[-1].record_index == 0
        assert last[-1].continued is False


class TestStateMachine:
    """Test block ordering rules."""

    def test_row_without_header(self):
        with pytest.raises(LayoutError):
            make_controller().add(short_rows(1)[0])

    def test_no_blocks_after_finish(self):
        controller = make_controller()
        controller.finish()
        with pytest.raises(LayoutError):
            controller.add(SectionHeading(text="Late"))

    def test_empty_document_has_one_footed_page(self):
        pages = make_controller().finish()
        assert len(pages) == 1
        assert pages[0].footer.page_number == 1
        assert pages[0].footer.generated_on == "10/15/2024"
