"""Pagination controller for the progress report.

Drives the layout engine over a stream of blocks in a single pass: before a
block is placed its required height is checked against the page body limit,
and when it does not fit the current page is closed with a footer and a new
one is opened. Tables are continued under a re-emitted header.
"""
from enum import Enum
from typing import Iterable, List, Optional

from progress_reports.core.logging import get_logger
from progress_reports.domain.document import (
    Footer,
    Page,
    PlacedBlock,
    TableHeader,
    TableRow,
)
from progress_reports.services.layout import LayoutEngine, Measurement, table_row_height

logger = get_logger(__name__)


class LayoutError(RuntimeError):
    """Blocks arrived in an order the report layout cannot express."""


class PaginationState(str, Enum):
    HEADING = "heading"
    SUMMARY = "summary"
    TABLE_HEADER = "table_header"
    TABLE_BODY = "table_body"
    CLOSING = "closing"
    DONE = "done"


_STATE_FOR_KIND = {
    "title": PaginationState.HEADING,
    "section_heading": PaginationState.HEADING,
    "notice": PaginationState.HEADING,
    "summary_row": PaginationState.SUMMARY,
    "table_header": PaginationState.TABLE_HEADER,
    "table_row": PaginationState.TABLE_BODY,
    "closing": PaginationState.CLOSING,
}

_TRANSITIONS = {
    PaginationState.HEADING: {
        PaginationState.HEADING, PaginationState.SUMMARY,
        PaginationState.TABLE_HEADER, PaginationState.CLOSING,
    },
    PaginationState.SUMMARY: {
        PaginationState.SUMMARY, PaginationState.HEADING,
        PaginationState.TABLE_HEADER, PaginationState.CLOSING,
    },
    PaginationState.TABLE_HEADER: {
        PaginationState.TABLE_BODY, PaginationState.HEADING, PaginationState.CLOSING,
    },
    PaginationState.TABLE_BODY: {
        PaginationState.TABLE_BODY, PaginationState.HEADING,
        PaginationState.TABLE_HEADER, PaginationState.CLOSING,
    },
    PaginationState.CLOSING: {PaginationState.DONE},
    PaginationState.DONE: set(),
}


class PaginationController:
    """Owns page and cursor state for one generation pass.

    Usage:
        controller = PaginationController(LayoutEngine(), generated_on="10/19/2026",
                                          product_name="FreeLearning Platform")
        pages = controller.run(blocks)
    """

    def __init__(
        self,
        engine: LayoutEngine,
        generated_on: str,
        product_name: str,
    ):
        self.engine = engine
        self.geometry = engine.geometry
        self.generated_on = generated_on
        self.product_name = product_name
        self.state = PaginationState.HEADING
        self.pages: List[Page] = [Page(number=1, cursor_y=self.geometry.top)]
        self._header: Optional[TableHeader] = None
        self._row_position = 0

    @property
    def page(self) -> Page:
        return self.pages[-1]

    def run(self, blocks: Iterable) -> List[Page]:
        """Place every block and close the last page."""
        for block in blocks:
            self.add(block)
        return self.finish()

    def add(self, block) -> None:
        if self.state is PaginationState.DONE:
            raise LayoutError("Cannot add blocks to a finished document")

        if block.kind == "spacer":
            self.page.cursor_y += block.height
            return

        self._transition(block)
        m = self.engine.measure(block)

        if block.kind == "table_row" and self._exceeds_fresh_page(m):
            self._place_split_row(block, m)
            return

        if self._overflows(m.required):
            if self.page.is_blank:
                logger.warning(
                    f"{block.kind} block needs {m.required:.1f}pt, more than a full page body; "
                    "placing it unsplit",
                    extra={"page_number": self.page.number},
                )
            else:
                self._break_page(continue_table=block.kind == "table_row")

        self._place(block, m)

    def finish(self) -> List[Page]:
        """Footer the last page; the controller accepts no blocks afterwards."""
        if self.state is not PaginationState.DONE:
            self._close_page()
            self.state = PaginationState.DONE
        logger.debug(f"Pagination finished with {len(self.pages)} page(s)",
                     extra={"page_count": len(self.pages)})
        return self.pages

    # ----------------
    # STATE MACHINE
    # ----------------

    def _transition(self, block) -> None:
        target = _STATE_FOR_KIND.get(block.kind)
        if target is None:
            raise LayoutError(f"Block kind '{block.kind}' cannot be paginated")
        if target not in _TRANSITIONS[self.state]:
            raise LayoutError(f"Unexpected {block.kind} while in {self.state.value} state")

        if target is PaginationState.TABLE_HEADER:
            self._header = block
            self._row_position = 0
        elif target is PaginationState.TABLE_BODY:
            if self._header is None or self._header.table_id != block.table_id:
                raise LayoutError(f"Row for table '{block.table_id}' has no header")
        else:
            self._header = None
        self.state = target

    # ----------------
    # PAGE ACCOUNTING
    # ----------------

    def _overflows(self, required: float) -> bool:
        return self.page.cursor_y + required > self.geometry.body_limit

    def _exceeds_fresh_page(self, m: Measurement) -> bool:
        """True when a row would not fit even directly under a fresh header."""
        top = self.geometry.top + self.engine.measure(self._header).advance
        return top + m.required > self.geometry.body_limit

    def _place(self, block, m: Measurement, repeated: bool = False) -> None:
        shaded = False
        if block.kind == "table_row":
            shaded = self._row_position % 2 == 1
            if not block.continued:
                self._row_position += 1
        self.page.items.append(PlacedBlock(
            block=block,
            y=self.page.cursor_y,
            height=m.height,
            lines=m.lines,
            shaded=shaded,
            repeated=repeated,
        ))
        self.page.cursor_y += m.advance

    def _close_page(self) -> None:
        self.page.footer = Footer(
            page_number=self.page.number,
            generated_on=self.generated_on,
            product_name=self.product_name,
        )

    def _break_page(self, continue_table: bool) -> None:
        self._close_page()
        number = self.page.number + 1
        self.pages.append(Page(number=number, cursor_y=self.geometry.top))
        logger.debug(f"Page break, starting page {number}", extra={"page_number": number})
        if continue_table and self._header is not None:
            self._place(self._header, self.engine.measure(self._header), repeated=True)

    def _detach_table_lead(self) -> List[PlacedBlock]:
        """Lift a freshly placed header, and the heading above it, off the page.

        Returns the lifted items in page order; empty once the table already
        has rows on this page.
        """
        last = self.page.items[-1]
        if last.block.kind != "table_header" or last.repeated:
            return []
        carried = [self.page.items.pop()]
        if self.page.items and self.page.items[-1].block.kind == "section_heading":
            carried.insert(0, self.page.items.pop())
        self.page.cursor_y = carried[0].y
        return carried

    def _place_split_row(self, row: TableRow, m: Measurement) -> None:
        """Spread a row taller than a page body over as many pages as it needs.

        The row starts at the top of a page directly under its table header;
        every following fragment continues on the next page under a repeated
        header and is marked ``continued``.
        """
        logger.warning(
            f"Row for record {row.record_index} is {m.height:.1f}pt tall; splitting across pages",
            extra={"page_number": self.page.number},
        )
        if not all(item.block.kind == "table_header" for item in self.page.items):
            carried = self._detach_table_lead()
            if not self.page.is_blank:
                self._break_page(continue_table=not carried)
            for item in carried:
                self._place(item.block, self.engine.measure(item.block))

        total = max(len(cell) for cell in m.lines)
        start = 0
        fragment = row
        shaded = self._row_position % 2 == 1
        while start < total:
            capacity = self.engine.row_capacity(self.page.cursor_y)
            if capacity < 1:
                if self.page.is_blank:
                    raise LayoutError("Page body too short to hold a single table line")
                self._break_page(continue_table=True)
                continue
            chunk = [cell[start:start + capacity] for cell in m.lines]
            height = table_row_height(max(len(cell) for cell in chunk))
            self.page.items.append(PlacedBlock(
                block=fragment,
                y=self.page.cursor_y,
                height=height,
                lines=chunk,
                shaded=shaded,
            ))
            self.page.cursor_y += height
            start += capacity
            fragment = row.model_copy(update={"continued": True})
            if start < total:
                self._break_page(continue_table=True)
        self._row_position += 1
