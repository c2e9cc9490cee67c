"""Layout engine: measures blocks before they are placed on a page.

Text is wrapped with ReportLab's Helvetica metrics, so the heights computed
here are the heights the canvas writer draws. Coordinates are in PDF points
measured down from the top of the page; the cursor sits on the text baseline
of the block being placed.
"""
import math
from functools import lru_cache
from typing import Dict, List, Sequence

from pydantic import BaseModel, Field
from reportlab.pdfbase.pdfmetrics import stringWidth

from progress_reports.domain.document import (
    A4_PORTRAIT,
    PageGeometry,
    SummaryCard,
    TableColumn,
)

FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

# Title block
TITLE_FONT_SIZE = 22
SUBTITLE_FONT_SIZE = 11
TIMESTAMP_FONT_SIZE = 10
TITLE_HEIGHT = 28 + 16 + 30 + 30

SECTION_FONT_SIZE = 15

# Summary card grid
CARD_GAP = 10
CARD_MIN_HEIGHT = 28
CARD_PADDING = 16
CARD_LABEL_FONT_SIZE = 9
CARD_LABEL_LINE = 10
CARD_VALUE_FONT_SIZE = 13
CARD_VALUE_LINE = 13
CARD_ROW_ADVANCE = 5
CARD_ROW_RESERVE = 10

# Data table
TABLE_FONT_SIZE = 9
TABLE_HEADER_HEIGHT = 18
TABLE_CELL_PADDING = 10
TABLE_LINE_SPACING = 10
TABLE_ROW_PADDING = 8
TABLE_MIN_ROW_HEIGHT = 18
TABLE_ROW_RESERVE = 5

NOTICE_FONT_SIZE = 10
NOTICE_LINE = 12
CLOSING_FONT_SIZE = 10
CLOSING_RESERVE = 50

DETAIL_COLUMNS = [
    TableColumn(label="Date", width=60),
    TableColumn(label="Email", width=95),
    TableColumn(label="Topic", width=110),
    TableColumn(label="Type", width=65),
    TableColumn(label="Score", width=40),
    TableColumn(label="Comments", width=135),
]

TOPIC_COLUMNS = [
    TableColumn(label="Topic", width=255),
    TableColumn(label="Average", width=100),
    TableColumn(label="Mastery", width=150),
]


class Measurement(BaseModel):
    """Space a block needs before it is drawn.

    ``height`` is the drawn extent, ``advance`` how far the cursor moves once
    the block is placed and ``required`` the room that must remain above the
    page body limit for the block to go on the current page.
    """
    height: float
    advance: float
    required: float
    lines: List[List[str]] = Field(default_factory=list)


class Placement(BaseModel):
    height: float
    next_cursor_y: float
    lines: List[List[str]] = Field(default_factory=list)


@lru_cache(maxsize=4096)
def _wrap(text: str, font_name: str, font_size: float, max_width: float) -> tuple:
    lines: List[str] = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if stringWidth(candidate, font_name, font_size) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            # A single word wider than the column is broken across lines
            while len(word) > 1 and stringWidth(word, font_name, font_size) > max_width:
                cut = _fit_prefix(word, font_name, font_size, max_width)
                lines.append(word[:cut])
                word = word[cut:]
            current = word
        lines.append(current)
    return tuple(lines) or ("",)


def _fit_prefix(word: str, font_name: str, font_size: float, max_width: float) -> int:
    """Length of the longest prefix of ``word`` that fits, never less than 1."""
    cut = 1
    while cut < len(word) and stringWidth(word[:cut + 1], font_name, font_size) <= max_width:
        cut += 1
    return cut


def table_row_height(line_count: int) -> float:
    """Row height for the tallest wrapped cell; never below the one-line minimum."""
    return max(TABLE_MIN_ROW_HEIGHT, line_count * TABLE_LINE_SPACING + TABLE_ROW_PADDING)


class LayoutEngine:
    """Measures and places report blocks for one page geometry."""

    def __init__(self, geometry: PageGeometry = A4_PORTRAIT):
        self.geometry = geometry
        # Column layout of each table, registered when its header is measured
        self._columns: Dict[str, List[TableColumn]] = {}

    @property
    def card_width(self) -> float:
        return (self.geometry.content_width - CARD_GAP) / 2

    def measure_text(
        self,
        text: str,
        font_size: float,
        max_width: float,
        font_name: str = FONT_REGULAR,
    ) -> List[str]:
        """Word-wrap ``text`` to ``max_width`` points at the given font size.

        Explicit newlines start new lines; words longer than the width are
        split so that every returned line fits. Always returns at least one
        (possibly empty) line.
        """
        return list(_wrap(str(text or ""), font_name, float(font_size), float(max_width)))

    # ----------------
    # PER-BLOCK MEASUREMENT
    # ----------------

    def measure(self, block) -> Measurement:
        handler = getattr(self, f"_measure_{block.kind}", None)
        if handler is None:
            raise ValueError(f"No layout rule for block kind '{block.kind}'")
        return handler(block)

    def place_block(self, block, cursor_y: float) -> Placement:
        """Height a block occupies and where the cursor lands after it."""
        m = self.measure(block)
        return Placement(height=m.height, next_cursor_y=cursor_y + m.advance, lines=m.lines)

    def _measure_title(self, block) -> Measurement:
        return Measurement(height=TITLE_HEIGHT, advance=TITLE_HEIGHT, required=TITLE_HEIGHT)

    def _measure_section_heading(self, block) -> Measurement:
        return Measurement(
            height=block.space_after,
            advance=block.space_after,
            required=max(block.space_after, block.keep_with_next),
        )

    def _measure_summary_row(self, block) -> Measurement:
        lines = []
        row_height = CARD_MIN_HEIGHT
        for card in block.cards:
            label_lines, value_lines, height = self.measure_card(card)
            lines.extend([label_lines, value_lines])
            row_height = max(row_height, height)
        return Measurement(
            height=row_height,
            advance=row_height + CARD_ROW_ADVANCE,
            required=row_height + CARD_ROW_RESERVE,
            lines=lines,
        )

    def measure_card(self, card: SummaryCard):
        """Wrapped label, wrapped value and the card's own height."""
        width = self.card_width - CARD_PADDING
        label_lines = self.measure_text(card.label, CARD_LABEL_FONT_SIZE, width, FONT_BOLD)
        value_lines = self.measure_text(card.value, CARD_VALUE_FONT_SIZE, width, FONT_BOLD)
        height = max(
            CARD_MIN_HEIGHT,
            len(label_lines) * CARD_LABEL_LINE + len(value_lines) * CARD_VALUE_LINE + CARD_PADDING,
        )
        return label_lines, value_lines, height

    def _measure_table_header(self, block) -> Measurement:
        self._columns[block.table_id] = list(block.columns)
        return Measurement(
            height=TABLE_HEADER_HEIGHT,
            advance=TABLE_HEADER_HEIGHT,
            # Keep at least one single-line row under the header
            required=TABLE_HEADER_HEIGHT + TABLE_MIN_ROW_HEIGHT + TABLE_ROW_RESERVE,
            lines=[[c.label] for c in block.columns],
        )

    def wrap_cells(self, cells: Sequence[str], columns: Sequence[TableColumn]) -> List[List[str]]:
        return [
            self.measure_text(text, TABLE_FONT_SIZE, column.width - TABLE_CELL_PADDING)
            for text, column in zip(cells, columns)
        ]

    def measure_row(self, cells: Sequence[str], columns: Sequence[TableColumn]) -> Measurement:
        lines = self.wrap_cells(cells, columns)
        height = table_row_height(max((len(cell) for cell in lines), default=1))
        return Measurement(height=height, advance=height, required=height + TABLE_ROW_RESERVE, lines=lines)

    def _measure_table_row(self, block) -> Measurement:
        columns = self._columns.get(block.table_id)
        if columns is None:
            raise ValueError(f"Row for table '{block.table_id}' measured before its header")
        return self.measure_row(block.cells, columns)

    def row_capacity(self, cursor_y: float) -> int:
        """Wrapped lines of a row that still fit between the cursor and the body limit."""
        room = self.geometry.body_limit - cursor_y - TABLE_ROW_RESERVE - TABLE_ROW_PADDING
        return max(0, math.floor(room / TABLE_LINE_SPACING))

    def _measure_notice(self, block) -> Measurement:
        lines = self.measure_text(block.text, NOTICE_FONT_SIZE, self.geometry.content_width)
        height = len(lines) * NOTICE_LINE + 8
        return Measurement(height=height, advance=height, required=height, lines=[lines])

    def _measure_spacer(self, block) -> Measurement:
        return Measurement(height=block.height, advance=block.height, required=0)

    def _measure_closing(self, block) -> Measurement:
        return Measurement(height=CLOSING_FONT_SIZE, advance=CLOSING_FONT_SIZE, required=CLOSING_RESERVE)
