"""Document writer: draws paginated blocks onto a fixed-layout backend.

``DocumentWriter`` is the set of drawing primitives the renderer needs; the
ReportLab canvas implementation converts the top-left coordinates used by the
layout into PDF user space. ``render_pages`` maps every placed block to those
primitives.
"""
from io import BytesIO
from typing import Dict, List, Protocol, Sequence, Tuple

from reportlab.lib import colors
from reportlab.pdfgen import canvas

from progress_reports.domain.document import (
    A4_PORTRAIT,
    Page,
    PageGeometry,
    PlacedBlock,
    TableColumn,
)
from progress_reports.services.layout import (
    CARD_GAP,
    CARD_LABEL_FONT_SIZE,
    CARD_LABEL_LINE,
    CARD_VALUE_FONT_SIZE,
    CARD_VALUE_LINE,
    CLOSING_FONT_SIZE,
    FONT_BOLD,
    FONT_REGULAR,
    NOTICE_FONT_SIZE,
    NOTICE_LINE,
    SECTION_FONT_SIZE,
    SUBTITLE_FONT_SIZE,
    TABLE_FONT_SIZE,
    TABLE_LINE_SPACING,
    TIMESTAMP_FONT_SIZE,
    TITLE_FONT_SIZE,
)

RGB = Tuple[int, int, int]

# --- Report palette (navy accent) ---
ACCENT: RGB = (25, 55, 109)
LIGHT_ACCENT: RGB = (240, 243, 248)
BORDER_GRAY: RGB = (200, 200, 200)
TEXT_DARK: RGB = (33, 33, 33)
TEXT_GRAY: RGB = (85, 85, 85)
ROW_SHADE: RGB = (248, 249, 250)
WHITE: RGB = (255, 255, 255)

FOOTER_FONT_SIZE = 9


class DocumentWriter(Protocol):
    """Drawing primitives in top-left page coordinates (points)."""

    def set_font(self, name: str, size: float) -> None: ...

    def set_text_color(self, rgb: RGB) -> None: ...

    def set_fill_color(self, rgb: RGB) -> None: ...

    def set_draw_color(self, rgb: RGB) -> None: ...

    def set_line_width(self, width: float) -> None: ...

    def text(self, text: str, x: float, y: float, align: str = "left") -> None: ...

    def rect(self, x: float, y: float, width: float, height: float,
             fill: bool = False, stroke: bool = True) -> None: ...

    def line(self, x1: float, y1: float, x2: float, y2: float) -> None: ...

    def end_page(self) -> None: ...

    def finish(self) -> bytes: ...


def _rl_color(rgb: RGB):
    return colors.Color(rgb[0] / 255, rgb[1] / 255, rgb[2] / 255)


class CanvasDocumentWriter:
    """DocumentWriter backed by a ReportLab canvas writing to memory."""

    def __init__(self, geometry: PageGeometry = A4_PORTRAIT, title: str = "Progress Report",
                 author: str = ""):
        self.geometry = geometry
        self._buffer = BytesIO()
        self._canvas = canvas.Canvas(self._buffer, pagesize=(geometry.width, geometry.height))
        self._canvas.setTitle(title)
        if author:
            self._canvas.setAuthor(author)
        self._page_open = False

    def _y(self, y: float) -> float:
        return self.geometry.height - y

    def set_font(self, name: str, size: float) -> None:
        self._canvas.setFont(name, size)

    def set_text_color(self, rgb: RGB) -> None:
        self._canvas.setFillColor(_rl_color(rgb))

    def set_fill_color(self, rgb: RGB) -> None:
        self._canvas.setFillColor(_rl_color(rgb))

    def set_draw_color(self, rgb: RGB) -> None:
        self._canvas.setStrokeColor(_rl_color(rgb))

    def set_line_width(self, width: float) -> None:
        self._canvas.setLineWidth(width)

    def text(self, text: str, x: float, y: float, align: str = "left") -> None:
        self._page_open = True
        if align == "center":
            self._canvas.drawCentredString(x, self._y(y), text)
        elif align == "right":
            self._canvas.drawRightString(x, self._y(y), text)
        else:
            self._canvas.drawString(x, self._y(y), text)

    def rect(self, x: float, y: float, width: float, height: float,
             fill: bool = False, stroke: bool = True) -> None:
        self._page_open = True
        self._canvas.rect(x, self._y(y) - height, width, height,
                          stroke=1 if stroke else 0, fill=1 if fill else 0)

    def line(self, x1: float, y1: float, x2: float, y2: float) -> None:
        self._page_open = True
        self._canvas.line(x1, self._y(y1), x2, self._y(y2))

    def end_page(self) -> None:
        self._canvas.showPage()
        self._page_open = False

    def finish(self) -> bytes:
        if self._page_open:
            self._canvas.showPage()
        self._canvas.save()
        return self._buffer.getvalue()


# ----------------
# BLOCK RENDERING
# ----------------

def render_pages(pages: Sequence[Page], writer: DocumentWriter,
                 geometry: PageGeometry = A4_PORTRAIT) -> None:
    """Draw every page, each closed by its footer."""
    columns: Dict[str, List[TableColumn]] = {}
    for page in pages:
        for item in page.items:
            kind = item.block.kind
            if kind == "table_header":
                columns[item.block.table_id] = item.block.columns
            if kind == "table_row":
                draw_table_row(writer, item, geometry, columns[item.block.table_id])
            else:
                _DRAWERS[kind](writer, item, geometry)
        if page.footer is not None:
            draw_footer(writer, page.footer, geometry)
        writer.end_page()


def draw_title(writer: DocumentWriter, item: PlacedBlock, g: PageGeometry) -> None:
    block, y = item.block, item.y
    center = g.width / 2
    writer.set_font(FONT_BOLD, TITLE_FONT_SIZE)
    writer.set_text_color(ACCENT)
    writer.text(block.title, center, y, align="center")

    writer.set_font(FONT_REGULAR, SUBTITLE_FONT_SIZE)
    writer.set_text_color(TEXT_GRAY)
    writer.text(block.subtitle, center, y + 28, align="center")
    writer.set_font(FONT_REGULAR, TIMESTAMP_FONT_SIZE)
    writer.text(f"Report Generated: {block.generated_at}", center, y + 44, align="center")

    writer.set_draw_color(ACCENT)
    writer.set_line_width(2)
    writer.line(g.margin_left, y + 74, g.width - g.margin_right, y + 74)


def draw_section_heading(writer: DocumentWriter, item: PlacedBlock, g: PageGeometry) -> None:
    writer.set_font(FONT_BOLD, SECTION_FONT_SIZE)
    writer.set_text_color(ACCENT)
    writer.text(item.block.text, g.margin_left, item.y)


def draw_summary_row(writer: DocumentWriter, item: PlacedBlock, g: PageGeometry) -> None:
    """Cards in one row share the row height, whatever their own content needs."""
    card_width = (g.content_width - CARD_GAP) / 2
    for index, _card in enumerate(item.block.cards):
        x = g.margin_left + index * (card_width + CARD_GAP)
        top = item.y - 18
        label_lines = item.lines[2 * index]
        value_lines = item.lines[2 * index + 1]

        writer.set_fill_color(LIGHT_ACCENT)
        writer.rect(x, top, card_width, item.height, fill=True, stroke=False)
        writer.set_draw_color(BORDER_GRAY)
        writer.set_line_width(0.5)
        writer.rect(x, top, card_width, item.height)

        writer.set_font(FONT_BOLD, CARD_LABEL_FONT_SIZE)
        writer.set_text_color(TEXT_GRAY)
        for n, line in enumerate(label_lines):
            writer.text(line, x + 8, item.y - 6 + n * CARD_LABEL_LINE)

        writer.set_font(FONT_BOLD, CARD_VALUE_FONT_SIZE)
        writer.set_text_color(ACCENT)
        value_y = item.y - 6 + len(label_lines) * CARD_LABEL_LINE + 4
        for n, line in enumerate(value_lines):
            writer.text(line, x + 8, value_y + n * CARD_VALUE_LINE)


def draw_table_header(writer: DocumentWriter, item: PlacedBlock, g: PageGeometry) -> None:
    y = item.y
    writer.set_font(FONT_BOLD, TABLE_FONT_SIZE)
    writer.set_text_color(WHITE)
    writer.set_fill_color(ACCENT)
    writer.rect(g.margin_left, y - 14, g.content_width, 20, fill=True, stroke=False)
    writer.set_draw_color(ACCENT)
    writer.set_line_width(0.5)
    writer.rect(g.margin_left, y - 14, g.content_width, 20)

    x = g.margin_left
    for column in item.block.columns:
        writer.text(column.label, x + 5, y)
        x += column.width


def draw_table_row(writer: DocumentWriter, item: PlacedBlock, g: PageGeometry,
                   columns: Sequence[TableColumn]) -> None:
    y, height = item.y, item.height
    if item.shaded:
        writer.set_fill_color(ROW_SHADE)
        writer.rect(g.margin_left, y - 12, g.content_width, height, fill=True, stroke=False)

    writer.set_draw_color(BORDER_GRAY)
    writer.set_line_width(0.3)
    writer.rect(g.margin_left, y - 12, g.content_width, height)

    writer.set_font(FONT_REGULAR, TABLE_FONT_SIZE)
    writer.set_text_color(TEXT_DARK)
    x = g.margin_left
    for index, lines in enumerate(item.lines):
        if index > 0:
            writer.line(x, y - 12, x, y - 12 + height)
        for n, line in enumerate(lines):
            writer.text(line, x + 5, y - 3 + n * TABLE_LINE_SPACING)
        x += columns[index].width


def draw_notice(writer: DocumentWriter, item: PlacedBlock, g: PageGeometry) -> None:
    writer.set_font(FONT_REGULAR, NOTICE_FONT_SIZE)
    writer.set_text_color(TEXT_GRAY)
    for n, line in enumerate(item.lines[0] if item.lines else [item.block.text]):
        writer.text(line, g.margin_left, item.y + n * NOTICE_LINE)


def draw_closing(writer: DocumentWriter, item: PlacedBlock, g: PageGeometry) -> None:
    writer.set_font(FONT_REGULAR, CLOSING_FONT_SIZE)
    writer.set_text_color(TEXT_GRAY)
    writer.text(item.block.text, g.width / 2, item.y, align="center")


def draw_footer(writer: DocumentWriter, footer, g: PageGeometry) -> None:
    """Rule, generation date (left), page number (center) and product (right)."""
    footer_y = g.footer_y
    writer.set_font(FONT_REGULAR, FOOTER_FONT_SIZE)
    writer.set_text_color(TEXT_GRAY)
    writer.set_draw_color(BORDER_GRAY)
    writer.set_line_width(0.5)
    writer.line(g.margin_left, footer_y - g.footer_rule_gap,
                g.width - g.margin_right, footer_y - g.footer_rule_gap)

    writer.text(f"Page {footer.page_number}", g.width / 2, footer_y, align="center")
    writer.text(f"Generated: {footer.generated_on}", g.margin_left, footer_y)
    writer.text(footer.product_name, g.width - g.margin_right, footer_y, align="right")


_DRAWERS = {
    "title": draw_title,
    "section_heading": draw_section_heading,
    "summary_row": draw_summary_row,
    "table_header": draw_table_header,
    "table_row": draw_table_row,
    "notice": draw_notice,
    "closing": draw_closing,
}
