"""Document model for the paginated progress report.

Blocks are abstract units of content prior to placement; a Page holds the
blocks placed on it together with the y position and measured height of each.
The whole model is rebuilt for every export and discarded afterwards.
"""
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from progress_reports.core.errors import InvalidReportModeError


class ReportMode(str, Enum):
    OVERVIEW = "overview"
    SINGLE_STUDENT = "single-student"

    @classmethod
    def parse(cls, value) -> "ReportMode":
        """Accept enum members, canonical values and the short ``single`` alias."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace("_", "-")
        if text == "single":
            return cls.SINGLE_STUDENT
        try:
            return cls(text)
        except ValueError:
            raise InvalidReportModeError(value) from None


class PageGeometry(BaseModel):
    """Fixed page layout in PDF points, measured from the top-left corner."""
    width: float = 595.28
    height: float = 841.89
    margin_left: float = 45
    margin_right: float = 45
    top: float = 50
    bottom_reserve: float = 70
    footer_offset: float = 35
    footer_rule_gap: float = 10

    @property
    def content_width(self) -> float:
        return self.width - self.margin_left - self.margin_right

    @property
    def body_limit(self) -> float:
        """Lowest y that content may reach before a page break."""
        return self.height - self.bottom_reserve

    @property
    def footer_y(self) -> float:
        return self.height - self.footer_offset


A4_PORTRAIT = PageGeometry()


class TableColumn(BaseModel):
    label: str
    width: float


class TitleBlock(BaseModel):
    kind: Literal["title"] = "title"
    title: str
    subtitle: str
    generated_at: str


class SectionHeading(BaseModel):
    kind: Literal["section_heading"] = "section_heading"
    text: str
    space_after: float = 22
    # Room to reserve so the heading is not stranded at the bottom of a page
    keep_with_next: float = 0


class SummaryCard(BaseModel):
    label: str
    value: str


class SummaryRow(BaseModel):
    """One row of the two-column summary grid."""
    kind: Literal["summary_row"] = "summary_row"
    cards: List[SummaryCard]


class TableHeader(BaseModel):
    kind: Literal["table_header"] = "table_header"
    table_id: str
    columns: List[TableColumn]


class TableRow(BaseModel):
    kind: Literal["table_row"] = "table_row"
    table_id: str
    cells: List[str]
    # Position of the source record in the caller's list
    record_index: Optional[int] = None
    # True for the trailing fragments of a row split across pages
    continued: bool = False


class NoticeBlock(BaseModel):
    kind: Literal["notice"] = "notice"
    text: str


class SpacerBlock(BaseModel):
    kind: Literal["spacer"] = "spacer"
    height: float


class ClosingBlock(BaseModel):
    kind: Literal["closing"] = "closing"
    text: str = "— End of Report —"


class Footer(BaseModel):
    kind: Literal["footer"] = "footer"
    page_number: int
    generated_on: str
    product_name: str


Block = Annotated[
    Union[
        TitleBlock,
        SectionHeading,
        SummaryRow,
        TableHeader,
        TableRow,
        NoticeBlock,
        SpacerBlock,
        ClosingBlock,
        Footer,
    ],
    Field(discriminator="kind"),
]


class PlacedBlock(BaseModel):
    """A block fixed at a vertical position on a page."""
    block: Block
    y: float
    height: float
    # Wrapped text: per cell for rows, [label, value] per card for summary rows
    lines: List[List[str]] = Field(default_factory=list)
    shaded: bool = False
    repeated: bool = False


class Page(BaseModel):
    number: int
    cursor_y: float
    items: List[PlacedBlock] = Field(default_factory=list)
    footer: Optional[Footer] = None

    @property
    def blocks(self) -> list:
        """Placed blocks in order, followed by the footer once the page is closed."""
        out = [item.block for item in self.items]
        if self.footer is not None:
            out.append(self.footer)
        return out

    @property
    def table_rows(self) -> List[TableRow]:
        return [item.block for item in self.items if item.block.kind == "table_row"]

    @property
    def is_blank(self) -> bool:
        """True while the page holds nothing but a repeated table header."""
        return all(item.repeated for item in self.items)
