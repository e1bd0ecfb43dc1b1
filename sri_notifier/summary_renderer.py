"""
SRI Notifier -- Summary Renderer

Builds the human-readable PDF summary attached to every notification.

Rendering is split in two so pagination can be tested without a drawing
surface:

  1. ``build_summary`` lays the document out into a ``RenderedSummary``:
     pages of positioned text elements produced by a ``PageCursor``.
  2. ``render_pdf`` paints a ``RenderedSummary`` onto a ReportLab canvas.

Page 1, top to bottom:
  - title banner
  - access key / environment / generation timestamp
  - "Issuer" section (4 fields)
  - "Buyer and Totals" section (6 fields)
  - "Detail" section: first 10 line items, one wrapped summary line each

Page 2 onwards: the complete source document, each physical line
word-wrapped at a fixed width, with a page break whenever the cursor
would pass below the bottom margin.

Usage:
    from sri_notifier.summary_renderer import build_summary, render_pdf

    summary = build_summary(document, raw_text,
                            access_key=key, environment=Environment.TEST)
    pdf_bytes = render_pdf(summary)
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from .config import RenderSettings
from .models import NOT_AVAILABLE, Environment, InvoiceDocument

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

NO_DETAIL_PLACEHOLDER = "Detail: not available in document"

_WHITESPACE_RUN = re.compile(r"\s+")

# Timestamp format: "2026-02-17 17:56:57 UTC"
_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S %Z"


# ---------------------------------------------------------------------------
# Word wrap
# ---------------------------------------------------------------------------

def wrap_text(text: str, width: int) -> list[str]:
    """Greedy word-wrap on whitespace runs.

    Words accumulate on a line while the line stays within ``width``
    (shorter than it); the word that would reach or exceed the width
    starts a new line.  A word wider than ``width`` is never split and
    becomes a line of its own.  Empty or whitespace-only input yields a
    single empty line.

    >>> wrap_text("A B C", 3)
    ['A', 'B', 'C']
    >>> wrap_text("   ", 10)
    ['']
    """
    words = [w for w in _WHITESPACE_RUN.split(text) if w]
    if not words:
        return [""]

    lines: list[str] = []
    current = ""
    for word in words:
        if not current:
            current = word
            continue
        candidate = f"{current} {word}"
        if len(candidate) < width:
            current = candidate
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


def normalize_newlines(text: str) -> str:
    """Collapse CRLF / CR line breaks to LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


# ---------------------------------------------------------------------------
# Layout model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextStyle:
    """Font and vertical advance for one kind of line."""
    font: str
    size: float
    leading: float
    indent: float = 0.0


TITLE = TextStyle("Helvetica-Bold", 15, 24)
BANNER = TextStyle("Helvetica-Bold", 11, 18)
FIELD = TextStyle("Helvetica", 9, 13, indent=8)
DETAIL = TextStyle("Courier", 7.5, 10, indent=8)
ANNEX = TextStyle("Courier", 7, 9)
SPACER = TextStyle("Helvetica", 9, 8)

# Horizontal offset of values relative to their labels.
VALUE_COLUMN = 130


@dataclass(frozen=True)
class PageLayout:
    """Page geometry in PDF points."""
    width: float = A4[0]
    height: float = A4[1]
    left_margin: float = 40
    top_margin: float = 40
    bottom_margin: float = 40

    @property
    def top(self) -> float:
        return self.height - self.top_margin


@dataclass(frozen=True)
class TextElement:
    """A string painted at a fixed position."""
    x: float
    y: float
    text: str
    font: str
    size: float


@dataclass
class Page:
    number: int
    elements: list[TextElement] = field(default_factory=list)

    @property
    def texts(self) -> list[str]:
        return [e.text for e in self.elements]


@dataclass
class RenderedSummary:
    """Ordered, fixed-size pages of positioned text."""
    layout: PageLayout
    pages: list[Page]
    title: str = ""

    @property
    def page_count(self) -> int:
        return len(self.pages)


class PageCursor:
    """Accumulates positioned lines and starts pages as needed.

    ``emit`` is the only way to place content.  Before placing a line it
    checks whether advancing by the line's leading would take the cursor
    below the bottom margin, and if so starts a new page first.
    """

    def __init__(self, layout: PageLayout) -> None:
        self.layout = layout
        self.pages: list[Page] = [Page(number=1)]
        self._y = layout.top

    @property
    def y(self) -> float:
        return self._y

    @property
    def page(self) -> Page:
        return self.pages[-1]

    def emit(
        self,
        text: str,
        style: TextStyle = FIELD,
        value: Optional[str] = None,
    ) -> bool:
        """Place one line (optionally a label/value pair).

        Returns True when the line forced a new page.
        """
        broke = False
        if self._y - style.leading < self.layout.bottom_margin:
            self.break_page()
            broke = True

        x = self.layout.left_margin + style.indent
        self.page.elements.append(TextElement(x, self._y, text, style.font, style.size))
        if value is not None:
            self.page.elements.append(
                TextElement(x + VALUE_COLUMN, self._y, value, style.font, style.size)
            )
        self._y -= style.leading
        return broke

    def break_page(self) -> None:
        """Start a fresh page with the cursor at the top margin."""
        self.pages.append(Page(number=len(self.pages) + 1))
        self._y = self.layout.top


# ---------------------------------------------------------------------------
# Summary construction
# ---------------------------------------------------------------------------

def _or_na(value: Optional[str]) -> str:
    return value if value else NOT_AVAILABLE


def format_timestamp(moment: datetime) -> str:
    return moment.strftime(_TIMESTAMP_FORMAT).strip()


def build_summary(
    document: InvoiceDocument,
    raw_text: str,
    *,
    access_key: str,
    environment: Environment,
    generated_at: Optional[datetime] = None,
    settings: Optional[RenderSettings] = None,
    layout: Optional[PageLayout] = None,
) -> RenderedSummary:
    """Lay out the summary for one authorized invoice.

    Args:
        document: Parsed invoice.
        raw_text: Source document text, reproduced verbatim in the annex.
        access_key: Voucher access key shown in the header; when blank
            the document's own ``claveAcceso`` is shown instead.
        environment: Selects the "PRODUCTION" / "TEST" label.
        generated_at: Generation timestamp (defaults to now, UTC).
        settings: Wrap widths and item limit.
        layout: Page geometry.

    Returns:
        A RenderedSummary; page 1 is the summary, pages 2+ the annex.
    """
    settings = settings or RenderSettings()
    layout = layout or PageLayout()
    generated_at = generated_at or datetime.now(timezone.utc)

    cursor = PageCursor(layout)
    issuer = document.issuer
    access_key = access_key or (issuer.access_key if issuer else None)

    # --- header ---
    cursor.emit(settings.title, TITLE)
    cursor.emit("Access key:", FIELD, value=_or_na(access_key))
    # Only documents delivered inside an authorization envelope carry these.
    if document.authorization_number:
        cursor.emit("Authorization no.:", FIELD, value=document.authorization_number)
    if document.authorization_date:
        cursor.emit("Authorized at:", FIELD, value=document.authorization_date)
    cursor.emit("Environment:", FIELD, value=environment.label)
    cursor.emit("Generated:", FIELD, value=format_timestamp(generated_at))
    cursor.emit("", SPACER)

    # --- issuer ---
    cursor.emit("Issuer", BANNER)
    cursor.emit("Legal name:", FIELD, value=_or_na(issuer.legal_name if issuer else None))
    cursor.emit("Commercial name:", FIELD, value=_or_na(issuer.commercial_name if issuer else None))
    cursor.emit("Tax ID (RUC):", FIELD, value=_or_na(issuer.tax_id if issuer else None))
    cursor.emit("Issuance point:", FIELD, value=_or_na(issuer.issuance_point if issuer else None))
    cursor.emit("", SPACER)

    # --- buyer and totals ---
    buyer = document.buyer
    cursor.emit("Buyer and Totals", BANNER)
    cursor.emit("Buyer:", FIELD, value=_or_na(buyer.name if buyer else None))
    cursor.emit("Identification:", FIELD, value=_or_na(buyer.identification if buyer else None))
    cursor.emit("Issue date:", FIELD, value=_or_na(buyer.issue_date if buyer else None))
    cursor.emit("Currency:", FIELD, value=_or_na(buyer.currency if buyer else None))
    cursor.emit("Subtotal:", FIELD, value=_or_na(buyer.subtotal if buyer else None))
    cursor.emit("Total:", FIELD, value=_or_na(buyer.total if buyer else None))
    cursor.emit("", SPACER)

    # --- detail ---
    cursor.emit("Detail", BANNER)
    items = document.first_line_items(settings.max_detail_items)
    if not items:
        cursor.emit(NO_DETAIL_PLACEHOLDER, DETAIL)
    for item in items:
        for line in wrap_text(item.summary_line(), settings.detail_width):
            cursor.emit(line, DETAIL)
    hidden = len(document.line_items) - len(items)
    if hidden > 0:
        cursor.emit(f"... {hidden} more line item(s) in the attached document", DETAIL)

    # --- annex ---
    cursor.break_page()
    cursor.emit("Annex: source document", BANNER)
    for physical_line in normalize_newlines(raw_text).split("\n"):
        for line in wrap_text(physical_line, settings.annex_width):
            cursor.emit(line, ANNEX)

    logger.debug("Summary for %s laid out on %d pages", access_key, len(cursor.pages))
    return RenderedSummary(layout=layout, pages=cursor.pages, title=settings.title)


# ---------------------------------------------------------------------------
# PDF backend
# ---------------------------------------------------------------------------

def render_pdf(summary: RenderedSummary) -> bytes:
    """Paint a RenderedSummary with ReportLab and return the PDF bytes."""
    buffer = io.BytesIO()
    layout = summary.layout
    pdf = canvas.Canvas(buffer, pagesize=(layout.width, layout.height), invariant=1)
    pdf.setTitle(summary.title)

    for page in summary.pages:
        for element in page.elements:
            if not element.text:
                continue
            pdf.setFont(element.font, element.size)
            pdf.drawString(element.x, element.y, element.text)
        pdf.setFont("Helvetica", 7)
        pdf.drawRightString(
            layout.width - layout.left_margin,
            layout.bottom_margin / 2,
            f"Page {page.number} of {summary.page_count}",
        )
        pdf.showPage()

    pdf.save()
    return buffer.getvalue()
