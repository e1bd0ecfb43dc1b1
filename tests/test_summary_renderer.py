"""Tests for sri_notifier.summary_renderer.

Covers:
- wrap_text: width rule, long words, whitespace handling, word order
- PageCursor: page breaks at the bottom margin
- build_summary: header, sections, detail limit, placeholders, annex
- render_pdf: produces a PDF document
"""

from datetime import datetime, timezone

import pytest

from sri_notifier.config import RenderSettings
from sri_notifier.invoice_parser import decode_document, parse_invoice
from sri_notifier.models import Environment, InvoiceDocument
from sri_notifier.summary_renderer import (
    NO_DETAIL_PLACEHOLDER,
    PageCursor,
    PageLayout,
    TextStyle,
    build_summary,
    format_timestamp,
    normalize_newlines,
    render_pdf,
    wrap_text,
)

GENERATED_AT = datetime(2026, 2, 17, 17, 56, 57, tzinfo=timezone.utc)

# top = 100, bottom margin 20, 10pt leading -> 8 lines per page
SMALL_LAYOUT = PageLayout(width=300, height=120, left_margin=10, top_margin=20, bottom_margin=20)
TEN_POINT = TextStyle("Courier", 7, 10)


# ============================================================================
# Word wrap
# ============================================================================

class TestWrapText:

    def test_width_is_exclusive(self):
        assert wrap_text("A B C", 3) == ["A", "B", "C"]

    def test_fits_on_one_line(self):
        assert wrap_text("hello world", 20) == ["hello world"]

    def test_candidate_equal_to_width_breaks(self):
        assert wrap_text("ab cd", 5) == ["ab", "cd"]
        assert wrap_text("ab cd", 6) == ["ab cd"]

    def test_long_word_not_split(self):
        assert wrap_text("tiny " + "x" * 30 + " end", 10) == ["tiny", "x" * 30, "end"]

    @pytest.mark.parametrize("text", ["", "   ", "\t\n"])
    def test_blank_yields_single_empty_line(self, text):
        assert wrap_text(text, 10) == [""]

    def test_whitespace_runs_collapse(self):
        assert wrap_text("  a \t b\n c  ", 80) == ["a b c"]

    @pytest.mark.parametrize("width", [5, 12, 40])
    def test_lines_within_width_and_words_preserved(self, width):
        text = "the quick brown fox jumps over the extraordinarily lazy dog " * 3
        lines = wrap_text(text, width)
        for line in lines:
            assert len(line) < width or " " not in line
        assert " ".join(lines).split() == text.split()

    def test_normalize_newlines(self):
        assert normalize_newlines("a\r\nb\rc\nd") == "a\nb\nc\nd"


# ============================================================================
# Page cursor
# ============================================================================

class TestPageCursor:

    def test_eight_lines_per_small_page(self):
        cursor = PageCursor(SMALL_LAYOUT)
        breaks = [cursor.emit(f"line {i}", TEN_POINT) for i in range(20)]
        assert [len(p.elements) for p in cursor.pages] == [8, 8, 4]
        assert breaks.count(True) == 2
        assert breaks[8] is True and breaks[16] is True

    def test_no_element_below_bottom_margin(self):
        cursor = PageCursor(SMALL_LAYOUT)
        for i in range(50):
            cursor.emit(str(i), TEN_POINT)
        for page in cursor.pages:
            assert min(e.y for e in page.elements) - TEN_POINT.leading >= SMALL_LAYOUT.bottom_margin

    def test_value_placed_beside_label(self):
        cursor = PageCursor(SMALL_LAYOUT)
        cursor.emit("Label:", TEN_POINT, value="Value")
        label, value = cursor.page.elements
        assert label.y == value.y
        assert value.x > label.x

    def test_break_page_resets_cursor(self):
        cursor = PageCursor(SMALL_LAYOUT)
        cursor.emit("x", TEN_POINT)
        cursor.break_page()
        assert cursor.y == SMALL_LAYOUT.top
        assert [p.number for p in cursor.pages] == [1, 2]


# ============================================================================
# Summary layout
# ============================================================================

def _summary(xml: str, environment=Environment.TEST, **kwargs):
    return build_summary(
        parse_invoice(xml),
        xml,
        access_key="KEY-123",
        environment=environment,
        generated_at=GENERATED_AT,
        **kwargs,
    )


class TestBuildSummary:

    def test_header(self, invoice_xml):
        first = _summary(invoice_xml).pages[0].texts
        assert first[0] == "Authorized Electronic Invoice"
        assert "KEY-123" in first
        assert "TEST" in first
        assert "2026-02-17 17:56:57 UTC" in first

    def test_authorization_details_from_envelope(self, invoice_xml):
        envelope = (
            "<autorizacion>"
            "<numeroAutorizacion>AUTH-0001</numeroAutorizacion>"
            "<fechaAutorizacion>2026-02-17T17:56:57-05:00</fechaAutorizacion>"
            f"<comprobante><![CDATA[{invoice_xml}]]></comprobante>"
            "</autorizacion>"
        )
        first = _summary(envelope).pages[0].texts
        assert first[1:6] == [
            "Access key:", "KEY-123",
            "Authorization no.:", "AUTH-0001",
            "Authorized at:",
        ]
        assert "2026-02-17T17:56:57-05:00" in first

    def test_bare_invoice_has_no_authorization_lines(self, invoice_xml):
        first = _summary(invoice_xml).pages[0].texts
        assert "Authorization no.:" not in first
        assert "Authorized at:" not in first

    def test_access_key_falls_back_to_document(self, invoice_xml, access_key):
        summary = build_summary(
            parse_invoice(invoice_xml), invoice_xml,
            access_key="", environment=Environment.TEST, generated_at=GENERATED_AT,
        )
        assert access_key in summary.pages[0].texts

    def test_production_label(self, invoice_xml):
        assert "PRODUCTION" in _summary(invoice_xml, Environment.PRODUCTION).pages[0].texts

    def test_issuer_and_buyer_sections(self, invoice_xml):
        first = _summary(invoice_xml).pages[0].texts
        for expected in (
            "Issuer", "Comercial Andina S.A.", "Andina", "1790012345001", "001-002-000000123",
            "Buyer and Totals", "Maria Perez", "0912345678", "17/02/2026", "DOLAR", "100.00", "112.00",
        ):
            assert expected in first

    def test_missing_sections_render_placeholders(self, make_invoice_xml):
        first = _summary(make_invoice_xml(issuer=False, buyer=False)).pages[0].texts
        assert first.count("N/A") == 10

    def test_detail_line(self, invoice_xml):
        assert "Widget | 2 | 10.00 | 20.00" in _summary(invoice_xml).pages[0].texts

    def test_no_items_placeholder(self, make_invoice_xml):
        first = _summary(make_invoice_xml(items=None)).pages[0].texts
        assert NO_DETAIL_PLACEHOLDER in first

    def test_detail_limited_to_ten_items(self, make_invoice_xml):
        rows = [(f"Item {i:02d}", "1", "1.00", "1.00") for i in range(12)]
        first = _summary(make_invoice_xml(items=rows)).pages[0].texts
        shown = [t for t in first if t.startswith("Item ")]
        assert shown == [f"Item {i:02d} | 1 | 1.00 | 1.00" for i in range(10)]
        assert any(t.startswith("... 2 more line item(s)") for t in first)

    def test_long_detail_wrapped(self, make_invoice_xml):
        description = " ".join(["segment"] * 30)
        first = _summary(make_invoice_xml(items=[(description, "1", "1.00", "1.00")])).pages[0].texts
        wrapped = [t for t in first if t.startswith("segment")]
        assert len(wrapped) > 1
        assert all(len(t) < 96 for t in wrapped)

    def test_annex_starts_on_page_two(self, invoice_xml):
        summary = _summary(invoice_xml)
        assert summary.page_count >= 2
        second = summary.pages[1].texts
        assert second[0] == "Annex: source document"
        assert "</factura>" in second
        assert not any("Annex" in t for t in summary.pages[0].texts)

    def test_annex_wraps_and_paginates(self, invoice_xml):
        raw = "\n".join(f"<line n='{i}'>" + "word " * 40 + "</line>" for i in range(200))
        summary = build_summary(
            parse_invoice(invoice_xml), raw,
            access_key="K", environment=Environment.TEST, generated_at=GENERATED_AT,
        )
        assert summary.page_count > 3
        annex = [t for page in summary.pages[1:] for t in page.texts][1:]
        assert all(len(t) < 106 or " " not in t for t in annex)
        bottom = summary.layout.bottom_margin
        for page in summary.pages:
            assert all(e.y >= bottom for e in page.elements)

    def test_crlf_source(self, invoice_xml):
        raw = invoice_xml.replace("\n", "\r\n")
        summary = build_summary(
            parse_invoice(raw), raw,
            access_key="K", environment=Environment.TEST, generated_at=GENERATED_AT,
        )
        annex = [t for page in summary.pages[1:] for t in page.texts]
        assert not any("\r" in t for t in annex)

    def test_custom_settings(self, make_invoice_xml):
        rows = [(f"Item {i}", "1", "1.00", "1.00") for i in range(5)]
        settings = RenderSettings(max_detail_items=2, title="Summary")
        first = _summary(make_invoice_xml(items=rows), settings=settings).pages[0].texts
        assert first[0] == "Summary"
        assert any(t.startswith("... 3 more") for t in first)

    def test_empty_document(self):
        summary = build_summary(
            InvoiceDocument(), "",
            access_key="K", environment=Environment.TEST, generated_at=GENERATED_AT,
        )
        assert summary.page_count == 2

    def test_format_timestamp(self):
        assert format_timestamp(GENERATED_AT) == "2026-02-17 17:56:57 UTC"


# ============================================================================
# PDF backend
# ============================================================================

class TestRenderPdf:

    def test_pdf_bytes(self, invoice_xml):
        raw = invoice_xml.encode("utf-8")
        summary = build_summary(
            parse_invoice(raw), decode_document(raw),
            access_key="KEY", environment=Environment.PRODUCTION, generated_at=GENERATED_AT,
        )
        pdf = render_pdf(summary)
        assert pdf.startswith(b"%PDF")
        assert b"%%EOF" in pdf[-32:]

    def test_multi_page_pdf(self, invoice_xml):
        raw = "\n".join(["line"] * 300)
        summary = build_summary(
            parse_invoice(invoice_xml), raw,
            access_key="KEY", environment=Environment.TEST, generated_at=GENERATED_AT,
        )
        assert summary.page_count > 2
        assert render_pdf(summary).startswith(b"%PDF")
