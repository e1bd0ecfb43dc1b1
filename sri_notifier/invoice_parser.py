"""SRI Notifier - Invoice Document Parser.

Parses an authorized SRI electronic invoice (``<factura>``) into a typed
:class:`~sri_notifier.models.InvoiceDocument`.

Accepted inputs
~~~~~~~~~~~~~~~
* **Bare invoice** -- the ``<factura>`` document as issued.
* **Authorization envelope** -- an ``<autorizacion>`` response whose
  ``<comprobante>`` element carries the invoice as text or CDATA.

Document layout::

    factura
    +-- infoTributaria    issuer header       (optional)
    +-- infoFactura       buyer and totals    (optional)
    +-- detalles/detalle  line items          (zero or more)
    +-- infoAdicional     campoAdicional[@nombre]  (optional here;
                          mandatory for recipient extraction)

Only an unrecognizable top-level structure is an error; every section
may be missing.  XML is parsed through ``defusedxml`` so DTDs and entity
declarations are rejected.

Usage::

    from sri_notifier.invoice_parser import parse_invoice

    document = parse_invoice(xml_bytes)
    print(document.issuer.legal_name)
    print(len(document.line_items))
"""

from __future__ import annotations

import logging
from typing import Optional, Union
from xml.etree.ElementTree import Element
from xml.etree.ElementTree import ParseError as XMLSyntaxError

import defusedxml.ElementTree as DefusedET
from defusedxml import DefusedXmlException

from .errors import ParseError
from .models import AdditionalField, BuyerInfo, InvoiceDocument, IssuerInfo, LineItem

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_INVOICE_ROOT = "factura"
_AUTHORIZATION_ROOTS = {"autorizacion", "RespuestaAutorizacion"}

# Field aliases -- element tags mapped to model attributes.  Extra
# spellings cover the sporadic capitalization seen across issuers.
_ISSUER_FIELDS: dict[str, list[str]] = {
    "legal_name":      ["razonSocial"],
    "commercial_name": ["nombreComercial"],
    "tax_id":          ["ruc", "RUC"],
    "establishment":   ["estab"],
    "emission_point":  ["ptoEmi"],
    "sequence":        ["secuencial"],
    "access_key":      ["claveAcceso"],
}

_BUYER_FIELDS: dict[str, list[str]] = {
    "name":           ["razonSocialComprador"],
    "identification": ["identificacionComprador"],
    "issue_date":     ["fechaEmision"],
    "currency":       ["moneda"],
    "subtotal":       ["totalSinImpuestos"],
    "total":          ["importeTotal"],
}

_LINE_ITEM_FIELDS: dict[str, list[str]] = {
    "description": ["descripcion"],
    "quantity":    ["cantidad"],
    "unit_price":  ["precioUnitario"],
    "line_total":  ["precioTotalSinImpuesto"],
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_invoice(source: Union[str, bytes]) -> InvoiceDocument:
    """Parse raw invoice XML into an InvoiceDocument.

    Args:
        source: Document text or bytes, optionally wrapped in an
            authorization envelope.

    Returns:
        The parsed document.  Missing optional sections surface as
        ``None`` (or an empty item list), never as an error.

    Raises:
        ParseError: The content is not well-formed XML, is unsafe, or its
            top-level element is neither an invoice nor an authorization
            envelope containing one.
    """
    root = _parse_xml(source)
    authorization_number = None
    authorization_date = None

    if _local_name(root.tag) in _AUTHORIZATION_ROOTS:
        envelope = _find_authorization(root)
        authorization_number = _child_text(envelope, "numeroAutorizacion")
        authorization_date = _child_text(envelope, "fechaAutorizacion")
        root = _unwrap_voucher(envelope)

    if _local_name(root.tag) != _INVOICE_ROOT:
        raise ParseError(
            f"Unrecognized document root <{_local_name(root.tag)}>; "
            f"expected <{_INVOICE_ROOT}>"
        )

    document = InvoiceDocument(
        issuer=_parse_section(root, "infoTributaria", IssuerInfo, _ISSUER_FIELDS),
        buyer=_parse_section(root, "infoFactura", BuyerInfo, _BUYER_FIELDS),
        line_items=_parse_line_items(root),
        additional_fields=_parse_additional_fields(root),
        authorization_number=authorization_number,
        authorization_date=authorization_date,
    )

    logger.debug(
        "Parsed invoice: %d line items, additional fields %s",
        len(document.line_items),
        "present" if document.has_additional_fields else "absent",
    )
    return document


def decode_document(raw: bytes) -> str:
    """Decode stored document bytes as text (UTF-8, BOM tolerated)."""
    return raw.decode("utf-8-sig", errors="replace")


# ---------------------------------------------------------------------------
# XML plumbing
# ---------------------------------------------------------------------------

def _parse_xml(source: Union[str, bytes]) -> Element:
    if isinstance(source, str):
        source = source.encode("utf-8")
    if not source or not source.strip():
        raise ParseError("Document is empty")
    try:
        return DefusedET.fromstring(source, forbid_dtd=True)
    except DefusedXmlException as exc:
        raise ParseError(f"Document rejected by XML safety checks: {exc}") from exc
    except XMLSyntaxError as exc:
        raise ParseError(f"Document is not well-formed XML: {exc}") from exc


def _local_name(tag: str) -> str:
    """Strip a '{namespace}' prefix from an element tag."""
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _find_child(parent: Element, *names: str) -> Optional[Element]:
    for child in parent:
        if _local_name(child.tag) in names:
            return child
    return None


def _find_children(parent: Element, name: str) -> list[Element]:
    return [child for child in parent if _local_name(child.tag) == name]


def _clean_text(element: Optional[Element]) -> Optional[str]:
    """Stripped element text, or None when absent or blank."""
    if element is None or element.text is None:
        return None
    text = element.text.strip()
    return text or None


def _child_text(parent: Element, *names: str) -> Optional[str]:
    return _clean_text(_find_child(parent, *names))


def _find_authorization(root: Element) -> Element:
    """Return the <autorizacion> element of an authorization response."""
    if _local_name(root.tag) == "autorizacion":
        return root
    for element in root.iter():
        if _local_name(element.tag) == "autorizacion":
            return element
    raise ParseError("Authorization response carries no <autorizacion> element")


def _unwrap_voucher(envelope: Element) -> Element:
    """Return the invoice root held by an authorization envelope.

    The voucher is normally embedded as escaped text / CDATA; some
    archives nest it as real child elements instead.
    """
    comprobante = _find_child(envelope, "comprobante")
    if comprobante is None:
        raise ParseError("Authorization envelope carries no <comprobante>")

    nested = _find_child(comprobante, _INVOICE_ROOT)
    if nested is not None:
        return nested

    inner = (comprobante.text or "").strip()
    if not inner:
        raise ParseError("Authorization envelope <comprobante> is empty")
    return _parse_xml(inner)


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------

def _parse_section(root: Element, tag: str, model, aliases: dict[str, list[str]]):
    """Map a flat section onto ``model`` or return None when absent."""
    section = _find_child(root, tag)
    if section is None:
        logger.debug("Optional section <%s> not present", tag)
        return None
    values = {attr: _child_text(section, *names) for attr, names in aliases.items()}
    return model(**values)


def _parse_line_items(root: Element) -> list[LineItem]:
    """Return every <detalle>, in document order.

    A lone <detalle> is simply a one-element list; a missing <detalles>
    section is an empty list.
    """
    details = _find_child(root, "detalles")
    if details is None:
        return []
    items = []
    for detail in _find_children(details, "detalle"):
        items.append(LineItem(**{
            attr: _child_text(detail, *names)
            for attr, names in _LINE_ITEM_FIELDS.items()
        }))
    return items


def _parse_additional_fields(root: Element) -> Optional[list[AdditionalField]]:
    """Return the campoAdicional pairs, or None when the section is absent."""
    section = _find_child(root, "infoAdicional")
    if section is None:
        return None
    fields = []
    for entry in _find_children(section, "campoAdicional"):
        fields.append(AdditionalField(
            name=entry.get("nombre") or "",
            value=entry.text or "",
        ))
    return fields
