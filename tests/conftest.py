"""Shared fixtures: a realistic access key and invoice XML builder."""

from xml.sax.saxutils import escape

import pytest

# ddmmyyyy | type | RUC | env | estab+pto | sequence | code | emission | check
ACCESS_KEY = "17022026" "01" "1790012345001" "1" "001002" "000000123" "12345678" "1" "7"
ENTITY_ID = "1790012345001"

DEFAULT_ITEMS = [("Widget", "2", "10.00", "20.00")]
DEFAULT_FIELDS = [("Direccion", "Av. Amazonas N24"), ("Email", "buyer@example.com")]


def build_invoice_xml(
    items=DEFAULT_ITEMS,
    additional_fields=DEFAULT_FIELDS,
    issuer=True,
    buyer=True,
    access_key=ACCESS_KEY,
    declaration=True,
) -> str:
    """Assemble an SRI <factura>.

    ``items=None`` omits <detalles>; ``additional_fields=None`` omits
    <infoAdicional>.
    """
    parts = []
    if declaration:
        parts.append('<?xml version="1.0" encoding="UTF-8"?>')
    parts.append('<factura id="comprobante" version="1.1.0">')
    if issuer:
        parts.append(
            "<infoTributaria>"
            "<ambiente>1</ambiente>"
            "<razonSocial>Comercial Andina S.A.</razonSocial>"
            "<nombreComercial>Andina</nombreComercial>"
            "<ruc>1790012345001</ruc>"
            f"<claveAcceso>{access_key}</claveAcceso>"
            "<estab>001</estab>"
            "<ptoEmi>002</ptoEmi>"
            "<secuencial>000000123</secuencial>"
            "</infoTributaria>"
        )
    if buyer:
        parts.append(
            "<infoFactura>"
            "<fechaEmision>17/02/2026</fechaEmision>"
            "<razonSocialComprador>Maria Perez</razonSocialComprador>"
            "<identificacionComprador>0912345678</identificacionComprador>"
            "<totalSinImpuestos>100.00</totalSinImpuestos>"
            "<importeTotal>112.00</importeTotal>"
            "<moneda>DOLAR</moneda>"
            "</infoFactura>"
        )
    if items is not None:
        parts.append("<detalles>")
        for description, quantity, price, total in items:
            parts.append(
                "<detalle>"
                f"<descripcion>{escape(description)}</descripcion>"
                f"<cantidad>{quantity}</cantidad>"
                f"<precioUnitario>{price}</precioUnitario>"
                f"<precioTotalSinImpuesto>{total}</precioTotalSinImpuesto>"
                "</detalle>"
            )
        parts.append("</detalles>")
    if additional_fields is not None:
        parts.append("<infoAdicional>")
        for name, value in additional_fields:
            parts.append(f'<campoAdicional nombre="{name}">{escape(value)}</campoAdicional>')
        parts.append("</infoAdicional>")
    parts.append("</factura>")
    return "\n".join(parts)


@pytest.fixture
def access_key() -> str:
    return ACCESS_KEY


@pytest.fixture
def make_invoice_xml():
    """Factory fixture; see ``build_invoice_xml``."""
    return build_invoice_xml


@pytest.fixture
def invoice_xml() -> str:
    return build_invoice_xml()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
