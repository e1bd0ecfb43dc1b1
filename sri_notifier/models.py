"""Data models for the SRI Notifier.

Plain dataclasses and enums shared by every stage of the pipeline.
Nothing here is persisted: documents, summaries and messages live only
for the duration of one notification request.
"""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ValidationError


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Access key layout (SRI "clave de acceso"):
#   ddmmyyyy | doc type | issuer RUC | env | estab+point | sequence | code | emission | check
#   0      8   8     10   10      23   23  24 ...
ENTITY_ID_OFFSET = 10
ENTITY_ID_LENGTH = 13

# Placeholder rendered wherever the document leaves a value out.
NOT_AVAILABLE = "N/A"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Environment(str, Enum):
    """Target environment of a voucher; selects bucket and labels."""

    TEST = "test"
    PRODUCTION = "production"

    @classmethod
    def parse(cls, value: Any) -> Environment:
        """Map a payload value onto an environment.

        Only the exact string ``"production"`` selects production;
        anything else (missing, misspelled, wrong type) is test.
        """
        if isinstance(value, Environment):
            return value
        if value == cls.PRODUCTION.value:
            return cls.PRODUCTION
        return cls.TEST

    @property
    def label(self) -> str:
        """Upper-case label shown in subjects and summaries."""
        return "PRODUCTION" if self is Environment.PRODUCTION else "TEST"


class VoucherStatus(str, Enum):
    """Lifecycle states of a voucher record in the change stream."""

    RECEIVED = "RECEIVED"
    PROCESSING = "PROCESSING"
    AUTHORIZED = "AUTHORIZED"


# States a voucher may leave when it becomes AUTHORIZED.
IN_FLIGHT_STATUSES: frozenset[str] = frozenset({
    VoucherStatus.RECEIVED.value,
    VoucherStatus.PROCESSING.value,
})


class ChangeType(str, Enum):
    """Kind of change a stream record describes."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


# ---------------------------------------------------------------------------
# Access key helpers
# ---------------------------------------------------------------------------

def entity_id_from_access_key(access_key: str) -> str:
    """Return the issuer RUC embedded in an access key.

    The 13 characters at offset 10 identify the legal entity that issued
    the voucher.

    >>> entity_id_from_access_key("1702202601" "1790012345001" "1001001000000001")
    '1790012345001'
    """
    key = (access_key or "").strip()
    end = ENTITY_ID_OFFSET + ENTITY_ID_LENGTH
    if len(key) < end:
        raise ValidationError(
            f"Access key '{key}' is too short to carry an entity id "
            f"(need at least {end} characters, got {len(key)})"
        )
    return key[ENTITY_ID_OFFSET:end]


# ---------------------------------------------------------------------------
# Notification request
# ---------------------------------------------------------------------------

@dataclass
class NotificationRequest:
    """One unit of work for the dispatch stage."""

    access_key: str
    environment: Environment = Environment.TEST
    event_type: str | None = None
    status: str | None = None
    timestamp: str | None = None

    @property
    def identifier(self) -> str:
        """Request identifier -- the access key itself."""
        return self.access_key

    @property
    def entity_id(self) -> str:
        return entity_id_from_access_key(self.access_key)

    def validate(self) -> None:
        """Raise ValidationError unless the request carries a usable key."""
        if not self.access_key:
            raise ValidationError("Missing accessKey in message payload.")
        # Length check lives in entity_id_from_access_key.
        entity_id_from_access_key(self.access_key)

    @classmethod
    def from_payload(cls, body: str | bytes | dict | None) -> NotificationRequest:
        """Build a request from a raw inbound payload.

        Malformed JSON does not raise: it yields a request with an empty
        access key in the test environment, which ``validate`` rejects.
        """
        data: Any = body
        if isinstance(body, (str, bytes)):
            try:
                data = json.loads(body)
            except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
                return cls(access_key="", environment=Environment.TEST)

        if not isinstance(data, dict):
            return cls(access_key="", environment=Environment.TEST)

        access_key = data.get("accessKey")
        return cls(
            access_key=access_key.strip() if isinstance(access_key, str) else "",
            environment=Environment.parse(data.get("environment")),
            event_type=data.get("eventType"),
            status=data.get("status"),
            timestamp=data.get("timestamp"),
        )

    def to_message(self) -> dict[str, Any]:
        """Serialize for the downstream topic."""
        return {
            "eventType": self.event_type,
            "status": self.status,
            "accessKey": self.access_key,
            "environment": self.environment.value,
            "timestamp": self.timestamp,
        }


# ---------------------------------------------------------------------------
# Invoice document
# ---------------------------------------------------------------------------

@dataclass
class IssuerInfo:
    """Tax-authority header of the invoice (``infoTributaria``)."""

    legal_name: str | None = None           # razonSocial
    commercial_name: str | None = None      # nombreComercial
    tax_id: str | None = None               # ruc
    establishment: str | None = None        # estab
    emission_point: str | None = None       # ptoEmi
    sequence: str | None = None             # secuencial
    access_key: str | None = None           # claveAcceso

    @property
    def issuance_point(self) -> str | None:
        """Printable document number, e.g. '001-002-000000123'."""
        parts = [self.establishment, self.emission_point, self.sequence]
        if not any(parts):
            return None
        return "-".join(p or NOT_AVAILABLE for p in parts)


@dataclass
class BuyerInfo:
    """Buyer and totals block of the invoice (``infoFactura``)."""

    name: str | None = None                 # razonSocialComprador
    identification: str | None = None       # identificacionComprador
    issue_date: str | None = None           # fechaEmision
    currency: str | None = None             # moneda
    subtotal: str | None = None             # totalSinImpuestos
    total: str | None = None                # importeTotal


@dataclass
class LineItem:
    """One ``detalle`` entry."""

    description: str | None = None
    quantity: str | None = None
    unit_price: str | None = None
    line_total: str | None = None

    def summary_line(self) -> str:
        """'description | qty | unit price | line total'."""
        return " | ".join(
            v or NOT_AVAILABLE
            for v in (self.description, self.quantity, self.unit_price, self.line_total)
        )


@dataclass
class AdditionalField:
    """One ``campoAdicional`` name/value pair."""

    name: str
    value: str = ""


@dataclass
class InvoiceDocument:
    """Typed view of an authorized SRI invoice.

    Optional sections are ``None`` when the document leaves them out.
    ``additional_fields`` is ``None`` when the ``infoAdicional`` section
    is absent altogether, and an empty list when it is present but empty.
    """

    issuer: IssuerInfo | None = None
    buyer: BuyerInfo | None = None
    line_items: list[LineItem] = field(default_factory=list)
    additional_fields: list[AdditionalField] | None = None

    # Populated when the document arrived wrapped in an authorization envelope.
    authorization_number: str | None = None
    authorization_date: str | None = None

    @property
    def has_additional_fields(self) -> bool:
        return self.additional_fields is not None

    def first_line_items(self, limit: int = 10) -> list[LineItem]:
        """Bounded view of the line items used for rendering."""
        return self.line_items[:limit]


# ---------------------------------------------------------------------------
# Outbound email
# ---------------------------------------------------------------------------

@dataclass
class Attachment:
    """A named binary attachment and its MIME type."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def maintype(self) -> str:
        return self.content_type.split("/", 1)[0]

    @property
    def subtype(self) -> str:
        return self.content_type.split("/", 1)[1]


@dataclass
class OutboundEmail:
    """A fully assembled message ready for the mail transport."""

    sender: str
    recipient: str
    subject: str
    text_body: str
    attachments: list[Attachment] = field(default_factory=list)
    boundary: str = ""
    raw: bytes = b""

    def as_bytes(self) -> bytes:
        return self.raw


# ---------------------------------------------------------------------------
# Batch outcome
# ---------------------------------------------------------------------------

@dataclass
class ItemFailure:
    """Why a single batch item could not be completed."""

    item_identifier: str
    access_key: str
    error_type: str
    message: str
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemIdentifier": self.item_identifier,
            "accessKey": self.access_key,
            "errorType": self.error_type,
            "message": self.message,
            "retryable": self.retryable,
        }


@dataclass
class BatchOutcome:
    """Aggregate result of one dispatch batch.

    The batch is failed when any item failed, regardless of how many
    succeeded.  Insertions are lock-guarded so items may be processed
    concurrently.
    """

    total: int = 0
    succeeded: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def failed(self) -> bool:
        return bool(self.failures)

    @property
    def failed_identifiers(self) -> list[str]:
        return [f.item_identifier for f in self.failures]

    def record_success(self, item_identifier: str) -> None:
        with self._lock:
            self.succeeded.append(item_identifier)

    def record_failure(self, failure: ItemFailure) -> None:
        with self._lock:
            self.failures.append(failure)

    def summary(self) -> str:
        """'2 of 5 notifications failed' or 'All 5 notifications sent'."""
        if self.failed:
            return f"{len(self.failures)} of {self.total} notifications failed"
        return f"All {self.total} notifications sent"

    def to_batch_response(self) -> dict[str, list[dict[str, str]]]:
        """Partial-batch response understood by the queue integration."""
        return {
            "batchItemFailures": [
                {"itemIdentifier": f.item_identifier} for f in self.failures
            ]
        }
