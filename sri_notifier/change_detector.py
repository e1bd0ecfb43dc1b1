"""
SRI Notifier -- Change-Transition Detector

Watches the voucher table's change stream and forwards one notification
request per voucher that has just become AUTHORIZED.

Forwarding rule:
    change type  == update
    before.status in {RECEIVED, PROCESSING}
    after.status == AUTHORIZED

Every other record is skipped without side effects.

The environment of a forwarded request comes from the record's source
table: an explicit ``routing.source_environments`` entry wins; otherwise a
table name containing the test marker is test and anything else is
production.  Records with no recognizable source are treated as test.

Failure policy: unlike the dispatch stage, an error on any record aborts
the whole batch and propagates.  The stream integration then retries the
batch; publishing is the only side effect and subscribers tolerate
duplicate deliveries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from boto3.dynamodb.types import TypeDeserializer

from .config import EnvironmentRouting
from .errors import ConfigError, ValidationError
from .models import (
    IN_FLIGHT_STATUSES,
    ChangeType,
    Environment,
    NotificationRequest,
    VoucherStatus,
)
from .publisher import Publisher

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Stream event names
# ---------------------------------------------------------------------------

_EVENT_NAMES: dict[str, ChangeType] = {
    "INSERT": ChangeType.INSERT,
    "MODIFY": ChangeType.UPDATE,
    "REMOVE": ChangeType.DELETE,
}

_deserializer = TypeDeserializer()


def _unmarshall(image: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Convert a DynamoDB-JSON image into plain Python values."""
    if image is None:
        return None
    return {key: _deserializer.deserialize(value) for key, value in image.items()}


def table_name_from_arn(arn: Optional[str]) -> Optional[str]:
    """'arn:aws:dynamodb:...:table/vouchers-test/stream/2026...' -> 'vouchers-test'."""
    if not arn or ":table/" not in arn:
        return None
    return arn.split(":table/", 1)[1].split("/stream", 1)[0] or None


def _parse_change_type(value: Optional[str]) -> Optional[ChangeType]:
    if not value:
        return None
    if value in _EVENT_NAMES:
        return _EVENT_NAMES[value]
    try:
        return ChangeType(value.lower())
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Change record
# ---------------------------------------------------------------------------

@dataclass
class ChangeRecord:
    """Before/after snapshots of one voucher plus the kind of change."""

    event_source_ref: Optional[str]
    change_type: Optional[ChangeType]
    before: Optional[dict[str, Any]] = None
    after: Optional[dict[str, Any]] = None

    @property
    def source_name(self) -> Optional[str]:
        """Table name when the source is a stream ARN, else the raw ref."""
        return table_name_from_arn(self.event_source_ref) or self.event_source_ref

    @classmethod
    def from_stream_record(cls, record: dict[str, Any]) -> ChangeRecord:
        """Build from a DynamoDB stream record or an already-plain record.

        Stream records carry ``eventName`` / ``eventSourceARN`` and
        DynamoDB-JSON images under ``dynamodb``; plain records carry
        ``changeType`` / ``eventSourceRef`` / ``before`` / ``after``.
        """
        if "dynamodb" in record or "eventName" in record:
            images = record.get("dynamodb") or {}
            return cls(
                event_source_ref=record.get("eventSourceARN"),
                change_type=_parse_change_type(record.get("eventName")),
                before=_unmarshall(images.get("OldImage")),
                after=_unmarshall(images.get("NewImage")),
            )
        return cls(
            event_source_ref=record.get("eventSourceRef"),
            change_type=_parse_change_type(record.get("changeType")),
            before=record.get("before"),
            after=record.get("after"),
        )


def is_authorization_transition(
    change_type: Optional[ChangeType],
    before_status: Optional[str],
    after_status: Optional[str],
) -> bool:
    """True only for an update from an in-flight status to AUTHORIZED."""
    return (
        change_type is ChangeType.UPDATE
        and before_status in IN_FLIGHT_STATUSES
        and after_status == VoucherStatus.AUTHORIZED.value
    )


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

def _utc_timestamp() -> str:
    """ISO 8601 with millisecond precision and a 'Z' suffix."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TransitionDetector:
    """Forwards authorized transitions to the downstream publisher.

    Args:
        publisher: Receives one message per forwarded transition.
        routing: Source-name to environment rules.
        event_type: Value of the ``eventType`` field and attribute.
        clock: Returns the ISO timestamp stamped on forwarded messages.
    """

    def __init__(
        self,
        publisher: Publisher,
        routing: Optional[EnvironmentRouting] = None,
        event_type: str = "STATUS_CHANGE",
        clock: Optional[Callable[[], str]] = None,
    ) -> None:
        self.publisher = publisher
        self.routing = routing or EnvironmentRouting()
        self.event_type = event_type
        self.clock = clock or _utc_timestamp

    def resolve_environment(self, source_name: Optional[str]) -> Environment:
        """Environment of a record coming from ``source_name``."""
        if source_name and source_name in self.routing.source_environments:
            value = self.routing.source_environments[source_name]
            try:
                return Environment(value)
            except ValueError as exc:
                raise ConfigError(
                    f"Unknown environment '{value}' configured for source '{source_name}'"
                ) from exc
        if not source_name:
            return Environment.TEST
        if self.routing.test_marker and self.routing.test_marker in source_name:
            return Environment.TEST
        return Environment.PRODUCTION

    def detect(self, record: ChangeRecord) -> Optional[NotificationRequest]:
        """Return the request to forward for ``record``, or None to skip."""
        if record.change_type is not ChangeType.UPDATE:
            logger.debug("Skipping non-update change: %s", record.change_type)
            return None
        if record.before is None or record.after is None:
            logger.info("Skipping update without both snapshots from %s", record.source_name)
            return None

        before_status = record.before.get("status")
        after_status = record.after.get("status")
        logger.debug("Status change: %s -> %s", before_status, after_status)

        if not is_authorization_transition(record.change_type, before_status, after_status):
            return None

        access_key = record.after.get("accessKey")
        if not isinstance(access_key, str) or not access_key.strip():
            raise ValidationError(
                f"Authorized record from {record.source_name} carries no accessKey"
            )

        return NotificationRequest(
            access_key=access_key.strip(),
            environment=self.resolve_environment(record.source_name),
            event_type=self.event_type,
            status=after_status,
            timestamp=self.clock(),
        )

    def process_records(self, records: Iterable[dict[str, Any]]) -> list[NotificationRequest]:
        """Detect and publish over a whole stream batch.

        Any error aborts the batch and propagates to the caller.
        """
        forwarded: list[NotificationRequest] = []
        for raw in records:
            try:
                record = ChangeRecord.from_stream_record(raw)
                request = self.detect(record)
                if request is None:
                    continue
                logger.info(
                    "Status changed to %s for %s (%s), publishing",
                    request.status, request.access_key, request.environment.value,
                )
                self.publisher.publish(request.to_message())
            except Exception:
                logger.error("Error processing stream record %s", raw.get("eventID", "<unknown>"))
                raise
            forwarded.append(request)
        return forwarded
