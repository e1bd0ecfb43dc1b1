"""SRI Notifier -- Dispatch Coordinator.

Runs the notification pipeline for every item of an inbound batch:

    1. Deserialize the payload into a NotificationRequest
    2. Validate the access key
    3. Derive the storage location from the access key and environment
    4. Retrieve the authorized document
    5. Parse it and extract the recipient
    6. Render the PDF summary
    7. Assemble the multipart message
    8. Send it

A failure at any step is recorded against that item and processing moves
on to the next one.  The resulting BatchOutcome names exactly the items
that failed, so the queue integration redelivers only those.

Usage::

    coordinator = DispatchCoordinator(config, store, mailer)
    outcome = coordinator.process_batch(items)
    return outcome.to_batch_response()
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, Sequence

from .config import NotifierConfig
from .errors import NotifierError
from .invoice_parser import decode_document, parse_invoice
from .mailer import Mailer
from .message_builder import build_message, pdf_attachment, xml_attachment
from .models import Attachment, BatchOutcome, ItemFailure, NotificationRequest
from .recipient import extract_recipient
from .storage import DocumentStore
from .summary_renderer import build_summary, render_pdf
from .template_engine import TemplateEngine, pdf_filename, xml_filename

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Inbound items
# ---------------------------------------------------------------------------

@dataclass
class InboundItem:
    """One raw batch item: the queue's identifier plus the payload."""

    item_identifier: str
    body: Any

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> InboundItem:
        """Build an item from an SQS or SNS Lambda event record."""
        if "Sns" in record:
            sns = record["Sns"]
            return cls(item_identifier=sns.get("MessageId", ""), body=sns.get("Message", ""))
        return cls(
            item_identifier=record.get("messageId", ""),
            body=unwrap_notification(record.get("body", "")),
        )


def unwrap_notification(body: Any) -> Any:
    """Return the inner message of an SNS envelope delivered through SQS.

    Bodies that are not an SNS ``Notification`` envelope are returned
    unchanged, including bodies that are not JSON at all.
    """
    if not isinstance(body, str):
        return body
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body
    if isinstance(data, dict) and data.get("Type") == "Notification" and "Message" in data:
        return data["Message"]
    return body


def items_from_event(event: dict[str, Any]) -> list[InboundItem]:
    return [InboundItem.from_record(record) for record in event.get("Records", [])]


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class DispatchCoordinator:
    """Processes notification batches with per-item failure isolation.

    Args:
        config: Loaded configuration (sender, storage, render settings).
        store: Document retrieval collaborator.
        mailer: Mail dispatch collaborator.
        templates: Subject/body renderer.
        clock: Returns the generation timestamp for summaries.
    """

    def __init__(
        self,
        config: NotifierConfig,
        store: DocumentStore,
        mailer: Mailer,
        templates: Optional[TemplateEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.mailer = mailer
        self.templates = templates or TemplateEngine()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def process_batch(self, items: Iterable[InboundItem]) -> BatchOutcome:
        """Run every item; never raises for a per-item failure."""
        items = list(items)
        outcome = BatchOutcome(total=len(items))

        workers = max(1, self.config.dispatch.max_workers)
        if workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                list(pool.map(lambda item: self._run_item(item, outcome), items))
        else:
            for item in items:
                self._run_item(item, outcome)

        if outcome.failed:
            logger.error("%s: %s", outcome.summary(), ", ".join(outcome.failed_identifiers))
        else:
            logger.info(outcome.summary())
        return outcome

    def _run_item(self, item: InboundItem, outcome: BatchOutcome) -> None:
        request = NotificationRequest.from_payload(item.body)
        identifier = item.item_identifier or request.access_key

        try:
            message_id = self.process_request(request)
        except NotifierError as exc:
            logger.warning(
                "Notification %s failed (%s): %s",
                identifier or "<no id>", type(exc).__name__, exc,
            )
            outcome.record_failure(_failure(identifier, request, exc, exc.retryable))
        except Exception as exc:
            logger.exception("Unexpected error processing notification %s", identifier or "<no id>")
            outcome.record_failure(_failure(identifier, request, exc, True))
        else:
            logger.info("Notification %s sent (message_id=%s)", identifier, message_id)
            outcome.record_success(identifier)

    # ------------------------------------------------------------------
    # Single request
    # ------------------------------------------------------------------

    def process_request(self, request: NotificationRequest) -> str:
        """Run the full pipeline for one request; return the message id.

        Raises:
            ValidationError, NotFoundError, ParseError, RecipientNotFound,
            DispatchError: the first step that fails.
        """
        request.validate()

        location_key = self.config.storage.location_key(request.entity_id, request.access_key)
        logger.debug(
            "Fetching %s from %s storage", location_key, request.environment.value,
        )
        raw = self.store.get(request.environment, location_key)

        document = parse_invoice(raw)
        recipient = extract_recipient(document)

        attachments = self._build_attachments(request, document, raw)
        include_summary = len(attachments) > 1

        email = build_message(
            sender=self.config.sender.from_header,
            recipient=recipient,
            subject=self.templates.render_subject(request.environment),
            body=self.templates.render_body(
                request.access_key, request.environment, include_summary=include_summary,
            ),
            attachments=attachments,
        )
        return self.mailer.send(email)

    def _build_attachments(self, request: NotificationRequest, document, raw: bytes) -> list[Attachment]:
        attachments = [xml_attachment(xml_filename(request.access_key), raw)]
        if not self.config.render.attach_summary:
            return attachments

        summary = build_summary(
            document,
            decode_document(raw),
            access_key=request.access_key,
            environment=request.environment,
            generated_at=self.clock(),
            settings=self.config.render,
        )
        attachments.append(pdf_attachment(pdf_filename(request.access_key), render_pdf(summary)))
        return attachments


def _failure(
    identifier: str,
    request: NotificationRequest,
    exc: Exception,
    retryable: bool,
) -> ItemFailure:
    return ItemFailure(
        item_identifier=identifier,
        access_key=request.access_key,
        error_type=type(exc).__name__,
        message=str(exc),
        retryable=retryable,
    )


def items_from_payloads(bodies: Sequence[Any]) -> list[InboundItem]:
    """Wrap raw payloads that carry no queue identifiers.

    Each item is identified by its access key, or by its position in the
    batch when the payload carries none.
    """
    items = []
    for index, body in enumerate(bodies):
        request = NotificationRequest.from_payload(body)
        items.append(InboundItem(item_identifier=request.access_key or f"#{index}", body=body))
    return items


def process_items(
    coordinator: DispatchCoordinator, bodies: Sequence[Any]
) -> BatchOutcome:
    """Run raw payloads through ``coordinator``; see ``items_from_payloads``."""
    return coordinator.process_batch(items_from_payloads(bodies))
