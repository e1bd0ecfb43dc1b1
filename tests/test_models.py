"""Tests for sri_notifier.models -- requests, document models, batch outcome.

Covers:
- Entity id extraction from access keys
- Environment parsing and labels
- NotificationRequest payload decoding, validation and serialization
- LineItem / IssuerInfo rendering helpers
- BatchOutcome aggregation and partial-batch response
"""

import json
import threading

import pytest

from sri_notifier.errors import ValidationError
from sri_notifier.models import (
    NOT_AVAILABLE,
    AdditionalField,
    BatchOutcome,
    Environment,
    InvoiceDocument,
    IssuerInfo,
    ItemFailure,
    LineItem,
    NotificationRequest,
    entity_id_from_access_key,
)


# ============================================================================
# Entity id
# ============================================================================

class TestEntityId:

    def test_extracts_ruc_at_offset_ten(self, access_key):
        assert entity_id_from_access_key(access_key) == "1790012345001"

    def test_exactly_twenty_three_characters(self):
        assert entity_id_from_access_key("0123456789ABCDEFGHIJKLM") == "ABCDEFGHIJKLM"

    def test_surrounding_whitespace_ignored(self, access_key):
        assert entity_id_from_access_key(f"  {access_key}\n") == "1790012345001"

    @pytest.mark.parametrize("key", ["", "123", "0123456789ABCDEFGHIJKL"])
    def test_short_key_rejected(self, key):
        with pytest.raises(ValidationError):
            entity_id_from_access_key(key)


# ============================================================================
# Environment
# ============================================================================

class TestEnvironment:

    def test_production_exact(self):
        assert Environment.parse("production") is Environment.PRODUCTION

    @pytest.mark.parametrize("value", ["test", "Production", "PRODUCTION", "prod", "", None, 1, {}])
    def test_everything_else_is_test(self, value):
        assert Environment.parse(value) is Environment.TEST

    def test_enum_passthrough(self):
        assert Environment.parse(Environment.PRODUCTION) is Environment.PRODUCTION

    def test_labels(self):
        assert Environment.PRODUCTION.label == "PRODUCTION"
        assert Environment.TEST.label == "TEST"


# ============================================================================
# NotificationRequest
# ============================================================================

class TestNotificationRequest:

    def test_from_json_string(self, access_key):
        body = json.dumps({
            "eventType": "STATUS_CHANGE",
            "status": "AUTHORIZED",
            "accessKey": access_key,
            "environment": "production",
            "timestamp": "2026-02-17T17:56:57.000Z",
        })
        request = NotificationRequest.from_payload(body)
        assert request.access_key == access_key
        assert request.environment is Environment.PRODUCTION
        assert request.event_type == "STATUS_CHANGE"
        assert request.status == "AUTHORIZED"
        assert request.timestamp == "2026-02-17T17:56:57.000Z"

    def test_from_bytes(self, access_key):
        body = json.dumps({"accessKey": access_key}).encode("utf-8")
        request = NotificationRequest.from_payload(body)
        assert request.access_key == access_key
        assert request.environment is Environment.TEST

    def test_from_dict(self, access_key):
        request = NotificationRequest.from_payload({"accessKey": access_key, "environment": "test"})
        assert request.access_key == access_key

    @pytest.mark.parametrize("body", ["{not json", "", b"\xff\xfe", "[1, 2]", "42", None])
    def test_malformed_payload_yields_empty_key(self, body):
        request = NotificationRequest.from_payload(body)
        assert request.access_key == ""
        assert request.environment is Environment.TEST

    def test_non_string_access_key_dropped(self):
        assert NotificationRequest.from_payload({"accessKey": 12345}).access_key == ""

    def test_access_key_stripped(self, access_key):
        assert NotificationRequest.from_payload({"accessKey": f" {access_key} "}).access_key == access_key

    def test_identifier_and_entity_id(self, access_key):
        request = NotificationRequest(access_key=access_key)
        assert request.identifier == access_key
        assert request.entity_id == "1790012345001"

    def test_validate_missing_key(self):
        with pytest.raises(ValidationError, match="Missing accessKey in message payload."):
            NotificationRequest(access_key="").validate()

    def test_validate_short_key(self):
        with pytest.raises(ValidationError):
            NotificationRequest(access_key="12345").validate()

    def test_validate_ok(self, access_key):
        NotificationRequest(access_key=access_key).validate()

    def test_to_message(self, access_key):
        request = NotificationRequest(
            access_key=access_key,
            environment=Environment.PRODUCTION,
            event_type="STATUS_CHANGE",
            status="AUTHORIZED",
            timestamp="2026-02-17T17:56:57.000Z",
        )
        assert request.to_message() == {
            "eventType": "STATUS_CHANGE",
            "status": "AUTHORIZED",
            "accessKey": access_key,
            "environment": "production",
            "timestamp": "2026-02-17T17:56:57.000Z",
        }

    def test_message_round_trips_through_payload(self, access_key):
        original = NotificationRequest(
            access_key=access_key, environment=Environment.PRODUCTION,
            event_type="STATUS_CHANGE", status="AUTHORIZED", timestamp="t",
        )
        assert NotificationRequest.from_payload(json.dumps(original.to_message())) == original


# ============================================================================
# Document helpers
# ============================================================================

class TestDocumentModels:

    def test_line_item_summary(self):
        item = LineItem("Widget", "2", "10.00", "20.00")
        assert item.summary_line() == "Widget | 2 | 10.00 | 20.00"

    def test_line_item_summary_placeholders(self):
        item = LineItem(description="Widget")
        assert item.summary_line() == f"Widget | {NOT_AVAILABLE} | {NOT_AVAILABLE} | {NOT_AVAILABLE}"

    def test_issuance_point(self):
        issuer = IssuerInfo(establishment="001", emission_point="002", sequence="000000123")
        assert issuer.issuance_point == "001-002-000000123"

    def test_issuance_point_partial(self):
        assert IssuerInfo(establishment="001").issuance_point == "001-N/A-N/A"

    def test_issuance_point_absent(self):
        assert IssuerInfo().issuance_point is None

    def test_additional_fields_presence(self):
        assert not InvoiceDocument().has_additional_fields
        assert InvoiceDocument(additional_fields=[]).has_additional_fields
        assert InvoiceDocument(additional_fields=[AdditionalField("Email", "a@b.c")]).has_additional_fields

    def test_first_line_items_bounded(self):
        document = InvoiceDocument(line_items=[LineItem(str(i)) for i in range(15)])
        assert [i.description for i in document.first_line_items(10)] == [str(i) for i in range(10)]


# ============================================================================
# BatchOutcome
# ============================================================================

def _failure(identifier: str) -> ItemFailure:
    return ItemFailure(
        item_identifier=identifier,
        access_key="",
        error_type="NotFoundError",
        message="missing",
        retryable=True,
    )


class TestBatchOutcome:

    def test_all_succeeded(self):
        outcome = BatchOutcome(total=3)
        for ident in ("a", "b", "c"):
            outcome.record_success(ident)
        assert not outcome.failed
        assert outcome.summary() == "All 3 notifications sent"
        assert outcome.to_batch_response() == {"batchItemFailures": []}

    def test_any_failure_fails_batch(self):
        outcome = BatchOutcome(total=5)
        for ident in ("a", "c", "d", "e"):
            outcome.record_success(ident)
        outcome.record_failure(_failure("b"))
        assert outcome.failed
        assert outcome.summary() == "1 of 5 notifications failed"
        assert outcome.failed_identifiers == ["b"]
        assert outcome.to_batch_response() == {"batchItemFailures": [{"itemIdentifier": "b"}]}

    def test_failure_to_dict(self):
        assert _failure("m-1").to_dict() == {
            "itemIdentifier": "m-1",
            "accessKey": "",
            "errorType": "NotFoundError",
            "message": "missing",
            "retryable": True,
        }

    def test_concurrent_recording(self):
        outcome = BatchOutcome(total=200)

        def work(start: int) -> None:
            for i in range(start, start + 50):
                if i % 2:
                    outcome.record_failure(_failure(str(i)))
                else:
                    outcome.record_success(str(i))

        threads = [threading.Thread(target=work, args=(n * 50,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(outcome.succeeded) == 100
        assert len(outcome.failures) == 100
