"""AWS Lambda entry points.

    send_email_handler        queue/topic-triggered dispatch stage
    stream_processor_handler  DynamoDB-stream-triggered detector stage

Collaborators (S3, SES, SNS clients) are built once per process and
reused across invocations.  Configuration is re-read on every cold start
from the function's environment variables.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from .change_detector import TransitionDetector
from .config import NotifierConfig, get_config
from .dispatcher import DispatchCoordinator, items_from_event
from .mailer import SESMailer
from .publisher import SNSPublisher
from .storage import S3DocumentStore

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _config() -> NotifierConfig:
    cfg = get_config()
    logging.getLogger().setLevel(cfg.logging.level.upper())
    return cfg


@lru_cache(maxsize=1)
def _coordinator() -> DispatchCoordinator:
    cfg = _config()
    cfg.require_sender_settings()
    return DispatchCoordinator(
        config=cfg,
        store=S3DocumentStore(cfg.storage, aws=cfg.aws),
        mailer=SESMailer(aws=cfg.aws),
    )


@lru_cache(maxsize=1)
def _detector() -> TransitionDetector:
    cfg = _config()
    cfg.require_topic_settings()
    return TransitionDetector(
        publisher=SNSPublisher(cfg.topic.topic_arn, aws=cfg.aws),
        routing=cfg.routing,
        event_type=cfg.topic.event_type,
    )


def send_email_handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    """Send one notification per record; report failed items individually.

    Returns the partial-batch response
    ``{"batchItemFailures": [{"itemIdentifier": ...}, ...]}``.
    Configuration errors raise so the whole invocation fails.
    """
    coordinator = _coordinator()
    items = items_from_event(event)
    logger.info("Processing %d notification(s)", len(items))
    outcome = coordinator.process_batch(items)
    return outcome.to_batch_response()


def stream_processor_handler(event: dict[str, Any], context: Any = None) -> dict[str, int]:
    """Forward authorized transitions; any error fails the whole batch."""
    detector = _detector()
    records = event.get("Records", [])
    logger.info("Processing %d stream record(s)", len(records))
    forwarded = detector.process_records(records)
    return {"records": len(records), "forwarded": len(forwarded)}


def reset_collaborators() -> None:
    """Drop cached config and clients (tests, config reloads)."""
    _config.cache_clear()
    _coordinator.cache_clear()
    _detector.cache_clear()
