"""SRI Notifier -- Command-line runner.

Runs either pipeline stage locally against a JSON event file, or renders
a single summary PDF for inspection:

    send     dispatch notifications for the records in an event file
    detect   run the transition detector over stream records
    render   write the PDF summary of one invoice XML

Usage::

    # Send through SES, reading documents from S3:
    python -m sri_notifier.main send --events events/sqs.json

    # Dry run: documents from a local tree, messages written as .eml:
    python -m sri_notifier.main send --events events/sqs.json \\
        --documents fixtures/ --eml-dir output/eml

    # Print what the detector would publish:
    python -m sri_notifier.main detect --events events/stream.json --dry-run

    # Preview a summary PDF:
    python -m sri_notifier.main render --xml invoice.xml \\
        --access-key 1234... --out summary.pdf

Event files hold either a Lambda event (``{"Records": [...]}``) or a JSON
list of raw notification payloads.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from .change_detector import TransitionDetector
from .config import LoggingSettings, NotifierConfig, get_config
from .dispatcher import DispatchCoordinator, InboundItem, items_from_event, items_from_payloads
from .errors import ConfigError, NotifierError
from .invoice_parser import decode_document, parse_invoice
from .mailer import DirectoryMailer, SESMailer
from .models import BatchOutcome, Environment, NotificationRequest
from .publisher import InMemoryPublisher, SNSPublisher
from .storage import DirectoryDocumentStore, S3DocumentStore
from .summary_renderer import build_summary, render_pdf

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event files
# ---------------------------------------------------------------------------

def load_events(path: str | Path) -> Any:
    """Read a JSON event file; raises FileNotFoundError / ValueError."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Event file not found: {p}")
    with open(p, "r", encoding="utf-8") as f:
        return json.load(f)


def _inbound_items(events: Any) -> list[InboundItem]:
    if isinstance(events, dict):
        return items_from_event(events)
    if isinstance(events, list):
        return items_from_payloads(events)
    raise ValueError("Event file must hold a Lambda event object or a list of payloads")


def _stream_records(events: Any) -> list[dict[str, Any]]:
    if isinstance(events, dict):
        return list(events.get("Records", []))
    if isinstance(events, list):
        return events
    raise ValueError("Event file must hold a Lambda event object or a list of records")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def run_send(
    config: NotifierConfig,
    events_path: str,
    eml_dir: Optional[str] = None,
    documents_dir: Optional[str] = None,
) -> BatchOutcome:
    """Dispatch every item in the event file."""
    if documents_dir:
        if not config.sender.email:
            raise ConfigError("Missing required environment variables: SENDER_EMAIL")
        store = DirectoryDocumentStore(documents_dir)
    else:
        config.require_sender_settings()
        store = S3DocumentStore(config.storage, aws=config.aws)

    if eml_dir is not None:
        mailer = DirectoryMailer(eml_dir or config.output.resolved_eml_dir)
    else:
        mailer = SESMailer(aws=config.aws)

    coordinator = DispatchCoordinator(config=config, store=store, mailer=mailer)
    items = _inbound_items(load_events(events_path))
    logger.info("Loaded %d item(s) from %s", len(items), events_path)
    return coordinator.process_batch(items)


def run_detect(config: NotifierConfig, events_path: str, dry_run: bool = False) -> list[NotificationRequest]:
    """Run the detector; with ``dry_run`` nothing leaves the process."""
    if dry_run:
        publisher = InMemoryPublisher()
    else:
        config.require_topic_settings()
        publisher = SNSPublisher(config.topic.topic_arn, aws=config.aws)

    detector = TransitionDetector(
        publisher=publisher,
        routing=config.routing,
        event_type=config.topic.event_type,
    )
    records = _stream_records(load_events(events_path))
    logger.info("Loaded %d stream record(s) from %s", len(records), events_path)
    return detector.process_records(records)


def run_render(
    config: NotifierConfig,
    xml_path: str,
    access_key: Optional[str],
    out_path: str,
    environment: Environment = Environment.TEST,
) -> Path:
    """Render the summary PDF for one local invoice file.

    Without ``access_key`` the header shows the document's own claveAcceso.
    """
    p = Path(xml_path)
    if not p.exists():
        raise FileNotFoundError(f"XML file not found: {p}")
    raw = p.read_bytes()

    summary = build_summary(
        parse_invoice(raw),
        decode_document(raw),
        access_key=access_key or "",
        environment=environment,
        settings=config.render,
    )
    out = Path(out_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(render_pdf(summary))
    logger.info("Wrote %d-page summary to %s", summary.page_count, out)
    return out


# ---------------------------------------------------------------------------
# Summary Printer
# ---------------------------------------------------------------------------

def _print_send_summary(outcome: BatchOutcome) -> None:
    print()
    print("=" * 65)
    print("  SRI Notifier -- Send Summary")
    print("=" * 65)
    print(f"  Items               : {outcome.total}")
    print(f"  Sent                : {len(outcome.succeeded)}")
    print(f"  Failed              : {len(outcome.failures)}")
    if outcome.failures:
        print("-" * 65)
        for failure in outcome.failures:
            retry = "retry" if failure.retryable else "final"
            print(f"    {failure.item_identifier:<30s} {failure.error_type:<18s} [{retry}]")
            print(f"      {failure.message}")
    print("=" * 65)


def _print_detect_summary(forwarded: list[NotificationRequest], dry_run: bool) -> None:
    label = "would publish" if dry_run else "published"
    print()
    print(f"{len(forwarded)} notification(s) {label}:")
    for request in forwarded:
        print(f"  {request.access_key}  {request.environment.value}")


# ---------------------------------------------------------------------------
# CLI Entry Point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sri-notifier",
        description="SRI Notifier - authorized invoice notifications",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m sri_notifier.main send --events sqs.json --eml-dir out/\n"
            "  python -m sri_notifier.main detect --events stream.json --dry-run\n"
            "  python -m sri_notifier.main render --xml f.xml --access-key K --out f.pdf\n"
        ),
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to config.yaml (default: $SRI_NOTIFIER_CONFIG or project root config.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send", help="Dispatch notifications from an event file")
    send.add_argument("--events", required=True, help="JSON event file")
    send.add_argument(
        "--eml-dir", nargs="?", const="", default=None,
        help="Write .eml files instead of sending (default dir: output.eml_dir)",
    )
    send.add_argument(
        "--documents", default=None,
        help="Read documents from <DIR>/<environment>/<key> instead of S3",
    )

    detect = sub.add_parser("detect", help="Run the transition detector over stream records")
    detect.add_argument("--events", required=True, help="JSON stream event file")
    detect.add_argument("--dry-run", action="store_true", help="Print instead of publishing")

    render = sub.add_parser("render", help="Render the summary PDF of one invoice")
    render.add_argument("--xml", required=True, help="Invoice XML file")
    render.add_argument(
        "--access-key", default=None,
        help="Access key printed in the header (default: the document's claveAcceso)",
    )
    render.add_argument(
        "--environment", default=Environment.TEST.value,
        choices=[e.value for e in Environment],
    )
    render.add_argument("--out", required=True, help="Output PDF path")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point.

    Returns:
        Exit code (0 = success, 1 = failed items or error).
    """
    args = build_parser().parse_args(argv)

    log_settings = LoggingSettings()
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format=log_settings.format,
        datefmt=log_settings.datefmt,
    )

    try:
        config = get_config(args.config)
        if not args.verbose:
            logging.getLogger().setLevel(config.logging.level.upper())

        if args.command == "send":
            outcome = run_send(config, args.events, args.eml_dir, args.documents)
            _print_send_summary(outcome)
            return 1 if outcome.failed else 0

        if args.command == "detect":
            forwarded = run_detect(config, args.events, dry_run=args.dry_run)
            _print_detect_summary(forwarded, args.dry_run)
            return 0

        out = run_render(
            config, args.xml, args.access_key, args.out,
            environment=Environment.parse(args.environment),
        )
        print(f"\nSummary written to: {out}")
        return 0

    except FileNotFoundError as exc:
        logger.error("File not found: %s", exc)
        print(f"\nERROR: {exc}")
        return 1
    except (NotifierError, ValueError) as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        print(f"\nERROR: {exc}")
        return 1
    except Exception as exc:
        logger.exception("Unexpected error")
        print(f"\nUNEXPECTED ERROR: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
