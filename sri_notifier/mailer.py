"""
SRI Notifier -- Mail Dispatch

Hands an assembled message to a transport and returns its message id.

    SESMailer        Amazon SES SendRawEmail (deployed functions)
    DirectoryMailer  writes each message as a .eml file (dry runs)

Transport failures surface as DispatchError so the dispatch stage can
record them against the item and let the queue redeliver it.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from .config import AWSSettings
from .errors import DispatchError
from .models import OutboundEmail
from .storage import build_client

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    """Sends one raw message; returns the transport's message id."""

    def send(self, email: OutboundEmail) -> str:
        ...


class SESMailer:
    """Amazon SES transport using SendRawEmail.

    Args:
        client: A boto3 SES client; built from ``aws`` when omitted.
        aws: Region / endpoint used to build the default client.
    """

    def __init__(self, client: Any = None, aws: Optional[AWSSettings] = None) -> None:
        self.client = client if client is not None else build_client("ses", aws)

    def send(self, email: OutboundEmail) -> str:
        try:
            response = self.client.send_raw_email(RawMessage={"Data": email.as_bytes()})
        except ClientError as exc:
            error = exc.response.get("Error", {})
            raise DispatchError(
                f"SES rejected message to {email.recipient}: "
                f"{error.get('Code', 'Unknown')} {error.get('Message', '')}".strip()
            ) from exc
        except BotoCoreError as exc:
            raise DispatchError(f"SES transport error for {email.recipient}: {exc}") from exc

        message_id = response.get("MessageId", "")
        logger.info("SES: email sent to %s, message_id=%s", email.recipient, message_id)
        return message_id


class DirectoryMailer:
    """Writes messages to ``output_dir`` instead of sending them."""

    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir)
        self.sent: list[Path] = []

    def send(self, email: OutboundEmail) -> str:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        name = _safe_filename(email.attachments[0].filename if email.attachments else email.boundary)
        path = self.output_dir / f"{Path(name).stem}.eml"
        try:
            path.write_bytes(email.as_bytes())
        except OSError as exc:
            raise DispatchError(f"Could not write {path}: {exc}") from exc
        self.sent.append(path)
        logger.info("Wrote %s for %s", path, email.recipient)
        return path.name


def _safe_filename(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", name) or "message"
