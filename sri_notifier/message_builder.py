"""
SRI Notifier -- Message Assembler

Builds the raw multipart/mixed message handed to the mail transport:

    From / To / Subject / MIME-Version / Content-Type (boundary=...)
    --boundary
        text/plain, 7bit            greeting
    --boundary
        application/xml, base64     {access_key}.xml   (original document)
    --boundary
        application/pdf, base64     {access_key}.pdf   (rendered summary)
    --boundary--

The boundary token combines the current time in nanoseconds with a
random suffix, so two messages built back to back never share one.
Lines are terminated with CRLF.
"""

from __future__ import annotations

import time
import uuid
from email.header import Header
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.policy import compat32
from typing import Sequence

from .models import Attachment, OutboundEmail

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

XML_CONTENT_TYPE = "application/xml"
PDF_CONTENT_TYPE = "application/pdf"

_BOUNDARY_PREFIX = "sri-notifier"

# Same generator rules as the default policy, but CRLF line endings.
_WIRE_POLICY = compat32.clone(linesep="\r\n")


def new_boundary() -> str:
    """Return a boundary token unique to one message."""
    return f"{_BOUNDARY_PREFIX}-{time.time_ns()}-{uuid.uuid4().hex[:12]}"


def xml_attachment(filename: str, content: bytes) -> Attachment:
    return Attachment(filename=filename, content=content, content_type=XML_CONTENT_TYPE)


def pdf_attachment(filename: str, content: bytes) -> Attachment:
    return Attachment(filename=filename, content=content, content_type=PDF_CONTENT_TYPE)


def _text_part(body: str) -> MIMEText:
    # us-ascii bodies go out as 7bit; anything else needs a real charset.
    charset = "us-ascii" if body.isascii() else "utf-8"
    return MIMEText(body, "plain", charset)


def _attachment_part(attachment: Attachment) -> MIMEApplication:
    if attachment.maintype != "application":
        raise ValueError(
            f"Unsupported attachment type '{attachment.content_type}' "
            f"for {attachment.filename}"
        )
    part = MIMEApplication(
        attachment.content,
        _subtype=attachment.subtype,
        Name=attachment.filename,
    )
    part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
    return part


def build_message(
    sender: str,
    recipient: str,
    subject: str,
    body: str,
    attachments: Sequence[Attachment],
    boundary: str | None = None,
) -> OutboundEmail:
    """Assemble a multipart message with a text part and 1-2 attachments.

    Args:
        sender: From address (or 'Name <address>').
        recipient: To address.
        subject: Subject line; non-ASCII text is RFC 2047 encoded.
        body: Plain-text greeting.  The wire form uses CRLF line endings
            throughout, so a body written with CRLF is recovered exactly
            and one written with bare LF comes back with CRLF.
        attachments: One or two attachments, in order.
        boundary: Override the generated boundary token (tests only).

    Returns:
        An OutboundEmail whose ``raw`` bytes are ready for SendRawEmail.
    """
    if not 1 <= len(attachments) <= 2:
        raise ValueError(f"Expected 1 or 2 attachments, got {len(attachments)}")
    if not sender or not recipient:
        raise ValueError("Both sender and recipient are required")

    boundary = boundary or new_boundary()

    msg = MIMEMultipart("mixed", boundary=boundary)
    msg["From"] = sender
    msg["To"] = recipient
    msg["Subject"] = Header(subject, "utf-8") if not subject.isascii() else subject

    msg.attach(_text_part(body))
    for attachment in attachments:
        msg.attach(_attachment_part(attachment))

    return OutboundEmail(
        sender=sender,
        recipient=recipient,
        subject=subject,
        text_body=body,
        attachments=list(attachments),
        boundary=boundary,
        raw=msg.as_bytes(policy=_WIRE_POLICY),
    )
