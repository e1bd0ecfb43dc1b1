"""Recipient Extractor for the SRI Notifier.

The notification address travels inside the invoice itself, as the
``campoAdicional`` whose ``nombre`` is exactly ``"Email"``:

    <infoAdicional>
        <campoAdicional nombre="Direccion">Av. Amazonas</campoAdicional>
        <campoAdicional nombre="Email">buyer@example.com</campoAdicional>
    </infoAdicional>

There is no fallback address.  A document without a usable Email field
cannot be notified and the request fails with RecipientNotFound.
"""

from __future__ import annotations

import logging

from .errors import RecipientNotFound
from .models import AdditionalField, InvoiceDocument

logger = logging.getLogger(__name__)

RECIPIENT_FIELD_NAME = "Email"


def find_recipient(fields: list[AdditionalField] | None) -> str:
    """Return the Email value from an additional-fields section.

    Args:
        fields: The parsed ``infoAdicional`` entries, or None when the
            section is absent.

    Raises:
        RecipientNotFound: The section is absent, no entry is named
            exactly "Email", or the first such entry is blank or holds
            a line break.
    """
    if fields is None:
        raise RecipientNotFound("Document has no additional-fields section")

    for entry in fields:
        if entry.name != RECIPIENT_FIELD_NAME:
            continue
        address = entry.value.strip()
        if not address:
            raise RecipientNotFound("Additional field 'Email' is empty")
        if "\r" in address or "\n" in address:
            raise RecipientNotFound("Additional field 'Email' spans more than one line")
        return address

    raise RecipientNotFound("Document has no additional field named 'Email'")


def extract_recipient(document: InvoiceDocument) -> str:
    """Return the notification address carried by ``document``."""
    recipient = find_recipient(document.additional_fields)
    logger.debug("Recipient resolved from additional fields: %s", recipient)
    return recipient
