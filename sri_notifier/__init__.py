"""SRI Notifier - Authorized Invoice Notifications.

Two stages around the electronic-invoice authorization flow: a detector
that watches the voucher store's change stream for transitions to
AUTHORIZED, and a dispatcher that fetches the authorized document, builds
a PDF summary and emails both to the buyer.
"""

from .models import (
    BatchOutcome,
    ChangeType,
    Environment,
    InvoiceDocument,
    ItemFailure,
    NotificationRequest,
    OutboundEmail,
    VoucherStatus,
)

from .change_detector import TransitionDetector
from .dispatcher import DispatchCoordinator

__all__ = [
    "BatchOutcome",
    "ChangeType",
    "DispatchCoordinator",
    "Environment",
    "InvoiceDocument",
    "ItemFailure",
    "NotificationRequest",
    "OutboundEmail",
    "TransitionDetector",
    "VoucherStatus",
]
