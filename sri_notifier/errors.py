"""SRI Notifier -- Error Taxonomy.

Every failure the notification pipeline knows how to name is a
``NotifierError``.  The dispatch stage converts each one into a per-item
entry of the batch outcome; the stream stage lets them propagate so the
whole stream batch is retried.

    ValidationError    missing / malformed access key        (permanent)
    NotFoundError      document missing at expected location (retryable)
    ParseError         document structure unrecognized       (permanent)
    RecipientNotFound  no usable "Email" additional field    (permanent)
    DispatchError      mail transport failure                (retryable)
    PublishError       downstream topic publish failure      (retryable)
    ConfigError        required settings missing             (permanent)
"""

from __future__ import annotations


class NotifierError(Exception):
    """Base class for all pipeline errors."""

    retryable: bool = False


class ConfigError(NotifierError):
    """Required configuration values are missing or invalid."""


class ValidationError(NotifierError):
    """The notification request is missing or carries a malformed access key."""


class NotFoundError(NotifierError):
    """The authorized document is not present at its expected location."""

    retryable = True


class ParseError(NotifierError):
    """The document's top-level structure could not be recognized."""


class RecipientNotFound(NotifierError):
    """The document carries no usable notification email address."""


class DispatchError(NotifierError):
    """The mail transport rejected or failed to accept the message."""

    retryable = True


class PublishError(NotifierError):
    """The downstream topic rejected or failed to accept a notification."""

    retryable = True
