"""Downstream hand-off for authorized vouchers.

The stream stage publishes one STATUS_CHANGE message per qualifying
transition.  ``eventType`` and ``status`` are mirrored as message
attributes so subscribers can filter without parsing the body.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from .config import AWSSettings
from .errors import PublishError
from .storage import build_client

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    def publish(self, message: dict[str, Any]) -> str:
        """Publish ``message``; return the transport's message id."""
        ...


def message_attributes(message: dict[str, Any]) -> dict[str, dict[str, str]]:
    """SNS attributes mirroring eventType and status."""
    return {
        "eventType": {"DataType": "String", "StringValue": str(message["eventType"])},
        "status": {"DataType": "String", "StringValue": str(message["status"])},
    }


class SNSPublisher:
    """Publishes notification requests to an SNS topic."""

    def __init__(
        self,
        topic_arn: str,
        client: Any = None,
        aws: Optional[AWSSettings] = None,
    ) -> None:
        self.topic_arn = topic_arn
        self.client = client if client is not None else build_client("sns", aws)

    def publish(self, message: dict[str, Any]) -> str:
        try:
            result = self.client.publish(
                TopicArn=self.topic_arn,
                Message=json.dumps(message),
                MessageAttributes=message_attributes(message),
            )
        except (ClientError, BotoCoreError) as exc:
            raise PublishError(
                f"Failed to publish {message.get('accessKey')} to {self.topic_arn}: {exc}"
            ) from exc

        message_id = result.get("MessageId", "")
        logger.info("SNS message published: %s", message_id)
        return message_id


class InMemoryPublisher:
    """Collects published messages (tests and dry runs)."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    def publish(self, message: dict[str, Any]) -> str:
        self.messages.append(message)
        return f"local-{len(self.messages)}"
