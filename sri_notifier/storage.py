"""Document retrieval for the SRI Notifier.

Authorized invoices are archived in S3, one bucket per environment, under
``{entity_id}/authorized/{access_key}.xml``.  ``DocumentStore`` is the
interface the dispatch stage depends on; ``S3DocumentStore`` is the
production implementation and ``InMemoryDocumentStore`` serves tests and
local runs.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Protocol

import boto3
from botocore.exceptions import ClientError

from .config import AWSSettings, StorageSettings
from .errors import NotFoundError
from .models import Environment

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class DocumentStore(Protocol):
    """Fetches raw document bytes by environment and location key."""

    def get(self, environment: Environment, location_key: str) -> bytes:
        """Return the document bytes or raise NotFoundError."""
        ...


class S3DocumentStore:
    """S3-backed document store.

    Args:
        settings: Bucket names per environment.
        client: A boto3 S3 client; built from ``aws`` when omitted.
        aws: Region / endpoint used to build the default client.
    """

    def __init__(
        self,
        settings: StorageSettings,
        client: Any = None,
        aws: Optional[AWSSettings] = None,
    ) -> None:
        self.settings = settings
        self.s3 = client if client is not None else build_client("s3", aws)

    def get(self, environment: Environment, location_key: str) -> bytes:
        bucket = self.settings.bucket_for(environment)
        try:
            response = self.s3.get_object(Bucket=bucket, Key=location_key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _MISSING_KEY_CODES:
                raise NotFoundError(
                    f"Document not found: s3://{bucket}/{location_key}"
                ) from exc
            logger.error("Failed to read s3://%s/%s: %s", bucket, location_key, exc)
            raise

        body = response.get("Body")
        content = body.read() if body is not None else b""
        if not content:
            raise NotFoundError(f"Empty S3 object body for {bucket}/{location_key}.")

        logger.debug("Read %d bytes from s3://%s/%s", len(content), bucket, location_key)
        return content


class InMemoryDocumentStore:
    """Dict-backed store keyed by (environment, location key)."""

    def __init__(self, documents: Optional[dict[tuple[Environment, str], bytes]] = None) -> None:
        self.documents = dict(documents or {})
        self.requests: list[tuple[Environment, str]] = []

    def put(self, environment: Environment, location_key: str, content: bytes) -> None:
        self.documents[(environment, location_key)] = content

    def get(self, environment: Environment, location_key: str) -> bytes:
        self.requests.append((environment, location_key))
        content = self.documents.get((environment, location_key))
        if not content:
            raise NotFoundError(f"Document not found: {environment.value}/{location_key}")
        return content


class DirectoryDocumentStore:
    """Reads ``<root>/<environment>/<location key>`` from local disk."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def get(self, environment: Environment, location_key: str) -> bytes:
        path = self.root / environment.value / location_key
        if not path.is_file():
            raise NotFoundError(f"Document not found: {path}")
        content = path.read_bytes()
        if not content:
            raise NotFoundError(f"Empty document: {path}")
        return content


def build_client(service: str, aws: Optional[AWSSettings]):
    """Create a boto3 client honoring the configured region / endpoint."""
    kwargs: dict[str, str] = {}
    if aws is not None and aws.region:
        kwargs["region_name"] = aws.region
    if aws is not None and aws.endpoint_url:
        kwargs["endpoint_url"] = aws.endpoint_url
    return boto3.client(service, **kwargs)
