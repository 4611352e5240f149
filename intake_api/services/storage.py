from __future__ import annotations

import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..config import AwsSettings
from .aws import boto3_client, boto3_session

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class StorageError(RuntimeError):
    """Raised when the object store rejects or cannot answer a request."""


class StorageConfigurationError(StorageError):
    """Raised at construction when bucket, region or credentials are missing."""


def sanitize_filename(filename: str) -> str:
    name = os.path.basename(filename or "document.pdf")
    name = re.sub(r"[^A-Za-z0-9._-]", "_", name)
    return name[:100] or "document.pdf"


def sanitize_email(email: str) -> str:
    return re.sub(r"[^A-Za-z0-9@._-]", "_", email.strip())


class StorageGateway:
    """Presigned writes and existence checks against a single S3 bucket."""

    def __init__(
        self,
        aws: AwsSettings,
        *,
        url_ttl: timedelta = timedelta(hours=1),
        client: Optional[Any] = None,
    ) -> None:
        if not aws.s3_bucket:
            raise StorageConfigurationError("S3 bucket is not configured")
        if not aws.region:
            raise StorageConfigurationError("AWS region is not configured")

        self.bucket = aws.s3_bucket
        self.url_ttl = url_ttl
        if client is None:
            session = boto3_session(aws)
            if session.get_credentials() is None:
                raise StorageConfigurationError("AWS credentials are not configured")
            client = boto3_client("s3", aws, session=session)
        self._client = client

        logger.info("Storage gateway ready for bucket %s in %s", self.bucket, aws.region)

    @staticmethod
    def build_key(owner_email: str, filename: str, requested_at: datetime, sequence: int = 0) -> str:
        """Derive a storage key unique to one upload attempt.

        The key combines the sanitized owner email, the request timestamp in
        microseconds, the file's position within its batch and the sanitized
        filename, so repeated uploads of the same name never collide.
        """
        if requested_at.tzinfo is None:
            requested_at = requested_at.replace(tzinfo=timezone.utc)
        micros = (requested_at - _EPOCH) // timedelta(microseconds=1)
        return f"{sanitize_email(owner_email)}/{micros}-{sequence}_{sanitize_filename(filename)}"

    def generate_upload_url(self, key: str, content_type: str) -> str:
        try:
            url = self._client.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=int(self.url_ttl.total_seconds()),
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Failed to generate presigned upload URL for %s", key)
            raise StorageError("Failed to generate presigned URL") from exc

        logger.debug("Generated presigned upload URL for %s", key)
        return url

    def object_exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                logger.warning("Object %s not found during verification", key)
                return False
            logger.exception("Failed to verify object %s", key)
            raise StorageError("Failed to verify uploaded object") from exc
        except BotoCoreError as exc:
            logger.exception("Failed to verify object %s", key)
            raise StorageError("Failed to verify uploaded object") from exc

        return True
