"""
S3 storage operations.

S3Storage wraps a boto3 client with retries on transient errors and maps
ClientError codes to plain Python exceptions, so callers only deal with
FileNotFoundError / PermissionError / ValueError.
"""

from __future__ import annotations

import random
import time
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    ReadTimeoutError,
    ConnectionClosedError,
    ConnectTimeoutError,
)

from .constants import MAX_SOURCE_BYTES
from .logging import get_logger


def get_s3_client(region: Optional[str] = None):
    """Create S3 client (one per process)."""
    return boto3.client(
        "s3",
        region_name=region,
        config=Config(retries={"max_attempts": 4}, connect_timeout=3, read_timeout=30),
    )


class S3Storage:
    """
    Object store used by the worker: read the source, write the derived object.
    """

    def __init__(self, s3_client=None, region: Optional[str] = None, max_retries: int = 3, logger=None):
        self._s3 = s3_client or get_s3_client(region)
        self.max_retries = max_retries
        self.logger = logger or get_logger("io_s3")
        self._transient_codes = {
            "500", "503", "RequestTimeout", "SlowDown",
            "InternalError", "ServiceUnavailable",
        }
        self._network_exceptions = (
            EndpointConnectionError, ReadTimeoutError,
            ConnectionClosedError, ConnectTimeoutError,
        )

    @property
    def s3(self):
        return self._s3

    # ------------------------------------------------------------------------
    # READ OPERATIONS
    # ------------------------------------------------------------------------

    def get_bytes(self, bucket: str, key: str, *, max_size: int = MAX_SOURCE_BYTES) -> bytes:
        """Download object as bytes (must be <= max_size)."""
        uri = self._check_location(bucket, key)

        for attempt in range(self.max_retries):
            try:
                resp = self.s3.get_object(Bucket=bucket, Key=key)
                size = resp.get("ContentLength")
                body = resp["Body"]
                try:
                    if size and size > max_size:
                        raise ValueError(f"Object exceeds {max_size} byte limit ({size} bytes): {uri}")
                    data = body.read(max_size + 1)
                finally:
                    body.close()

                if len(data) > max_size:
                    raise ValueError(f"Object exceeds {max_size} byte limit while streaming: {uri}")

                self.logger.debug("Downloaded object", {"uri": uri, "size": len(data)})
                return data

            except ClientError as e:
                if not self._should_retry(e, attempt):
                    self.logger.error(f"Download failed: {uri}", {"error": str(e)})
                    self._raise_mapped_error(e, uri)
                self.logger.warning(f"Download retry {attempt + 1}/{self.max_retries}", {"uri": uri})
                time.sleep(self._backoff(attempt))
            except self._network_exceptions:
                if attempt < self.max_retries - 1:
                    self.logger.warning(f"Network error on download (retry {attempt + 1})", {"uri": uri})
                    time.sleep(self._backoff(attempt))
                    continue
                raise

        raise RuntimeError(f"Failed to download after {self.max_retries} attempts: {uri}")

    # ------------------------------------------------------------------------
    # WRITE OPERATIONS
    # ------------------------------------------------------------------------

    def put_bytes(
        self,
        bucket: str,
        key: str,
        data: bytes,
        content_type: str,
    ) -> str:
        """
        Upload bytes under bucket/key. Overwrites whatever is there, so writing
        the same derived object twice is harmless. Returns the s3:// URI.
        """
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("put_bytes() expects bytes or bytearray")
        if not content_type:
            raise ValueError("put_bytes() requires content_type")

        uri = self._check_location(bucket, key)

        for attempt in range(self.max_retries):
            try:
                self.s3.put_object(
                    Bucket=bucket, Key=key, Body=bytes(data), ContentType=content_type,
                )
                self.logger.debug("Uploaded object", {"uri": uri, "size": len(data)})
                return uri

            except ClientError as e:
                if not self._should_retry(e, attempt):
                    self.logger.error(f"Upload failed: {uri}", {"error": str(e)})
                    self._raise_mapped_error(e, uri)
                self.logger.warning(f"Upload retry {attempt + 1}/{self.max_retries}", {"uri": uri})
                time.sleep(self._backoff(attempt))
            except self._network_exceptions:
                if attempt < self.max_retries - 1:
                    self.logger.warning(f"Network error on upload (retry {attempt + 1})", {"uri": uri})
                    time.sleep(self._backoff(attempt))
                    continue
                raise

        raise RuntimeError(f"Failed to upload after {self.max_retries} attempts: {uri}")

    # ------------------------------------------------------------------------
    # PRIVATE HELPERS
    # ------------------------------------------------------------------------

    @staticmethod
    def _check_location(bucket: str, key: str) -> str:
        if not isinstance(bucket, str) or not bucket.strip():
            raise ValueError(f"Invalid bucket: {bucket!r}")
        if not isinstance(key, str) or not key:
            raise ValueError(f"Invalid key: {key!r}")
        return f"s3://{bucket}/{key}"

    def _should_retry(self, error: ClientError, attempt: int) -> bool:
        """Check if error is transient and we have retries left."""
        code = error.response.get("Error", {}).get("Code", "")
        return code in self._transient_codes and attempt < self.max_retries - 1

    def _raise_mapped_error(self, error: ClientError, uri: str) -> None:
        """Map ClientError to Python exceptions."""
        code = error.response.get("Error", {}).get("Code", "")

        if code in ("404", "NotFound", "NoSuchKey"):
            raise FileNotFoundError(f"File not found: {uri}") from error
        if code == "NoSuchBucket":
            raise FileNotFoundError(f"Bucket not found: {uri}") from error
        if code in ("AccessDenied", "403"):
            raise PermissionError(f"Access denied: {uri}") from error
        if code in ("PermanentRedirect", "AuthorizationHeaderMalformed"):
            raise ValueError(f"Wrong region/endpoint for {uri}: {code}") from error

        raise error

    @staticmethod
    def _backoff(attempt: int) -> float:
        """Exponential backoff with jitter."""
        return (2 ** attempt) + random.uniform(0, 0.25)


__all__ = ["S3Storage", "get_s3_client"]
