"""
SQS queue operations.

The worker pool only needs three calls: long-poll receive, delete (ACK) and
change visibility (lease extension). Body decoding lives in message.py.
Inject a stubbed boto3 client, or any object with the same methods, for tests.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config

from .constants import SQS_MAX_VISIBILITY, SQS_MAX_WAIT_SECONDS
from .logging import get_logger
from .retry import call_with_retry


RawMessage = Dict[str, Any]


def get_sqs_client(region: Optional[str] = None):
    """Create SQS client (one per process). Tuned for long-polling."""
    return boto3.client(
        "sqs",
        region_name=region,
        config=Config(
            # Retries are explicit (call_with_retry); receive errors back off in the pool
            retries={"max_attempts": 0},
            read_timeout=70,     # > 20s long-poll
            connect_timeout=3,
        ),
    )


class SQSClient:
    """
    Thin adapter over a boto3 SQS client. Delete and visibility calls retry
    on transient errors.
    Safe to share across worker threads: it holds no per-call state.
    """

    def __init__(self, sqs_client=None, region: Optional[str] = None, max_retries: int = 5, logger=None):
        self._sqs = sqs_client or get_sqs_client(region)
        self.max_retries = max_retries
        self.logger = logger or get_logger("io_sqs")

    @property
    def sqs(self):
        return self._sqs

    # ------------------------------------------------------------------------
    # RECEIVING
    # ------------------------------------------------------------------------

    def receive_messages(
        self,
        queue_url: str,
        max_messages: int = 1,
        wait_seconds: int = SQS_MAX_WAIT_SECONDS,
        visibility_timeout: Optional[int] = None,
    ) -> List[RawMessage]:
        """
        Long-poll SQS queue and return up to max_messages (1-10).

        Not retried here: a failed receive goes straight back to the polling
        loop, which waits its full backoff before the next attempt.
        """
        max_n = max(1, min(int(max_messages), 10))
        wait_s = max(0, min(int(wait_seconds), SQS_MAX_WAIT_SECONDS))

        params = {
            "QueueUrl": queue_url,
            "MaxNumberOfMessages": max_n,
            "WaitTimeSeconds": wait_s,
            "AttributeNames": ["ApproximateReceiveCount", "SentTimestamp"],
            "ReceiveRequestAttemptId": uuid.uuid4().hex,
        }
        if visibility_timeout is not None:
            params["VisibilityTimeout"] = max(0, min(int(visibility_timeout), SQS_MAX_VISIBILITY))

        resp = self.sqs.receive_message(**params)
        messages = resp.get("Messages", [])
        if messages:
            self.logger.debug(f"Received {len(messages)} message(s)", {"queue_url": queue_url})
        return messages

    # ------------------------------------------------------------------------
    # ACKNOWLEDGEMENT & VISIBILITY
    # ------------------------------------------------------------------------

    def delete_message(self, queue_url: str, receipt_handle: str) -> None:
        """ACK message: permanently remove from queue."""
        if not isinstance(receipt_handle, str) or not receipt_handle.strip():
            raise ValueError("delete_message: receipt_handle required")

        call_with_retry(
            self.sqs.delete_message,
            max_retries=self.max_retries,
            logger=self.logger,
            QueueUrl=queue_url,
            ReceiptHandle=receipt_handle,
        )

    def change_visibility(self, queue_url: str, receipt_handle: str, visibility_timeout: int) -> None:
        """Extend (or shorten) message invisibility."""
        if not isinstance(receipt_handle, str) or not receipt_handle.strip():
            raise ValueError("change_visibility: receipt_handle required")
        if isinstance(visibility_timeout, bool) or not isinstance(visibility_timeout, int) or visibility_timeout < 0:
            raise ValueError("change_visibility: timeout must be non-negative int")

        call_with_retry(
            self.sqs.change_message_visibility,
            max_retries=self.max_retries,
            logger=self.logger,
            QueueUrl=queue_url,
            ReceiptHandle=receipt_handle,
            VisibilityTimeout=min(visibility_timeout, SQS_MAX_VISIBILITY),
        )


__all__ = ["SQSClient", "get_sqs_client", "RawMessage"]
