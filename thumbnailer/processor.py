"""
Per-message processing: decode -> fetch -> transform -> store -> ACK.

The message is deleted only after the derived object write returned.
Any failure, a failed delete included, leaves the message in the queue and
pushes its visibility deadline out, so the same work is retried later
(possibly by another worker). Nothing raised here reaches the polling loop.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .constants import (
    DEFAULT_DEST_PREFIX,
    DEFAULT_SOURCE_PREFIX,
    FORMAT_CONTENT_TYPES,
    RETRY_VISIBILITY_SECONDS,
    DEFAULT_THUMBNAIL_FORMAT,
)
from .logging import get_logger
from .message import decode_work_item, derive_key
from .transform import TransformFunction


class MessageProcessor:
    def __init__(
        self,
        storage,
        queue,
        transform: TransformFunction,
        queue_url: str,
        *,
        source_prefix: str = DEFAULT_SOURCE_PREFIX,
        dest_prefix: str = DEFAULT_DEST_PREFIX,
        content_type: str = FORMAT_CONTENT_TYPES[DEFAULT_THUMBNAIL_FORMAT],
        retry_visibility_seconds: int = RETRY_VISIBILITY_SECONDS,
        bucket_allowlist: Optional[List[str]] = None,
        logger=None,
    ):
        self.storage = storage
        self.queue = queue
        self.transform = transform
        self.queue_url = queue_url
        self.source_prefix = source_prefix
        self.dest_prefix = dest_prefix
        self.content_type = content_type
        self.retry_visibility_seconds = retry_visibility_seconds
        self.bucket_allowlist = list(bucket_allowlist or [])
        self.logger = logger or get_logger("processor")

    def process(self, raw_msg: Dict[str, Any], logger=None) -> None:
        """Process one leased message. Never raises."""
        log = logger or self.logger
        if not isinstance(raw_msg, dict):
            log.error("Dropping non-dict message", {"type": type(raw_msg).__name__})
            return

        log = log.bind(message_id=raw_msg.get("MessageId"))
        receipt = raw_msg.get("ReceiptHandle")
        if not isinstance(receipt, str) or not receipt.strip():
            log.warning("No receipt handle; message will reappear after its timeout")
            return

        try:
            item = decode_work_item(raw_msg.get("Body"), self.bucket_allowlist)
            log = log.bind(bucket=item.bucket, key=item.key)
            log.info("Processing message", {"receive_count": receive_count(raw_msg)})

            source = self.storage.get_bytes(item.bucket, item.key)
            artifact = self.transform(source)
            dest_key = derive_key(item.key, self.source_prefix, self.dest_prefix)

            uri = self.storage.put_bytes(item.bucket, dest_key, artifact, content_type=self.content_type)
            log.info("Stored thumbnail", {"uri": uri, "size": len(artifact)})

        except Exception as e:
            log.error(e, {"context": "process"})
            self._release(receipt, log)
            return

        try:
            self.queue.delete_message(self.queue_url, receipt)
        except Exception as e:
            log.error(e, {"context": "delete"})
            self._release(receipt, log)
            return
        log.debug("Message deleted")

    def _release(self, receipt: str, log) -> None:
        """Push the visibility deadline out so the message is retried later."""
        try:
            self.queue.change_visibility(self.queue_url, receipt, self.retry_visibility_seconds)
            log.info("Visibility extended", {"seconds": self.retry_visibility_seconds})
        except Exception as e:
            # The current deadline still lapses, so the message is not lost
            log.warning("Visibility extension failed", {"error": str(e)})


def receive_count(raw_msg: Dict[str, Any]) -> int:
    """ApproximateReceiveCount from the message attributes; 1 when absent."""
    attributes = raw_msg.get("Attributes") or {}
    try:
        return int(attributes.get("ApproximateReceiveCount", 1))
    except (TypeError, ValueError):
        return 1


__all__ = ["MessageProcessor", "receive_count"]
