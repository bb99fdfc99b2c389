"""
Storage-event notifier (Lambda handler).

S3 ObjectCreated event -> {"bucket", "key"} -> one SNS publish. Stateless;
any failure is raised so the Lambda runtime's own retry policy applies.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import unquote_plus

from .config import load_config
from .constants import WorkItem
from .io_sns import SNSClient
from .logging import get_logger, set_level
from .message import encode_work_item, validate_work_item, work_item_to_dict


def parse_s3_event(event: Dict[str, Any]) -> WorkItem:
    """
    Pull (bucket, key) from the first record. One object per event is the
    normal case; extra records are ignored.

    Raises:
        ValueError if the event has no record or the record is malformed
    """
    records = event.get("Records") if isinstance(event, dict) else None
    if not records:
        raise ValueError("No S3 record")

    rec = records[0]
    try:
        bucket = rec["s3"]["bucket"]["name"]
        raw_key = rec["s3"]["object"]["key"]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed S3 record: missing {e}") from e

    # S3 form-encodes keys in event notifications: a space arrives as "+"
    return validate_work_item({"bucket": bucket, "key": unquote_plus(raw_key)})


class Notifier:
    def __init__(self, publisher: SNSClient, topic_arn: str, logger=None):
        if not topic_arn:
            raise ValueError("topic_arn is required")
        self.publisher = publisher
        self.topic_arn = topic_arn
        self.logger = logger or get_logger("notifier")

    def notify(self, event: Dict[str, Any]) -> str:
        item = parse_s3_event(event)
        message_id = self.publisher.publish(self.topic_arn, work_item_to_dict(item))
        self.logger.info("Published to SNS", {
            "message": encode_work_item(item),
            "message_id": message_id,
        })
        return message_id


# Built once per Lambda container, reused across invocations
_default_notifier: Optional[Notifier] = None


def _get_notifier() -> Notifier:
    global _default_notifier
    if _default_notifier is None:
        settings = load_config().require_notifier()
        set_level(settings.logging.level)
        _default_notifier = Notifier(
            SNSClient(region=settings.storage.region),
            settings.notifier.topic_arn,
        )
    return _default_notifier


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """Lambda entry point."""
    try:
        _get_notifier().notify(event)
        return {"statusCode": 200, "body": "OK"}
    except Exception as e:
        get_logger("notifier").error(e, {"context": "handler"})
        raise


__all__ = ["parse_s3_event", "Notifier", "handler"]
