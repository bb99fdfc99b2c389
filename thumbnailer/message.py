"""
Work item decoding, schema validation and the derived-key rule.

CONTRACT:
1. A queue payload is exactly {"bucket": str, "key": str}; both non-empty.
2. The derived object lives in the same bucket, at the source key with the
   source prefix swapped for the destination prefix.
3. Both rules are pure, so a duplicate delivery writes the same object twice.
"""

from typing import Any, Dict, List, Optional
import json

from .constants import REQUIRED_MESSAGE_FIELDS, WorkItem


def validate_work_item(payload: Dict[str, Any], bucket_allowlist: Optional[List[str]] = None) -> WorkItem:
    """
    Turn a decoded queue payload into a WorkItem.

    Raises:
        ValueError if a field is missing, not a string, empty, or the bucket
        is outside a non-empty allowlist
    """
    if not isinstance(payload, dict):
        raise ValueError(f"Message must be a dict, got {type(payload).__name__}")

    missing = [f for f in REQUIRED_MESSAGE_FIELDS if f not in payload]
    if missing:
        raise ValueError(f"Missing required fields: {', '.join(missing)}")

    bucket = payload["bucket"]
    key = payload["key"]
    if not isinstance(bucket, str):
        raise ValueError(f"bucket must be str, got {type(bucket).__name__}")
    if not isinstance(key, str):
        raise ValueError(f"key must be str, got {type(key).__name__}")
    if not bucket.strip():
        raise ValueError("bucket must not be empty")
    if not key:
        raise ValueError("key must not be empty")

    if bucket_allowlist and bucket not in bucket_allowlist:
        raise ValueError(f"Bucket not allowed: {bucket}")

    return WorkItem(bucket=bucket, key=key)


def unwrap_body(body: Any, allow_sns_envelope: bool = True) -> Dict[str, Any]:
    """
    Decode a queue message body into its payload dict.

    SNS -> SQS subscriptions without raw delivery wrap the payload in a
    notification whose "Message" field holds the JSON we published.

    Raises:
        ValueError if the body is blank, not JSON, or not a JSON object
    """
    if not isinstance(body, str) or not body.strip():
        raise ValueError("Message body is empty")

    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as e:
        raise ValueError(f"Message body is not JSON: {e}") from e

    if allow_sns_envelope and isinstance(decoded, dict) and "Message" in decoded:
        inner = decoded["Message"]
        if isinstance(inner, str):
            try:
                inner = json.loads(inner)
            except json.JSONDecodeError as e:
                raise ValueError(f"SNS envelope carries invalid JSON: {e}") from e
        decoded = inner

    if not isinstance(decoded, dict):
        raise ValueError(f"Message body must be a JSON object, got {type(decoded).__name__}")
    return decoded


def decode_work_item(body: Any, bucket_allowlist: Optional[List[str]] = None,
                     allow_sns_envelope: bool = True) -> WorkItem:
    """Queue message body (plain or SNS-wrapped) -> validated WorkItem."""
    return validate_work_item(unwrap_body(body, allow_sns_envelope), bucket_allowlist)


def encode_work_item(item: WorkItem) -> str:
    return json.dumps(work_item_to_dict(item))


def work_item_to_dict(item: WorkItem) -> Dict[str, str]:
    return {"bucket": item.bucket, "key": item.key}


def derive_key(key: str, source_prefix: str, dest_prefix: str) -> str:
    """
    Replace the first occurrence of source_prefix with dest_prefix.
    Keys without the prefix come back unchanged.

        derive_key("raw-images/a/b.png", "raw-images/", "thumbnails/") -> "thumbnails/a/b.png"
        derive_key("other/x.png", "raw-images/", "thumbnails/")        -> "other/x.png"
    """
    if not source_prefix:
        return key
    return key.replace(source_prefix, dest_prefix, 1)


__all__ = [
    "validate_work_item",
    "unwrap_body",
    "decode_work_item",
    "encode_work_item",
    "work_item_to_dict",
    "derive_key",
]
