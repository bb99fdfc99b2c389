"""
SNS publishing for the notifier.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config

from .logging import get_logger
from .retry import call_with_retry

SNS_MAX_MESSAGE_BYTES = 256 * 1024


def get_sns_client(region: Optional[str] = None):
    return boto3.client(
        "sns",
        region_name=region,
        config=Config(retries={"max_attempts": 4}, connect_timeout=3, read_timeout=10),
    )


class SNSClient:
    """Publish JSON payloads to a topic with retry on transient errors."""

    def __init__(self, sns_client=None, region: Optional[str] = None, max_retries: int = 3, logger=None):
        self._sns = sns_client or get_sns_client(region)
        self.max_retries = max_retries
        self.logger = logger or get_logger("io_sns")

    @property
    def sns(self):
        return self._sns

    def publish(self, topic_arn: str, payload: Dict[str, Any]) -> str:
        """Publish one message. Returns the SNS MessageId."""
        if not isinstance(topic_arn, str) or not topic_arn.startswith("arn:"):
            raise ValueError(f"publish: invalid topic ARN: {topic_arn!r}")

        body = json.dumps(payload)
        if len(body.encode("utf-8")) > SNS_MAX_MESSAGE_BYTES:
            raise ValueError("SNS message > 256KB")

        resp = call_with_retry(
            self.sns.publish,
            max_retries=self.max_retries,
            logger=self.logger,
            TopicArn=topic_arn,
            Message=body,
        )
        return resp.get("MessageId", "")


__all__ = ["SNSClient", "get_sns_client"]
