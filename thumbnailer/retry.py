"""
Retry helper shared by the SQS and SNS adapters.
"""

from __future__ import annotations

import random
import time
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

RETRIABLE_ERROR_CODES = {
    "Throttling", "ThrottlingException", "ServiceUnavailable",
    "RequestThrottled", "InternalError", "InternalFailure",
    "ProvisionedThroughputExceededException", "RequestTimeout",
    "KMSThrottlingException",
    "500", "502", "503", "504",
}


def error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def backoff_delay(attempt: int, base: float = 0.25, cap: float = 5.0) -> float:
    """Exponential backoff with jitter. attempt starts at 1."""
    return min(base * (2 ** (attempt - 1)), cap) + random.uniform(0, 0.25)


def call_with_retry(func: Callable, *args, max_retries: int = 5, logger=None,
                    retriable_codes: Optional[set] = None, **kwargs):
    """Retry a boto3 call with exponential backoff on retriable errors."""
    codes = RETRIABLE_ERROR_CODES if retriable_codes is None else retriable_codes
    attempts = max(1, int(max_retries))

    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except ClientError as e:
            if error_code(e) not in codes or attempt >= attempts:
                raise
            if logger:
                logger.warning("Retrying after client error", {
                    "code": error_code(e), "attempt": attempt,
                })
        except BotoCoreError as e:
            if attempt >= attempts:
                raise
            if logger:
                logger.warning("Retrying after network error", {
                    "error": str(e), "attempt": attempt,
                })
        time.sleep(backoff_delay(attempt))

    raise RuntimeError(f"Failed after {attempts} attempts")
