"""
constants.py – shared types, defaults and env var names.
Everything that is fixed by the pipeline contract lives here; anything an
operator may tune is read through config.py.
"""

from dataclasses import dataclass
from typing import Dict


# ============================================================================
# CORE TYPES
# ============================================================================

@dataclass(frozen=True)
class WorkItem:
    """One object to thumbnail. Produced by the notifier, consumed by workers."""
    bucket: str
    key: str


REQUIRED_MESSAGE_FIELDS = ["bucket", "key"]

# ============================================================================
# DEFAULTS
# ============================================================================

DEFAULT_REGION = "us-east-1"
DEFAULT_CONCURRENCY = 2
DEFAULT_WAIT_SECONDS = 20           # SQS long-poll max
DEFAULT_VISIBILITY_TIMEOUT = 30     # lease requested on receive
RETRY_VISIBILITY_SECONDS = 60       # lease extension after a failed attempt
RECEIVE_BACKOFF_SECONDS = 2         # pause after a failed receive

DEFAULT_SOURCE_PREFIX = "raw-images/"
DEFAULT_DEST_PREFIX = "thumbnails/"
DEFAULT_THUMBNAIL_WIDTH = 100
DEFAULT_THUMBNAIL_FORMAT = "JPEG"

SQS_MAX_WAIT_SECONDS = 20
SQS_MAX_VISIBILITY = 43_200  # 12h hard SQS limit
MAX_SOURCE_BYTES = 50 * 1024 * 1024

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Pillow format name -> content type written on the derived object
FORMAT_CONTENT_TYPES: Dict[str, str] = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
}

# ============================================================================
# ENVIRONMENT VARIABLE NAMES
# ============================================================================

ENV_REGION = "AWS_REGION"
ENV_TOPIC_ARN = "TOPIC_ARN"
ENV_QUEUE_URL = "QUEUE_URL"
ENV_BUCKET = "BUCKET"
ENV_CONCURRENCY = "WORKER_CONCURRENCY"
ENV_WAIT_SECONDS = "WAIT_TIME_SECONDS"
ENV_VISIBILITY_TIMEOUT = "VISIBILITY_TIMEOUT"
ENV_RETRY_VISIBILITY = "RETRY_VISIBILITY_SECONDS"
ENV_RECEIVE_BACKOFF = "RECEIVE_BACKOFF_SECONDS"
ENV_SOURCE_PREFIX = "SOURCE_PREFIX"
ENV_DEST_PREFIX = "DEST_PREFIX"
ENV_THUMBNAIL_WIDTH = "THUMBNAIL_WIDTH"
ENV_THUMBNAIL_FORMAT = "THUMBNAIL_FORMAT"
ENV_TRANSFORM_PATH = "TRANSFORM_PATH"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_CONFIG_FILE = "WORKER_CONFIG"
