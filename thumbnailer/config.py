"""
Configuration loader.
Merges environment variables + an optional YAML file into a typed config object.
Everything else reads from this - single source of truth.
"""

from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field
import os

import yaml

from .constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_DEST_PREFIX,
    DEFAULT_REGION,
    DEFAULT_SOURCE_PREFIX,
    DEFAULT_THUMBNAIL_FORMAT,
    DEFAULT_THUMBNAIL_WIDTH,
    DEFAULT_VISIBILITY_TIMEOUT,
    DEFAULT_WAIT_SECONDS,
    ENV_BUCKET,
    ENV_CONCURRENCY,
    ENV_CONFIG_FILE,
    ENV_DEST_PREFIX,
    ENV_LOG_LEVEL,
    ENV_QUEUE_URL,
    ENV_RECEIVE_BACKOFF,
    ENV_REGION,
    ENV_RETRY_VISIBILITY,
    ENV_SOURCE_PREFIX,
    ENV_THUMBNAIL_FORMAT,
    ENV_THUMBNAIL_WIDTH,
    ENV_TOPIC_ARN,
    ENV_TRANSFORM_PATH,
    ENV_VISIBILITY_TIMEOUT,
    ENV_WAIT_SECONDS,
    FORMAT_CONTENT_TYPES,
    RECEIVE_BACKOFF_SECONDS,
    RETRY_VISIBILITY_SECONDS,
    SQS_MAX_VISIBILITY,
    SQS_MAX_WAIT_SECONDS,
    VALID_LOG_LEVELS,
)


# ============================================================================
# CONFIG SCHEMA
# ============================================================================

@dataclass
class QueueConfig:
    """Queue URL and lease settings"""
    queue_url: Optional[str] = None
    wait_time: int = DEFAULT_WAIT_SECONDS  # long-poll seconds
    visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT
    retry_visibility: int = RETRY_VISIBILITY_SECONDS
    receive_backoff: float = RECEIVE_BACKOFF_SECONDS


@dataclass
class StorageConfig:
    """S3 settings"""
    region: str = DEFAULT_REGION
    bucket: Optional[str] = None  # allowlist; None accepts any bucket

    @property
    def bucket_allowlist(self) -> List[str]:
        return [self.bucket] if self.bucket else []


@dataclass
class WorkerConfig:
    """Worker pool behavior"""
    concurrency: int = DEFAULT_CONCURRENCY


@dataclass
class TransformConfig:
    """Thumbnail transform and key layout"""
    source_prefix: str = DEFAULT_SOURCE_PREFIX
    dest_prefix: str = DEFAULT_DEST_PREFIX
    width: int = DEFAULT_THUMBNAIL_WIDTH
    image_format: str = DEFAULT_THUMBNAIL_FORMAT
    transform_path: Optional[str] = None  # dotted path to a custom callable

    @property
    def content_type(self) -> str:
        return FORMAT_CONTENT_TYPES[self.image_format]


@dataclass
class NotifierConfig:
    """Fan-out topic for the storage-event notifier"""
    topic_arn: Optional[str] = None


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class Settings:
    """
    Complete configuration.
    Worker and notifier each read the sections they need.
    """
    queue: QueueConfig = field(default_factory=QueueConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    transform: TransformConfig = field(default_factory=TransformConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def require_worker(self) -> "Settings":
        """Fail fast when the worker cannot possibly run."""
        if not self.queue.queue_url:
            raise ValueError(f"Missing {ENV_QUEUE_URL}")
        return self

    def require_notifier(self) -> "Settings":
        if not self.notifier.topic_arn:
            raise ValueError(f"Missing {ENV_TOPIC_ARN}")
        return self


# ============================================================================
# ENV VAR -> (section, field) MAPPING
# ============================================================================

ENV_FIELDS = {
    ENV_QUEUE_URL: ("queue", "queue_url"),
    ENV_WAIT_SECONDS: ("queue", "wait_time"),
    ENV_VISIBILITY_TIMEOUT: ("queue", "visibility_timeout"),
    ENV_RETRY_VISIBILITY: ("queue", "retry_visibility"),
    ENV_RECEIVE_BACKOFF: ("queue", "receive_backoff"),
    ENV_REGION: ("storage", "region"),
    ENV_BUCKET: ("storage", "bucket"),
    ENV_CONCURRENCY: ("worker", "concurrency"),
    ENV_SOURCE_PREFIX: ("transform", "source_prefix"),
    ENV_DEST_PREFIX: ("transform", "dest_prefix"),
    ENV_THUMBNAIL_WIDTH: ("transform", "width"),
    ENV_THUMBNAIL_FORMAT: ("transform", "image_format"),
    ENV_TRANSFORM_PATH: ("transform", "transform_path"),
    ENV_TOPIC_ARN: ("notifier", "topic_arn"),
    ENV_LOG_LEVEL: ("logging", "level"),
}


# ============================================================================
# LOADING FUNCTIONS
# ============================================================================

def load_config(config_file: Optional[str] = None,
                environ: Optional[Dict[str, str]] = None) -> Settings:
    """
    Main entry point.

    Priority (highest to lowest):
    1. Environment variables
    2. YAML file (config_file argument, else WORKER_CONFIG env var)
    3. Built-in defaults

    Raises:
        ValueError if any value is missing or invalid
    """
    env = os.environ if environ is None else environ
    path = config_file or env.get(ENV_CONFIG_FILE)

    raw = merge_configs(load_yaml_file(path) if path else {}, load_env_vars(env))
    return parse_settings(raw)


def load_env_vars(environ: Dict[str, str]) -> Dict[str, Any]:
    """Read known env vars into the nested section layout. Empty values are ignored."""
    out: Dict[str, Any] = {}
    for name, (section, key) in ENV_FIELDS.items():
        value = environ.get(name)
        if value is None or not str(value).strip():
            continue
        out.setdefault(section, {})[key] = value.strip()
    return out


def load_yaml_file(filepath: str) -> Dict[str, Any]:
    """
    Parse a YAML overlay. A path that was asked for but does not exist is an
    error, unlike an unset WORKER_CONFIG.
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Missing config file at {filepath}")
    with open(filepath, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {filepath}")
    return data


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge multiple config dicts.
    Later configs override earlier ones.
    """
    result: Dict[str, Any] = {}
    for cfg in configs:
        for k, v in (cfg or {}).items():
            if isinstance(v, dict) and isinstance(result.get(k), dict):
                result[k] = merge_configs(result[k], v)
            elif isinstance(v, dict):
                result[k] = merge_configs(v)
            else:
                result[k] = v
    return result


# ============================================================================
# PARSING + VALIDATION
# ============================================================================

def parse_settings(raw: Dict[str, Any]) -> Settings:
    unknown = set(raw) - {"queue", "storage", "worker", "transform", "notifier", "logging"}
    if unknown:
        raise ValueError(f"Unknown config sections: {', '.join(sorted(unknown))}")

    return Settings(
        queue=parse_queue_config(raw.get("queue") or {}),
        storage=parse_storage_config(raw.get("storage") or {}),
        worker=parse_worker_config(raw.get("worker") or {}),
        transform=parse_transform_config(raw.get("transform") or {}),
        notifier=NotifierConfig(topic_arn=_opt_str(raw.get("notifier") or {}, "topic_arn")),
        logging=parse_logging_config(raw.get("logging") or {}),
    )


def parse_queue_config(raw: Dict[str, Any]) -> QueueConfig:
    queue_url = _opt_str(raw, "queue_url")
    if queue_url and not validate_queue_url(queue_url):
        raise ValueError(f"Invalid queue_url: {queue_url}")

    wait_time = _int(raw, "wait_time", DEFAULT_WAIT_SECONDS, minimum=0)
    if wait_time > SQS_MAX_WAIT_SECONDS:
        raise ValueError(f"wait_time must be <= {SQS_MAX_WAIT_SECONDS}, got {wait_time}")

    visibility = _int(raw, "visibility_timeout", DEFAULT_VISIBILITY_TIMEOUT, minimum=0)
    retry_visibility = _int(raw, "retry_visibility", RETRY_VISIBILITY_SECONDS, minimum=0)
    for name, v in (("visibility_timeout", visibility), ("retry_visibility", retry_visibility)):
        if v > SQS_MAX_VISIBILITY:
            raise ValueError(f"{name} must be <= {SQS_MAX_VISIBILITY}, got {v}")

    backoff = raw.get("receive_backoff", RECEIVE_BACKOFF_SECONDS)
    try:
        backoff = float(backoff)
    except (TypeError, ValueError) as e:
        raise ValueError(f"receive_backoff must be a number, got {backoff!r}") from e
    if backoff < 0:
        raise ValueError(f"receive_backoff must be >= 0, got {backoff}")

    return QueueConfig(
        queue_url=queue_url,
        wait_time=wait_time,
        visibility_timeout=visibility,
        retry_visibility=retry_visibility,
        receive_backoff=backoff,
    )


def parse_storage_config(raw: Dict[str, Any]) -> StorageConfig:
    return StorageConfig(
        region=_opt_str(raw, "region") or DEFAULT_REGION,
        bucket=_opt_str(raw, "bucket"),
    )


def parse_worker_config(raw: Dict[str, Any]) -> WorkerConfig:
    return WorkerConfig(concurrency=_int(raw, "concurrency", DEFAULT_CONCURRENCY, minimum=1))


def parse_transform_config(raw: Dict[str, Any]) -> TransformConfig:
    image_format = (_opt_str(raw, "image_format") or DEFAULT_THUMBNAIL_FORMAT).upper()
    if image_format == "JPG":
        image_format = "JPEG"
    if image_format not in FORMAT_CONTENT_TYPES:
        raise ValueError(
            f"image_format must be one of {'|'.join(FORMAT_CONTENT_TYPES)}, got {image_format}"
        )

    source_prefix = raw.get("source_prefix", DEFAULT_SOURCE_PREFIX)
    dest_prefix = raw.get("dest_prefix", DEFAULT_DEST_PREFIX)
    if not isinstance(source_prefix, str) or not source_prefix:
        raise ValueError("source_prefix must be a non-empty string")
    if not isinstance(dest_prefix, str):
        raise ValueError("dest_prefix must be a string")

    return TransformConfig(
        source_prefix=source_prefix,
        dest_prefix=dest_prefix,
        width=_int(raw, "width", DEFAULT_THUMBNAIL_WIDTH, minimum=1),
        image_format=image_format,
        transform_path=_opt_str(raw, "transform_path"),
    )


def parse_logging_config(raw: Dict[str, Any]) -> LoggingConfig:
    level = (_opt_str(raw, "level") or "INFO").upper()
    if level not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Valid: {VALID_LOG_LEVELS}")
    return LoggingConfig(level=level)


def validate_queue_url(url: str) -> bool:
    """
    Check if URL looks like an SQS queue URL.
    http:// is accepted for local endpoints (ElasticMQ, LocalStack).
    """
    return isinstance(url, str) and url.startswith(("https://", "http://")) and "/" in url[8:]


# ============================================================================
# HELPERS
# ============================================================================

def _opt_str(raw: Dict[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _int(raw: Dict[str, Any], key: str, default: int, minimum: int) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{key} must be an integer, got {value!r}") from e
    if isinstance(value, float) and value != parsed:
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if parsed < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {parsed}")
    return parsed
