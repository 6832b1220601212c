"""
Delivery queue configuration.

Sources, in the order they are usually combined:
- QueueConfig(...) constructed in code
- config_from_env(): CWLOGS_* environment variables
- load_config(): a cwlogs.yaml file

Environment Variables:
    CWLOGS_LOG_GROUP: Log group name
    CWLOGS_LOG_STREAM: Log stream name
    CWLOGS_CREATE_LOG_GROUP: Create the log group on first write (true/false)
    CWLOGS_CREATE_LOG_STREAM: Create the log stream on first write (true/false)
    CWLOGS_MIN_INTERVAL_MS: Delay between delivery ticks
    CWLOGS_MAX_QUEUED_BATCHES: Queue capacity in batches
    CWLOGS_CLOSE_POLICY: abandon or retry
    CWLOGS_REGION: AWS region
    CWLOGS_CONFIG: Path to a cwlogs.yaml file
"""

import os
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .record import byte_length

# https://docs.aws.amazon.com/AmazonCloudWatchLogs/latest/APIReference/API_PutLogEvents.html
MAX_BATCH_ITEMS = 10000
MAX_MESSAGE_BYTES = 256000  # the real max size is 262144
MAX_BATCH_BYTES = 1048576
HARD_MAX_MESSAGE_BYTES = 262144

DEFAULT_TRUNCATION_SUFFIX = " [TRUNCATED]"
DEFAULT_OVERRUN_MARKER = "Log queue overrun, subsequent messages dropped"


class ClosePolicy(Enum):
    """What happens to queued batches when the queue is closed."""
    ABANDON = "abandon"
    RETRY = "retry"


@dataclass
class QueueConfig:
    """Configuration for DeliveryQueue."""
    log_group_name: str = ""
    log_stream_name: str = ""
    create_log_group: bool = False
    create_log_stream: bool = True
    min_interval_ms: int = 2000  # Delay between delivery ticks
    max_queued_batches: int = 1000
    truncation_suffix: str = DEFAULT_TRUNCATION_SUFFIX  # "" rejects oversized records
    overrun_marker: Optional[str] = DEFAULT_OVERRUN_MARKER  # None rejects on overrun
    close_policy: ClosePolicy = ClosePolicy.ABANDON
    max_batch_items: int = MAX_BATCH_ITEMS
    max_batch_bytes: int = MAX_BATCH_BYTES
    max_message_bytes: int = MAX_MESSAGE_BYTES
    retry_backoff: float = 1.0  # 1.0 keeps retries at min_interval_ms
    max_retry_interval_ms: int = 60000
    region_name: Optional[str] = None
    kms_key_id: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> "QueueConfig":
        """
        Check the configuration against the sink's hard limits.

        Returns:
            self, so calls can be chained

        Raises:
            ValueError: On the first invalid setting found
        """
        if not self.log_group_name:
            raise ValueError("log_group_name is required")
        if not self.log_stream_name:
            raise ValueError("log_stream_name is required")
        if self.min_interval_ms <= 0:
            raise ValueError("min_interval_ms must be > 0")
        # one slot is reserved for the overrun marker
        if self.max_queued_batches < 2:
            raise ValueError("max_queued_batches must be >= 2")
        if not 1 <= self.max_batch_items <= MAX_BATCH_ITEMS:
            raise ValueError(f"max_batch_items must be between 1 and {MAX_BATCH_ITEMS}")
        if not 1 <= self.max_message_bytes <= HARD_MAX_MESSAGE_BYTES:
            raise ValueError(
                f"max_message_bytes must be between 1 and {HARD_MAX_MESSAGE_BYTES}"
            )
        if self.max_batch_bytes > MAX_BATCH_BYTES:
            raise ValueError(f"max_batch_bytes must be <= {MAX_BATCH_BYTES}")
        if self.batch_byte_budget < self.max_message_bytes:
            raise ValueError(
                "max_batch_bytes must be at least twice max_message_bytes"
            )
        if byte_length(self.truncation_suffix) >= self.max_message_bytes:
            raise ValueError("truncation_suffix must be shorter than max_message_bytes")
        if self.overrun_marker is not None:
            if not self.overrun_marker:
                raise ValueError("overrun_marker must be None or non-empty")
            if byte_length(self.overrun_marker) > self.max_message_bytes:
                raise ValueError("overrun_marker must fit in max_message_bytes")
        if self.retry_backoff < 1.0:
            raise ValueError("retry_backoff must be >= 1.0")
        if self.max_retry_interval_ms < self.min_interval_ms:
            raise ValueError("max_retry_interval_ms must be >= min_interval_ms")
        return self

    @property
    def batch_byte_budget(self) -> int:
        """Bytes a single batch may hold; one message worth is kept in reserve."""
        return self.max_batch_bytes - self.max_message_bytes

    @property
    def interval_sec(self) -> float:
        return self.min_interval_ms / 1000.0

    def retry_interval_sec(self, consecutive_failures: int) -> float:
        """Delay before the next tick after N consecutive retryable failures."""
        if consecutive_failures <= 0 or self.retry_backoff == 1.0:
            return self.interval_sec
        delay_ms = self.min_interval_ms * (self.retry_backoff ** consecutive_failures)
        return min(delay_ms, self.max_retry_interval_ms) / 1000.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "QueueConfig":
        """
        Build a config from a mapping, ignoring unknown keys.

        Args:
            data: Mapping of QueueConfig field names to values

        Returns:
            QueueConfig instance (not validated)
        """
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        if "close_policy" in kwargs and not isinstance(kwargs["close_policy"], ClosePolicy):
            kwargs["close_policy"] = ClosePolicy(str(kwargs["close_policy"]).lower())
        if kwargs.get("tags") is None:
            kwargs.pop("tags", None)
        return cls(**kwargs)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> QueueConfig:
    """Create config from environment variables."""
    env = os.environ if environ is None else environ
    defaults = QueueConfig()
    return QueueConfig(
        log_group_name=env.get("CWLOGS_LOG_GROUP", ""),
        log_stream_name=env.get("CWLOGS_LOG_STREAM", ""),
        create_log_group=_env_bool(env.get("CWLOGS_CREATE_LOG_GROUP", "false")),
        create_log_stream=_env_bool(env.get("CWLOGS_CREATE_LOG_STREAM", "true")),
        min_interval_ms=int(env.get("CWLOGS_MIN_INTERVAL_MS", defaults.min_interval_ms)),
        max_queued_batches=int(
            env.get("CWLOGS_MAX_QUEUED_BATCHES", defaults.max_queued_batches)
        ),
        close_policy=ClosePolicy(env.get("CWLOGS_CLOSE_POLICY", "abandon").lower()),
        region_name=env.get("CWLOGS_REGION") or None,
    )


def load_config(config_path: Optional[str] = None) -> QueueConfig:
    """
    Load configuration from cwlogs.yaml.

    Search order:
    1. Provided config_path
    2. CWLOGS_CONFIG environment variable
    3. ./cwlogs.yaml in current directory
    4. cwlogs.yaml in parent directories (walk up the tree)

    The file may hold the settings at the top level or under a
    ``cloudwatch:`` key.

    Args:
        config_path: Optional explicit path to config file

    Returns:
        QueueConfig instance; defaults if no file was found
    """
    if config_path:
        return _load_from_path(config_path)

    env_path = os.environ.get("CWLOGS_CONFIG")
    if env_path:
        return _load_from_path(env_path)

    current = Path.cwd()
    while True:
        config_file = current / "cwlogs.yaml"
        if config_file.exists():
            return _load_from_path(str(config_file))

        # Stop at filesystem root
        if current == current.parent:
            break
        current = current.parent

    return QueueConfig()


def _load_from_path(path: str) -> QueueConfig:
    """Load config from a specific path"""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    section = data.get("cloudwatch", data)
    return QueueConfig.from_dict(section)
