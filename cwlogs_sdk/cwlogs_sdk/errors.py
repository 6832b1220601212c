"""
Exceptions raised and reported by cwlogs_sdk.

Admission errors are raised (or set on the record's future) at enqueue time.
SinkError is raised by SinkClient implementations and classified by the
delivery loop. The rest are reported to the owner's callbacks or set on
record futures when delivery ends without success.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Classified failure categories of a sink call."""
    CONFIG = "config"  # bad parameters
    QUOTA = "quota"  # limit exceeded
    AUTH = "auth"  # unrecognized credentials
    MISSING_DESTINATION = "missing_destination"
    BAD_SEQUENCE = "bad_sequence"
    ALREADY_EXISTS = "already_exists"
    DUPLICATE_SUBMISSION = "duplicate_submission"
    TRANSIENT = "transient"


class CloudWatchSinkError(Exception):
    """Base class for all cwlogs_sdk errors."""


# ---------------------------------------------------------------------------
# Admission
# ---------------------------------------------------------------------------

class AdmissionError(CloudWatchSinkError):
    """A record could not be admitted as-is."""


class QueueFullError(AdmissionError):
    """The queue holds the maximum number of batches.

    Attributes:
        queued_batches: Number of batches queued when the record arrived.
        substituted: True if the overrun marker was admitted instead.
    """

    def __init__(self, queued_batches: int, substituted: bool = False):
        self.queued_batches = queued_batches
        self.substituted = substituted
        msg = f"Queue is full ({queued_batches} batches)"
        if substituted:
            msg += ", record replaced by overrun marker"
        else:
            msg += ", skipping log message"
        super().__init__(msg)


class MessageTooLongError(AdmissionError):
    """A record exceeded the per-message byte limit.

    Attributes:
        size_bytes: Encoded size of the original message.
        max_bytes: Configured per-message limit.
        truncated: True if the message was truncated and admitted.
    """

    def __init__(self, size_bytes: int, max_bytes: int, truncated: bool = False):
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        self.truncated = truncated
        action = "truncated" if truncated else "skipping"
        super().__init__(
            f"Log message too long ({size_bytes} bytes, max {max_bytes}), {action}"
        )


class AlreadyClosedError(CloudWatchSinkError):
    """enqueue() was called after close() or after a fatal stop."""

    def __init__(self, msg: str = "Delivery queue is closed"):
        super().__init__(msg)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

class SinkError(CloudWatchSinkError):
    """A classified failure of a remote sink call.

    Attributes:
        kind: Classified category of the failure.
        operation: Name of the sink operation that failed.
        code: Remote error code, if the sink reported one.
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        kind: ErrorKind,
        operation: str,
        code: Optional[str] = None,
        cause: Optional[BaseException] = None,
        message: Optional[str] = None,
    ):
        self.kind = kind
        self.operation = operation
        self.code = code
        self.cause = cause
        detail = message or (str(cause) if cause is not None else kind.value)
        label = f"{operation} failed ({kind.value}"
        if code:
            label += f", {code}"
        super().__init__(f"{label}): {detail}")


class PartialDeliveryError(CloudWatchSinkError):
    """The sink accepted a batch but rejected some of its records."""

    def __init__(self, rejected_info: Dict[str, Any], batch_size: int):
        self.rejected_info = rejected_info
        self.batch_size = batch_size
        super().__init__(f"Rejected log events in batch of {batch_size}: {rejected_info}")


class FatalDeliveryError(CloudWatchSinkError):
    """Delivery stopped permanently; set on futures of abandoned records."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Fatal error: {cause}")


class DeliveryAbandonedError(CloudWatchSinkError):
    """A queued record was dropped because the queue was closed."""

    def __init__(self, dropped: int):
        self.dropped = dropped
        super().__init__(f"Delivery queue closed, dropped {dropped} queued records")
