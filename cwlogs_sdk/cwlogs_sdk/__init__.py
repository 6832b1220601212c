"""
cwlogs_sdk - non-blocking log delivery to Amazon CloudWatch Logs

This package provides:
- A batching/retry delivery queue that respects CloudWatch's size limits
- Failure classification: retry forever on transient errors, stop on fatal ones
- Drain waiters for flushing before shutdown
- A logging.Handler wired to the queue
"""

from cwlogs_sdk.batch import Batch, BatchBuilder
from cwlogs_sdk.client import CloudWatchLogsClient, PutResult, SinkClient, map_client_error
from cwlogs_sdk.config import (
    ClosePolicy,
    QueueConfig,
    MAX_BATCH_BYTES,
    MAX_BATCH_ITEMS,
    MAX_MESSAGE_BYTES,
    config_from_env,
    load_config,
)
from cwlogs_sdk.delivery import DeliveryQueue, LoopState
from cwlogs_sdk.errors import (
    AdmissionError,
    AlreadyClosedError,
    CloudWatchSinkError,
    DeliveryAbandonedError,
    ErrorKind,
    FatalDeliveryError,
    MessageTooLongError,
    PartialDeliveryError,
    QueueFullError,
    SinkError,
)
from cwlogs_sdk.handler import CloudWatchLogsHandler, init_handler
from cwlogs_sdk.outcome import Outcome, OutcomeStatus
from cwlogs_sdk.record import LogRecord, truncate_message

__version__ = "0.1.0"

__all__ = [
    # Records and batches
    "LogRecord",
    "truncate_message",
    "Batch",
    "BatchBuilder",
    # Config
    "QueueConfig",
    "ClosePolicy",
    "config_from_env",
    "load_config",
    "MAX_BATCH_ITEMS",
    "MAX_BATCH_BYTES",
    "MAX_MESSAGE_BYTES",
    # Clients
    "SinkClient",
    "CloudWatchLogsClient",
    "PutResult",
    "map_client_error",
    # Queue
    "DeliveryQueue",
    "LoopState",
    "Outcome",
    "OutcomeStatus",
    # Handler
    "CloudWatchLogsHandler",
    "init_handler",
    # Errors
    "CloudWatchSinkError",
    "AdmissionError",
    "QueueFullError",
    "MessageTooLongError",
    "AlreadyClosedError",
    "SinkError",
    "ErrorKind",
    "PartialDeliveryError",
    "FatalDeliveryError",
    "DeliveryAbandonedError",
]
