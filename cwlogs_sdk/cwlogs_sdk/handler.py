"""
logging.Handler that ships records to CloudWatch Logs through a DeliveryQueue.

Usage:
    import logging
    from cwlogs_sdk import QueueConfig, init_handler

    init_handler(QueueConfig(log_group_name="my-app", log_stream_name="web-1"))
    logging.getLogger(__name__).info("hello")
"""

import logging
from typing import Optional

from .client import CloudWatchLogsClient, SinkClient
from .config import ClosePolicy, QueueConfig
from .delivery import DeliveryQueue, ErrorCallback

logger = logging.getLogger(__name__)

DEFAULT_FORMAT = "%(levelname)s: %(message)s"

# Records from these loggers are never shipped: they are emitted while
# shipping and would feed back into the queue.
INTERNAL_LOGGERS = ("cwlogs_sdk", "botocore", "boto3", "urllib3", "s3transfer")


def _is_internal(name: str) -> bool:
    return any(name == prefix or name.startswith(prefix + ".") for prefix in INTERNAL_LOGGERS)


class CloudWatchLogsHandler(logging.Handler):
    """
    Logging handler backed by a DeliveryQueue.

    emit() never blocks on the network. flush() waits up to flush_timeout
    seconds for the queue to drain; close() closes the queue with the
    configured ClosePolicy. After a fatal delivery error the handler removes
    itself from every logger it is attached to and drops further records.

    Args:
        config: Queue configuration
        client: Sink client; defaults to a CloudWatchLogsClient for config
        level: Handler level
        flush_timeout: Max seconds flush()/close() wait for delivery
        on_error: Non-fatal and fatal error callback
    """

    def __init__(
        self,
        config: QueueConfig,
        client: Optional[SinkClient] = None,
        level: int = logging.NOTSET,
        flush_timeout: float = 5.0,
        on_error: Optional[ErrorCallback] = None,
        autostart: bool = True,
    ):
        super().__init__(level)
        self.flush_timeout = flush_timeout
        self.stopped = False
        self._on_error = on_error
        self.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        self.addFilter(lambda record: not _is_internal(record.name))

        if client is None:
            client = CloudWatchLogsClient(
                region_name=config.region_name,
                kms_key_id=config.kms_key_id,
                tags=config.tags,
            )
        self.queue = DeliveryQueue(
            client,
            config,
            on_error=on_error,
            on_fatal_error=self._on_fatal_error,
            autostart=autostart,
        )

    def emit(self, record: logging.LogRecord) -> None:
        if self.stopped:
            return
        try:
            message = self.format(record)
            self.queue.enqueue(message, int(record.created * 1000))
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        if self.queue.closed:
            return
        self.queue.flush(self.flush_timeout)

    def close(self) -> None:
        try:
            self.queue.close()
            if self.queue.config.close_policy is ClosePolicy.RETRY:
                self.queue.join(self.flush_timeout)
        finally:
            super().close()

    def _on_fatal_error(self, error: BaseException) -> None:
        self.stopped = True
        try:
            if self._on_error is not None:
                self._on_error(error)
            else:
                logger.error(f"CloudWatch delivery stopped, handler detached: {error}")
        finally:
            self._detach()

    def _detach(self) -> None:
        """Remove this handler from the root logger and every named logger."""
        loggers = [logging.getLogger()]
        loggers.extend(
            lg for lg in list(logging.Logger.manager.loggerDict.values())
            if isinstance(lg, logging.Logger)
        )
        for lg in loggers:
            if self in lg.handlers:
                lg.removeHandler(self)


def init_handler(
    config: QueueConfig,
    logger_name: Optional[str] = None,
    client: Optional[SinkClient] = None,
    level: int = logging.NOTSET,
    **kwargs,
) -> CloudWatchLogsHandler:
    """
    Create a CloudWatchLogsHandler and attach it to a logger.

    Args:
        config: Queue configuration
        logger_name: Logger to attach to; the root logger when None
        client: Optional sink client
        level: Handler level
        **kwargs: Passed to CloudWatchLogsHandler

    Returns:
        The attached handler
    """
    handler = CloudWatchLogsHandler(config, client=client, level=level, **kwargs)
    logging.getLogger(logger_name).addHandler(handler)
    return handler
