"""
DeliveryQueue - non-blocking batching/retry queue in front of a log sink.

The caller's hot path only appends to an in-memory queue. A background
thread drains the oldest batch on a fixed interval, provisioning the log
group/stream on first use, and decides per failure whether to retry the
same batch forever or stop delivery for good.

Architecture:
    enqueue() → admission (overrun / length guards) → BatchBuilder
        → delivery thread (one tick per interval) → SinkClient

Tick:
    1. queue empty → resolve drain waiters, clear the overrun flag
    2. peek the oldest batch (it stays queued until delivered)
    3. create log group / log stream if configured and not done yet
    4. put_log_events
    5. success → pop; retry → leave at head; fatal → stop, abandon the rest

Only in-memory work happens under the lock; the remote call never does.
"""

import logging
import threading
from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Set, Tuple, Union

from .batch import Batch, BatchBuilder
from .client import SinkClient
from .config import ClosePolicy, QueueConfig
from .errors import (
    AlreadyClosedError,
    DeliveryAbandonedError,
    ErrorKind,
    FatalDeliveryError,
    MessageTooLongError,
    PartialDeliveryError,
    QueueFullError,
)
from .outcome import LOG_GROUP_FATAL, LOG_STREAM_FATAL, SEND_FATAL, Outcome, classify
from .record import LogRecord, byte_length, now_ms, truncate_message

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[BaseException], None]


class LoopState(Enum):
    """Delivery loop states."""
    IDLE = "idle"  # timer armed
    SENDING = "sending"  # one batch in flight
    STOPPED = "stopped"  # terminal


def _log_error(error: BaseException) -> None:
    logger.error(f"CloudWatch delivery error: {error}")


class DeliveryQueue:
    """
    Batching, retrying delivery queue for one log stream.

    Args:
        client: Sink client used for provisioning and sending
        config: Queue configuration (validated here)
        format_entry: Maps a structured entry to message text (enqueue_entry)
        timestamp_fn: Extracts epoch milliseconds from an entry (enqueue_entry)
        on_error: Called for every non-fatal condition; must not block
        on_fatal_error: Called once when delivery stops for good.
            Defaults to on_error.
        autostart: Start the delivery thread immediately. When False,
            drive the loop with process_once().
    """

    def __init__(
        self,
        client: SinkClient,
        config: QueueConfig,
        *,
        format_entry: Optional[Callable[[Any], str]] = None,
        timestamp_fn: Optional[Callable[[Any], int]] = None,
        on_error: Optional[ErrorCallback] = None,
        on_fatal_error: Optional[ErrorCallback] = None,
        autostart: bool = True,
    ):
        self.config = config.validate()
        self.client = client
        self._format_entry = format_entry or str
        self._timestamp_fn = timestamp_fn
        self._on_error = on_error or _log_error
        self._on_fatal_error = on_fatal_error or self._on_error

        self._builder = BatchBuilder(config.max_batch_items, config.batch_byte_budget)
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._waiters: Set[Future] = set()

        self._state = LoopState.IDLE
        self._closing = False
        self._overrun = False
        self._fatal_error: Optional[BaseException] = None
        self._consecutive_failures = 0

        # set once, never reset
        self._log_group_ready = False
        self._log_stream_ready = False

        self._thread: Optional[threading.Thread] = None
        if autostart:
            self.start()

    # =========================================================================
    # Public API
    # =========================================================================

    def start(self) -> None:
        """Start the background delivery thread (no-op if already running)."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run_loop,
            daemon=True,
            name=f"cwlogs-delivery-{self.config.log_stream_name}",
        )
        self._thread.start()

    def enqueue(
        self,
        message: Union[str, LogRecord],
        timestamp_ms: Optional[int] = None,
    ) -> Future:
        """
        Admit a record for delivery (non-blocking).

        Args:
            message: Message text, or a ready-made LogRecord
            timestamp_ms: Event time in epoch ms; defaults to now

        Returns:
            Future resolved when the record's batch has been accepted by the
            sink. It fails immediately with an AdmissionError when the record
            is rejected, with AlreadyClosedError after close() or a fatal
            stop, and later with FatalDeliveryError/DeliveryAbandonedError
            if the record is dropped while queued.
        """
        if isinstance(message, LogRecord):
            record = message
        else:
            ts = now_ms() if timestamp_ms is None else timestamp_ms
            record = LogRecord(ts, message)

        future: Future = Future()
        rejection: Optional[BaseException] = None

        with self._lock:
            if self._closing or self._state is LoopState.STOPPED:
                rejection = AlreadyClosedError()
                notices: List[BaseException] = []
            else:
                record, rejection, notices = self._admit(record)
                if rejection is None:
                    batch = self._builder.append(record, future)
                    logger.debug(
                        f"log message {record.size_bytes} bytes, "
                        f"batches: {len(self._builder)}, batchItems: {len(batch)}, "
                        f"batchBytes: {batch.size_bytes}"
                    )

        for notice in notices:
            self._report(notice)
        if rejection is not None:
            future.set_exception(rejection)
        return future

    def enqueue_entry(self, entry: Any) -> Future:
        """Format a structured entry and enqueue it."""
        message = self._format_entry(entry)
        timestamp = self._timestamp_fn(entry) if self._timestamp_fn else None
        return self.enqueue(message, timestamp)

    def await_drain(self) -> Future:
        """
        Register a drain waiter.

        Returns:
            Future resolved the next time the queue is observed empty,
            immediately if it already is.
        """
        future: Future = Future()
        with self._lock:
            self._waiters.add(future)
            waiters = self._take_waiters_if_drained()
        self._resolve_waiters(waiters)
        return future

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the queue drains.

        Returns:
            True if drained, False on timeout
        """
        try:
            self.await_drain().result(timeout)
        except FutureTimeoutError:
            return False
        return True

    def close(self) -> None:
        """
        Stop accepting records. Safe to call more than once.

        ClosePolicy.ABANDON drops queued batches and stops the loop at once
        (an in-flight call is allowed to finish). ClosePolicy.RETRY keeps
        delivering until the queue drains or a fatal error occurs.
        """
        with self._lock:
            if self._closing:
                return
            self._closing = True
            abandoned: List[Batch] = []
            waiters: List[Future] = []
            if self.config.close_policy is ClosePolicy.ABANDON:
                abandoned = self._builder.clear()
                waiters = self._take_waiters_if_drained()
                self._state = LoopState.STOPPED

        logger.debug(f"close (policy={self.config.close_policy.value})")
        if self.config.close_policy is ClosePolicy.ABANDON:
            self._wake.set()
            dropped = sum(len(batch) for batch in abandoned)
            if dropped:
                logger.warning(f"Delivery queue closed, dropped {dropped} queued records")
            self._fail_batches(abandoned, DeliveryAbandonedError(dropped))
            self._resolve_waiters(waiters)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the delivery thread to exit. Returns True if it has."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def __enter__(self) -> "DeliveryQueue":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # =========================================================================
    # Delivery loop
    # =========================================================================

    def process_once(self) -> Optional[Outcome]:
        """
        Run one tick of the delivery loop.

        Returns:
            Outcome of the attempt, or None if nothing was sent
        """
        with self._lock:
            if self._state is LoopState.STOPPED:
                return None
            waiters = self._take_waiters_if_drained()
            batch = self._builder.peek()
            if batch is None and self._closing:
                # retry-on-close policy, and everything got delivered
                self._state = LoopState.STOPPED
            elif batch is not None:
                batch.seal()
                batch.attempts += 1
                self._state = LoopState.SENDING
        self._resolve_waiters(waiters)

        if batch is None:
            return None

        outcome = self._deliver(batch)
        self._finish(batch, outcome)
        return outcome

    def _run_loop(self) -> None:
        """Background thread: tick, wait, repeat until stopped."""
        while self.state is not LoopState.STOPPED:
            self.process_once()
            if self.state is LoopState.STOPPED:
                break
            self._wake.wait(timeout=self._next_delay())
        logger.debug("delivery loop stopped")

    def _next_delay(self) -> float:
        with self._lock:
            failures = self._consecutive_failures
        return self.config.retry_interval_sec(failures)

    def _deliver(self, batch: Batch) -> Outcome:
        cfg = self.config

        if cfg.create_log_group and not self._log_group_ready:
            outcome = self._provision(
                lambda: self.client.create_log_group(cfg.log_group_name),
                LOG_GROUP_FATAL,
            )
            if not outcome.ok:
                return outcome
            self._log_group_ready = True

        if cfg.create_log_stream and not self._log_stream_ready:
            outcome = self._provision(
                lambda: self.client.create_log_stream(cfg.log_group_name, cfg.log_stream_name),
                LOG_STREAM_FATAL,
            )
            if not outcome.ok:
                return outcome
            self._log_stream_ready = True

        return self._send(batch)

    def _provision(self, create: Callable[[], None], fatal_kinds) -> Outcome:
        try:
            create()
        except Exception as e:
            return classify(e, fatal_kinds, ErrorKind.ALREADY_EXISTS)
        return Outcome.success()

    def _send(self, batch: Batch) -> Outcome:
        events = batch.to_events()
        logger.debug(
            f"sending batch ({len(events)} events, {batch.size_bytes} bytes, "
            f"attempt {batch.attempts})"
        )
        try:
            result = self.client.put_log_events(
                self.config.log_group_name,
                self.config.log_stream_name,
                events,
            )
        except Exception as e:
            return classify(e, SEND_FATAL, ErrorKind.DUPLICATE_SUBMISSION)

        logger.debug("sent batch")
        if result.partial_rejection:
            return Outcome.success(PartialDeliveryError(result.rejected_info, len(events)))
        return Outcome.success()

    def _finish(self, batch: Batch, outcome: Outcome) -> None:
        if outcome.is_fatal:
            self._stop_fatal(outcome.error)
            return

        with self._lock:
            delivered = False
            if outcome.ok:
                self._consecutive_failures = 0
                # close(ABANDON) may have emptied the queue during the call
                if self._builder.peek() is batch:
                    self._builder.pop()
                    delivered = True
            else:
                self._consecutive_failures += 1
            if self._state is LoopState.SENDING:
                self._state = LoopState.IDLE

        if delivered:
            for future in batch.futures:
                self._set_result(future)
        if not outcome.ok:
            logger.warning(
                f"Retrying batch of {len(batch)} records "
                f"(attempt {batch.attempts}): {outcome.error}"
            )
        if outcome.error is not None:
            self._report(outcome.error)

    def _stop_fatal(self, cause: BaseException) -> None:
        with self._lock:
            first = self._fatal_error is None
            if first:
                self._fatal_error = cause
            self._state = LoopState.STOPPED
            abandoned = self._builder.clear()
            waiters = self._take_waiters_if_drained()
        self._wake.set()

        dropped = sum(len(b) for b in abandoned)
        logger.error(f"Fatal error, delivery stopped ({dropped} records abandoned): {cause}")
        self._fail_batches(abandoned, FatalDeliveryError(cause))
        self._resolve_waiters(waiters)
        if first:
            try:
                self._on_fatal_error(cause)
            except Exception:
                logger.exception("on_fatal_error callback raised")

    # =========================================================================
    # Admission and bookkeeping
    # =========================================================================

    def _admit(
        self, record: LogRecord
    ) -> Tuple[LogRecord, Optional[BaseException], List[BaseException]]:
        """
        Apply the overrun and length guards. Called with the lock held.

        Returns:
            (record to append, rejection or None, non-fatal errors to report)
        """
        cfg = self.config
        notices: List[BaseException] = []

        queued = len(self._builder)
        # one slot stays free for the overrun marker
        if queued >= cfg.max_queued_batches - 1:
            first_in_episode = not self._overrun
            self._overrun = True
            if first_in_episode and cfg.overrun_marker is not None:
                notices.append(QueueFullError(queued, substituted=True))
                record = LogRecord(record.timestamp_ms, cfg.overrun_marker)
            else:
                error = QueueFullError(queued)
                if first_in_episode:
                    notices.append(error)
                return record, error, notices

        size = record.size_bytes
        suffix = cfg.truncation_suffix
        if size > cfg.max_message_bytes - byte_length(suffix):
            if not suffix:
                error = MessageTooLongError(size, cfg.max_message_bytes)
                notices.append(error)
                return record, error, notices
            truncated = truncate_message(record.message, cfg.max_message_bytes, suffix)
            record = LogRecord(record.timestamp_ms, truncated)
            notices.append(MessageTooLongError(size, cfg.max_message_bytes, truncated=True))

        return record, None, notices

    def _take_waiters_if_drained(self) -> List[Future]:
        """Detach all drain waiters if the queue is empty. Lock held."""
        if len(self._builder):
            return []
        self._overrun = False
        waiters = list(self._waiters)
        self._waiters.clear()
        return waiters

    def _resolve_waiters(self, waiters: Iterable[Future]) -> None:
        for waiter in waiters:
            self._set_result(waiter)

    @staticmethod
    def _set_result(future: Future) -> None:
        # done-callbacks that raise are logged by concurrent.futures itself
        try:
            if not future.done():
                future.set_result(None)
        except InvalidStateError:
            pass  # cancelled by the caller meanwhile

    @staticmethod
    def _fail_batches(batches: Iterable[Batch], error: BaseException) -> None:
        for batch in batches:
            for future in batch.futures:
                try:
                    if not future.done():
                        future.set_exception(error)
                except InvalidStateError:
                    pass

    def _report(self, error: BaseException) -> None:
        try:
            self._on_error(error)
        except Exception:
            logger.exception("on_error callback raised")

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def state(self) -> LoopState:
        with self._lock:
            return self._state

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closing or self._state is LoopState.STOPPED

    @property
    def overrun(self) -> bool:
        with self._lock:
            return self._overrun

    @property
    def fatal_error(self) -> Optional[BaseException]:
        with self._lock:
            return self._fatal_error

    @property
    def pending_batches(self) -> int:
        """Number of batches waiting to be delivered."""
        with self._lock:
            return len(self._builder)

    @property
    def pending_records(self) -> int:
        """Number of records waiting to be delivered."""
        with self._lock:
            return self._builder.record_count
