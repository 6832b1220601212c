"""
Batches of LogRecords bounded by item count and byte size.

BatchBuilder keeps an ordered queue of batches, oldest first. Records are
always appended to the newest batch. It is sealed and a new one started when
the record would overflow it or is older than its last record, and once the
delivery loop starts sending it.
"""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import Future
from typing import Deque, Iterator, List, Optional

from .record import LogRecord

logger = logging.getLogger(__name__)


class Batch:
    """An append-only run of records sent to the sink in one request."""

    def __init__(self) -> None:
        self.records: List[LogRecord] = []
        self.futures: List[Future] = []
        self.size_bytes = 0
        self.sealed = False
        self.attempts = 0

    def __len__(self) -> int:
        return len(self.records)

    def fits(self, record: LogRecord, max_items: int, max_bytes: int) -> bool:
        if self.sealed:
            return False
        if len(self.records) + 1 > max_items:
            return False
        # events in one request must be in chronological order
        if self.records and record.timestamp_ms < self.records[-1].timestamp_ms:
            return False
        return self.size_bytes + record.size_bytes <= max_bytes

    def add(self, record: LogRecord, future: Optional[Future] = None) -> None:
        if self.sealed:
            raise RuntimeError("cannot append to a sealed batch")
        self.records.append(record)
        self.size_bytes += record.size_bytes
        if future is not None:
            self.futures.append(future)

    def seal(self) -> None:
        self.sealed = True

    def to_events(self) -> List[dict]:
        return [record.to_event() for record in self.records]


class BatchBuilder:
    """Ordered queue of batches.

    Args:
        max_items: Maximum records per batch
        max_bytes: Maximum encoded bytes per batch
    """

    def __init__(self, max_items: int, max_bytes: int):
        if max_items <= 0:
            raise ValueError("max_items must be > 0")
        if max_bytes <= 0:
            raise ValueError("max_bytes must be > 0")
        self.max_items = max_items
        self.max_bytes = max_bytes
        self._batches: Deque[Batch] = deque()

    def __len__(self) -> int:
        return len(self._batches)

    def __iter__(self) -> Iterator[Batch]:
        return iter(self._batches)

    @property
    def record_count(self) -> int:
        return sum(len(batch) for batch in self._batches)

    def append(self, record: LogRecord, future: Optional[Future] = None) -> Batch:
        """
        Append a record to the newest batch, starting a new one if needed.

        Args:
            record: Record to append. Must not exceed max_bytes on its own.
            future: Optional completion to resolve when the batch is delivered

        Returns:
            The batch the record was added to
        """
        if record.size_bytes > self.max_bytes:
            raise ValueError(
                f"record of {record.size_bytes} bytes exceeds batch limit {self.max_bytes}"
            )
        if not self._batches:
            self._batches.append(Batch())

        batch = self._batches[-1]
        if not batch.fits(record, self.max_items, self.max_bytes):
            if not batch.sealed:
                batch.seal()
                logger.debug(
                    f"new batch (items={len(batch)}, bytes={batch.size_bytes})"
                )
            batch = Batch()
            self._batches.append(batch)

        batch.add(record, future)
        return batch

    def peek(self) -> Optional[Batch]:
        """Oldest batch, left in place."""
        return self._batches[0] if self._batches else None

    def pop(self) -> Batch:
        """Remove and return the oldest batch."""
        return self._batches.popleft()

    def clear(self) -> List[Batch]:
        """Remove and return every queued batch."""
        batches = list(self._batches)
        self._batches.clear()
        return batches
