"""Pytest fixtures for cwlogs_sdk tests."""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List

import pytest

from cwlogs_sdk.client import PutResult, SinkClient
from cwlogs_sdk.config import QueueConfig
from cwlogs_sdk.delivery import DeliveryQueue
from cwlogs_sdk.errors import ErrorKind, SinkError


class FakeSinkClient(SinkClient):
    """
    Scripted in-memory sink.

    Each *_results list is consumed front to back, one item per call.
    An exception item is raised, a PutResult is returned, None means
    plain success. An empty list means success.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.attempts: List[List[str]] = []  # messages of every put call
        self.sent: List[List[str]] = []  # messages of successful put calls
        self.group_results: List[Any] = []
        self.stream_results: List[Any] = []
        self.put_results: List[Any] = []

    @staticmethod
    def _next(results: List[Any]) -> Any:
        item = results.pop(0) if results else None
        if isinstance(item, BaseException):
            raise item
        return item

    def create_log_group(self, log_group_name: str) -> None:
        self.calls.append(("create_log_group", log_group_name))
        self._next(self.group_results)

    def create_log_stream(self, log_group_name: str, log_stream_name: str) -> None:
        self.calls.append(("create_log_stream", log_group_name, log_stream_name))
        self._next(self.stream_results)

    def put_log_events(
        self,
        log_group_name: str,
        log_stream_name: str,
        events: List[Dict[str, Any]],
    ) -> PutResult:
        messages = [e["message"] for e in events]
        self.calls.append(("put_log_events", log_group_name, log_stream_name, len(events)))
        self.attempts.append(messages)
        result = self._next(self.put_results)
        self.sent.append(messages)
        return result or PutResult()

    @property
    def put_count(self) -> int:
        return sum(1 for call in self.calls if call[0] == "put_log_events")

    @property
    def delivered(self) -> List[str]:
        return [m for batch in self.sent for m in batch]


def sink_error(kind: ErrorKind, operation: str = "PutLogEvents") -> SinkError:
    return SinkError(kind, operation, message=f"simulated {kind.value}")


@pytest.fixture
def make_error():
    """Factory for classified SinkErrors."""
    return sink_error


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_client():
    return FakeSinkClient()


@pytest.fixture
def errors():
    """Non-fatal errors reported by the queue."""
    return []


@pytest.fixture
def fatals():
    """Fatal errors reported by the queue."""
    return []


@pytest.fixture
def make_queue(fake_client, errors, fatals):
    """Factory for manually driven DeliveryQueues (autostart=False)."""
    queues = []

    def factory(**overrides) -> DeliveryQueue:
        settings = dict(
            log_group_name="test-group",
            log_stream_name="test-stream",
            min_interval_ms=10,
        )
        settings.update(overrides)
        queue = DeliveryQueue(
            fake_client,
            QueueConfig(**settings),
            on_error=errors.append,
            on_fatal_error=fatals.append,
            autostart=False,
        )
        queues.append(queue)
        return queue

    yield factory
    for queue in queues:
        queue.close()


@pytest.fixture(autouse=True)
def reset_env():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
