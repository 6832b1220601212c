"""
Delivery outcomes and failure classification.

Every step of a delivery tick (log group creation, log stream creation,
sending a batch) produces an Outcome: SUCCESS, RETRY or FATAL. The loop
only looks at the status; the error travels along for reporting.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from .errors import ErrorKind, SinkError


class OutcomeStatus(Enum):
    SUCCESS = "success"
    RETRY = "retry"
    FATAL = "fatal"


@dataclass(frozen=True)
class Outcome:
    """Result of one provisioning or send step."""
    status: OutcomeStatus
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, warning: Optional[BaseException] = None) -> "Outcome":
        """Success; warning is a non-fatal error to report (partial delivery)."""
        return cls(OutcomeStatus.SUCCESS, warning)

    @classmethod
    def retry(cls, error: BaseException) -> "Outcome":
        return cls(OutcomeStatus.RETRY, error)

    @classmethod
    def fatal(cls, error: BaseException) -> "Outcome":
        return cls(OutcomeStatus.FATAL, error)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS

    @property
    def is_fatal(self) -> bool:
        return self.status is OutcomeStatus.FATAL


# Kinds after which retrying the same request is pointless, per operation.
LOG_GROUP_FATAL: FrozenSet[ErrorKind] = frozenset({
    ErrorKind.CONFIG,
    ErrorKind.QUOTA,
    ErrorKind.AUTH,
})

LOG_STREAM_FATAL: FrozenSet[ErrorKind] = frozenset({
    ErrorKind.CONFIG,
    ErrorKind.QUOTA,
    ErrorKind.AUTH,
    ErrorKind.MISSING_DESTINATION,
})

SEND_FATAL: FrozenSet[ErrorKind] = frozenset({
    ErrorKind.CONFIG,
    ErrorKind.BAD_SEQUENCE,
    ErrorKind.MISSING_DESTINATION,
    ErrorKind.AUTH,
})


def classify(
    error: BaseException,
    fatal_kinds: FrozenSet[ErrorKind],
    ok_kind: ErrorKind,
) -> Outcome:
    """
    Classify an exception raised by a sink call.

    Args:
        error: The exception raised by the SinkClient
        fatal_kinds: Kinds that stop delivery for this operation
        ok_kind: Kind that counts as success (already exists / already accepted)

    Returns:
        Outcome for the step. Anything that is not a SinkError is retried.
    """
    if isinstance(error, SinkError):
        if error.kind is ok_kind:
            return Outcome.success()
        if error.kind in fatal_kinds:
            return Outcome.fatal(error)
    return Outcome.retry(error)
