"""
Sink clients - the remote side of the delivery queue.

SinkClient is the interface the delivery loop talks to. CloudWatchLogsClient
implements it on top of the boto3 ``logs`` client and turns AWS error codes
into classified SinkErrors.

Error code mapping:
    ResourceAlreadyExistsException  -> ALREADY_EXISTS
    DataAlreadyAcceptedException    -> DUPLICATE_SUBMISSION
    InvalidParameterException       -> CONFIG
    LimitExceededException          -> QUOTA
    UnrecognizedClientException     -> AUTH
    ResourceNotFoundException       -> MISSING_DESTINATION
    InvalidSequenceTokenException   -> BAD_SEQUENCE
    anything else, network errors   -> TRANSIENT
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ErrorKind, SinkError

logger = logging.getLogger(__name__)

ERROR_CODE_KINDS: Dict[str, ErrorKind] = {
    "ResourceAlreadyExistsException": ErrorKind.ALREADY_EXISTS,
    "DataAlreadyAcceptedException": ErrorKind.DUPLICATE_SUBMISSION,
    "InvalidParameterException": ErrorKind.CONFIG,
    "LimitExceededException": ErrorKind.QUOTA,
    "UnrecognizedClientException": ErrorKind.AUTH,
    "ResourceNotFoundException": ErrorKind.MISSING_DESTINATION,
    "InvalidSequenceTokenException": ErrorKind.BAD_SEQUENCE,
}


@dataclass
class PutResult:
    """Response of a put_log_events call."""
    rejected_info: Dict[str, Any] = field(default_factory=dict)

    @property
    def partial_rejection(self) -> bool:
        return bool(self.rejected_info)


class SinkClient(ABC):
    """
    Abstract base class for remote log sinks.

    Implementations raise SinkError for every failure so that the
    delivery loop can classify it.
    """

    @abstractmethod
    def create_log_group(self, log_group_name: str) -> None:
        """Create the log group. Raises SinkError(ALREADY_EXISTS) if it exists."""
        pass

    @abstractmethod
    def create_log_stream(self, log_group_name: str, log_stream_name: str) -> None:
        """Create the log stream. Raises SinkError(ALREADY_EXISTS) if it exists."""
        pass

    @abstractmethod
    def put_log_events(
        self,
        log_group_name: str,
        log_stream_name: str,
        events: List[Dict[str, Any]],
    ) -> PutResult:
        """
        Append events, in order, to a log stream.

        Args:
            log_group_name: Destination log group
            log_stream_name: Destination log stream
            events: [{"timestamp": epoch_ms, "message": str}, ...]

        Returns:
            PutResult describing any records the sink rejected
        """
        pass


def map_client_error(error: BaseException, operation: str) -> SinkError:
    """Convert a botocore exception into a classified SinkError."""
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        message = error.response.get("Error", {}).get("Message")
        kind = ERROR_CODE_KINDS.get(code, ErrorKind.TRANSIENT)
        return SinkError(kind, operation, code=code or None, cause=error, message=message)
    return SinkError(ErrorKind.TRANSIENT, operation, cause=error)


class CloudWatchLogsClient(SinkClient):
    """
    Amazon CloudWatch Logs sink.

    Args:
        region_name: AWS region; boto3's default resolution when None
        kms_key_id: KMS key ARN used when creating the log group
        tags: Tags applied when creating the log group
        client: Pre-built boto3 ``logs`` client (skips lazy creation)
        **client_kwargs: Extra arguments for boto3.client("logs", ...)
    """

    def __init__(
        self,
        region_name: Optional[str] = None,
        kms_key_id: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
        client: Any = None,
        **client_kwargs: Any,
    ):
        self.region_name = region_name
        self.kms_key_id = kms_key_id
        self.tags = dict(tags or {})
        self._client_kwargs = client_kwargs
        self._client = client

    @property
    def client(self):
        """Lazy initialization of the boto3 logs client."""
        if self._client is None:
            kwargs = dict(self._client_kwargs)
            if self.region_name:
                kwargs["region_name"] = self.region_name
            self._client = boto3.client("logs", **kwargs)
        return self._client

    def create_log_group(self, log_group_name: str) -> None:
        params: Dict[str, Any] = {"logGroupName": log_group_name}
        if self.kms_key_id:
            params["kmsKeyId"] = self.kms_key_id
        if self.tags:
            params["tags"] = self.tags
        try:
            self.client.create_log_group(**params)
        except (ClientError, BotoCoreError) as e:
            raise map_client_error(e, "CreateLogGroup") from e
        logger.debug(f"Created log group {log_group_name}")

    def create_log_stream(self, log_group_name: str, log_stream_name: str) -> None:
        try:
            self.client.create_log_stream(
                logGroupName=log_group_name,
                logStreamName=log_stream_name,
            )
        except (ClientError, BotoCoreError) as e:
            raise map_client_error(e, "CreateLogStream") from e
        logger.debug(f"Created log stream {log_group_name}/{log_stream_name}")

    def put_log_events(
        self,
        log_group_name: str,
        log_stream_name: str,
        events: List[Dict[str, Any]],
    ) -> PutResult:
        try:
            response = self.client.put_log_events(
                logGroupName=log_group_name,
                logStreamName=log_stream_name,
                logEvents=events,
            )
        except (ClientError, BotoCoreError) as e:
            raise map_client_error(e, "PutLogEvents") from e
        return PutResult(rejected_info=response.get("rejectedLogEventsInfo") or {})
