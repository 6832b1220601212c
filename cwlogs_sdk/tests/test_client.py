"""Tests for cwlogs_sdk.client module."""

from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from cwlogs_sdk.client import CloudWatchLogsClient, PutResult, map_client_error
from cwlogs_sdk.errors import ErrorKind, SinkError


def client_error(code: str, operation: str = "PutLogEvents") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


class TestMapClientError:
    """Tests for map_client_error()."""

    @pytest.mark.parametrize(
        "code, kind",
        [
            ("ResourceAlreadyExistsException", ErrorKind.ALREADY_EXISTS),
            ("DataAlreadyAcceptedException", ErrorKind.DUPLICATE_SUBMISSION),
            ("InvalidParameterException", ErrorKind.CONFIG),
            ("LimitExceededException", ErrorKind.QUOTA),
            ("UnrecognizedClientException", ErrorKind.AUTH),
            ("ResourceNotFoundException", ErrorKind.MISSING_DESTINATION),
            ("InvalidSequenceTokenException", ErrorKind.BAD_SEQUENCE),
            ("ThrottlingException", ErrorKind.TRANSIENT),
            ("ServiceUnavailableException", ErrorKind.TRANSIENT),
        ],
    )
    def test_error_codes(self, code, kind):
        error = map_client_error(client_error(code), "PutLogEvents")
        assert isinstance(error, SinkError)
        assert error.kind is kind
        assert error.code == code
        assert error.operation == "PutLogEvents"
        assert f"{code} happened" in str(error)

    def test_network_errors_are_transient(self):
        cause = EndpointConnectionError(endpoint_url="https://logs.us-east-1.amazonaws.com")
        error = map_client_error(cause, "CreateLogGroup")
        assert error.kind is ErrorKind.TRANSIENT
        assert error.cause is cause
        assert error.code is None


class TestCloudWatchLogsClient:
    """Tests for CloudWatchLogsClient."""

    @patch("cwlogs_sdk.client.boto3")
    def test_lazy_client_creation(self, mock_boto3):
        sink = CloudWatchLogsClient(region_name="eu-west-1", endpoint_url="http://localhost:4566")
        mock_boto3.client.assert_not_called()

        _ = sink.client
        _ = sink.client
        mock_boto3.client.assert_called_once_with(
            "logs", region_name="eu-west-1", endpoint_url="http://localhost:4566"
        )

    def test_create_log_group_with_kms_and_tags(self):
        boto_client = Mock()
        sink = CloudWatchLogsClient(
            client=boto_client,
            kms_key_id="arn:aws:kms:us-east-1:123:key/abc",
            tags={"team": "platform"},
        )
        sink.create_log_group("my-group")
        boto_client.create_log_group.assert_called_once_with(
            logGroupName="my-group",
            kmsKeyId="arn:aws:kms:us-east-1:123:key/abc",
            tags={"team": "platform"},
        )

    def test_create_log_group_minimal(self):
        boto_client = Mock()
        CloudWatchLogsClient(client=boto_client).create_log_group("my-group")
        boto_client.create_log_group.assert_called_once_with(logGroupName="my-group")

    def test_create_log_group_already_exists(self):
        boto_client = Mock()
        boto_client.create_log_group.side_effect = client_error(
            "ResourceAlreadyExistsException", "CreateLogGroup"
        )
        with pytest.raises(SinkError) as exc_info:
            CloudWatchLogsClient(client=boto_client).create_log_group("my-group")
        assert exc_info.value.kind is ErrorKind.ALREADY_EXISTS
        assert exc_info.value.operation == "CreateLogGroup"

    def test_create_log_stream(self):
        boto_client = Mock()
        CloudWatchLogsClient(client=boto_client).create_log_stream("g", "s")
        boto_client.create_log_stream.assert_called_once_with(
            logGroupName="g", logStreamName="s"
        )

    def test_create_log_stream_missing_group(self):
        boto_client = Mock()
        boto_client.create_log_stream.side_effect = client_error(
            "ResourceNotFoundException", "CreateLogStream"
        )
        with pytest.raises(SinkError) as exc_info:
            CloudWatchLogsClient(client=boto_client).create_log_stream("g", "s")
        assert exc_info.value.kind is ErrorKind.MISSING_DESTINATION

    def test_put_log_events(self):
        boto_client = Mock()
        boto_client.put_log_events.return_value = {"nextSequenceToken": "123"}
        events = [{"timestamp": 1, "message": "a"}, {"timestamp": 2, "message": "b"}]

        result = CloudWatchLogsClient(client=boto_client).put_log_events("g", "s", events)

        boto_client.put_log_events.assert_called_once_with(
            logGroupName="g", logStreamName="s", logEvents=events
        )
        assert result == PutResult()
        assert not result.partial_rejection

    def test_put_log_events_partial_rejection(self):
        boto_client = Mock()
        boto_client.put_log_events.return_value = {
            "rejectedLogEventsInfo": {"tooOldLogEventEndIndex": 3}
        }
        result = CloudWatchLogsClient(client=boto_client).put_log_events("g", "s", [])
        assert result.partial_rejection
        assert result.rejected_info == {"tooOldLogEventEndIndex": 3}

    def test_put_log_events_network_error(self):
        boto_client = Mock()
        boto_client.put_log_events.side_effect = EndpointConnectionError(
            endpoint_url="https://logs.us-east-1.amazonaws.com"
        )
        with pytest.raises(SinkError) as exc_info:
            CloudWatchLogsClient(client=boto_client).put_log_events("g", "s", [])
        assert exc_info.value.kind is ErrorKind.TRANSIENT
