"""
Unit tests for AWS error classification.
"""

import pytest
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from copy_client.errors import (
    BackendError,
    ConfigurationError,
    RetryableError,
    StreamClosedError,
    error_code,
    is_retryable,
    map_aws_error,
)


def test_retryable_codes(client_error):
    assert is_retryable(client_error("ProvisionedThroughputExceededException"))
    assert is_retryable(client_error("InternalServerError"))
    assert is_retryable(RetryableError("slow down"))
    assert not is_retryable(client_error("ValidationException"))
    assert not is_retryable(ValueError("nope"))


def test_map_aws_error(client_error):
    mapped = map_aws_error(client_error("ResourceNotFoundException", "Scan"))
    assert isinstance(mapped, BackendError)
    assert mapped.code == "ResourceNotFoundException"

    throttled = map_aws_error(client_error("ThrottlingException"))
    assert isinstance(throttled, RetryableError)
    assert throttled.code == "ThrottlingException"

    own = StreamClosedError("closed")
    assert map_aws_error(own) is own


def test_error_code_without_response():
    assert error_code(RuntimeError("x")) is None


def test_configuration_error_is_not_value_error():
    # pydantic wraps ValueError raised in validators; ours must pass through
    assert not issubclass(ConfigurationError, ValueError)


@pytest.mark.parametrize(
    "exc",
    [
        ReadTimeoutError(endpoint_url="https://dynamodb.us-east-1.amazonaws.com"),
        EndpointConnectionError(endpoint_url="http://localhost:8000"),
        ConnectTimeoutError(endpoint_url="https://s3.amazonaws.com"),
    ],
)
def test_connection_failures_are_retryable(exc):
    assert is_retryable(exc)
    mapped = map_aws_error(exc)
    assert isinstance(mapped, RetryableError)
    assert mapped.code == type(exc).__name__


def test_server_side_failures_are_retryable(client_error):
    assert is_retryable(client_error("ServiceUnavailable"))
    assert is_retryable(client_error("InternalError"))
    assert is_retryable(client_error("SlowDown"))
    unavailable = ClientError(
        {"Error": {"Code": "503", "Message": ""}, "ResponseMetadata": {"HTTPStatusCode": 503}},
        "UploadPart",
    )
    assert is_retryable(unavailable)
    forbidden = ClientError(
        {"Error": {"Code": "403", "Message": ""}, "ResponseMetadata": {"HTTPStatusCode": 403}},
        "GetObject",
    )
    assert not is_retryable(forbidden)


def test_other_botocore_errors_map_to_backend_error():
    exc = NoCredentialsError()
    assert not is_retryable(exc)
    mapped = map_aws_error(exc)
    assert type(mapped) is BackendError
    assert mapped.code == "NoCredentialsError"
