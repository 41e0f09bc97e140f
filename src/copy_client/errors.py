"""
Custom exceptions for the table copy engine.

Provides structured error handling with retry classification and observability.
"""

from botocore.exceptions import BotoCoreError, ClientError, HTTPClientError
from botocore.exceptions import ConnectionError as BotoConnectionError

RETRYABLE_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "InternalServerError",
        "ThrottlingException",
        "RequestLimitExceeded",
        # S3 / generic 5xx
        "InternalError",
        "ServiceUnavailable",
        "SlowDown",
        "RequestTimeout",
    }
)

# everything a botocore client call can raise
AWS_ERRORS = (ClientError, BotoCoreError)


class CopyOperationalError(Exception):
    """Base operational error for copy sources and sinks."""

    pass


class RetryableError(CopyOperationalError):
    """Throttling or transient server errors that should be retried with backoff."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class BackendError(CopyOperationalError):
    """Non-retryable service error (bad request, auth failure, missing resource)."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


class ConfigurationError(CopyOperationalError):
    """Invalid construction input, raised before any I/O."""

    pass


class StreamClosedError(CopyOperationalError):
    """Source or sink used after end of data, close, or a terminal error."""

    pass


class UnprocessedItemsError(CopyOperationalError):
    """Batch write still had unprocessed items after the retry budget ran out."""

    def __init__(self, items: list, attempts: int):
        super().__init__(f"{len(items)} items still unprocessed after {attempts} resubmissions")
        self.items = items
        self.attempts = attempts


class ObjectFormatError(CopyOperationalError):
    """Object body is not a well-formed JSON array."""

    pass


class SchemaCoercionError(CopyOperationalError, ValueError):
    """Field value cannot be converted to the type declared in the table schema."""

    pass


class RecordKeyError(CopyOperationalError, KeyError):
    """Record lacks a key attribute required by the sink."""

    pass


def error_code(e: Exception) -> str | None:
    response = getattr(e, "response", None)
    if isinstance(response, dict):
        return response.get("Error", {}).get("Code")
    return None


def http_status(e: Exception) -> int | None:
    response = getattr(e, "response", None)
    if isinstance(response, dict):
        return response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return None


def is_retryable(e: Exception) -> bool:
    if isinstance(e, RetryableError):
        return True
    # connection resets, endpoint unreachable, connect/read timeouts
    if isinstance(e, (BotoConnectionError, HTTPClientError)):
        return True
    if error_code(e) in RETRYABLE_ERROR_CODES:
        return True
    status = http_status(e)
    return status is not None and status >= 500


def map_aws_error(e: Exception) -> CopyOperationalError:
    if isinstance(e, CopyOperationalError):
        return e
    code = error_code(e) or (type(e).__name__ if isinstance(e, BotoCoreError) else None)
    if is_retryable(e):
        return RetryableError(str(e), code=code)
    return BackendError(str(e), code=code)
