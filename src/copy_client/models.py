"""
Pydantic location models for copy sources and sinks.

Each model names one backend resource; validation runs at construction so a
bad table name or endpoint fails before any I/O.
"""

from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, field_validator

from .errors import ConfigurationError

DEFAULT_REGION = "us-east-1"
DEFAULT_REDIS_PORT = 6379


def validate_endpoint(endpoint: Optional[str]) -> Optional[str]:
    """Reject endpoint URLs that boto3 could not connect to."""
    if not endpoint:
        return None
    parsed = urlparse(endpoint)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigurationError(f"Invalid endpoint URL: {endpoint!r}")
    return endpoint


class TableLocation(BaseModel):
    """A DynamoDB table in a region, optionally behind a custom endpoint."""

    table_name: str
    region: str = DEFAULT_REGION
    endpoint: Optional[str] = None

    @field_validator("table_name")
    @classmethod
    def _require_name(cls, v):
        if not v or not v.strip():
            raise ConfigurationError("Table name is not set")
        return v.strip()

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, v):
        return validate_endpoint(v)


class S3Location(BaseModel):
    """An S3 object (or key prefix when used as an export destination)."""

    bucket: str
    key: str = ""
    region: Optional[str] = None
    endpoint: Optional[str] = None

    @field_validator("bucket")
    @classmethod
    def _require_bucket(cls, v):
        if not v or not v.strip():
            raise ConfigurationError("Bucket name is not set")
        return v.strip()

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, v):
        return validate_endpoint(v)

    @property
    def url(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def child(self, name: str) -> "S3Location":
        prefix = self.key.rstrip("/")
        key = f"{prefix}/{name}" if prefix else name
        return self.model_copy(update={"key": key})


class RedisLocation(BaseModel):
    """A Redis logical database."""

    host: str = "localhost"
    port: int = DEFAULT_REDIS_PORT
    database: int = 0

    @field_validator("port")
    @classmethod
    def _check_port(cls, v):
        if not 0 < v < 65536:
            raise ConfigurationError(f"Invalid Redis port: {v}")
        return v

    @field_validator("database")
    @classmethod
    def _check_database(cls, v):
        if v < 0:
            raise ConfigurationError(f"Invalid Redis database: {v}")
        return v

    @property
    def url(self) -> str:
        return f"redis://{self.host}:{self.port}/{self.database}"
