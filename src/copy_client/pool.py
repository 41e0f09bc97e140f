from __future__ import annotations

from typing import Any, Callable, Optional

import boto3
from botocore.config import Config
from loguru import logger
import redis.asyncio as aioredis

from .errors import ConfigurationError
from .models import DEFAULT_REGION, RedisLocation, validate_endpoint

DynamoDBFactory = Callable[[str, Optional[str]], Any]
S3Factory = Callable[[Optional[str], Optional[str]], Any]
RedisFactory = Callable[[str, int, int], Any]


class ClientPool:
    """
    One lazily created client per backend endpoint, shared by every source and sink.

    Usage:

        pool = ClientPool(max_pool_connections=64)
        try:
            source = DynamoDBSegmentSource(pool, TableLocation(table_name="orders"))
            ...
        finally:
            await pool.aclose()

    Factories may be injected to substitute in-process backends.
    """

    def __init__(
        self,
        *,
        max_pool_connections: int = 50,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        dynamodb_factory: Optional[DynamoDBFactory] = None,
        s3_factory: Optional[S3Factory] = None,
        redis_factory: Optional[RedisFactory] = None,
    ):
        if max_pool_connections <= 0:
            raise ConfigurationError("max_pool_connections must be > 0")
        self._botocore_config = Config(
            max_pool_connections=max_pool_connections,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            tcp_keepalive=True,
            # sources and sinks own retry behaviour through BackoffPolicy
            retries={"mode": "standard", "max_attempts": 1},
        )
        self._dynamodb_factory = dynamodb_factory or self._boto_dynamodb
        self._s3_factory = s3_factory or self._boto_s3
        self._redis_factory = redis_factory or self._redis_client
        self._session: Optional[boto3.session.Session] = None

        self._dynamodb: dict[str, Any] = {}
        self._s3: dict[str, Any] = {}
        self._redis: dict[str, Any] = {}

    # ---------- cached accessors ----------

    def dynamodb(self, region: Optional[str] = None, endpoint: Optional[str] = None) -> Any:
        region = region or DEFAULT_REGION
        endpoint = validate_endpoint(endpoint)
        key = f"{region}{endpoint or ''}"
        if key not in self._dynamodb:
            logger.debug(f"Creating DynamoDB client for region={region} endpoint={endpoint}")
            self._dynamodb[key] = self._dynamodb_factory(region, endpoint)
        return self._dynamodb[key]

    def s3(self, region: Optional[str] = None, endpoint: Optional[str] = None) -> Any:
        endpoint = validate_endpoint(endpoint)
        key = f"{region or ''}{endpoint or ''}"
        if key not in self._s3:
            logger.debug(f"Creating S3 client for region={region} endpoint={endpoint}")
            self._s3[key] = self._s3_factory(region, endpoint)
        return self._s3[key]

    def redis(self, location: RedisLocation) -> Any:
        key = location.url
        if key not in self._redis:
            logger.debug(f"Creating Redis client for {key}")
            self._redis[key] = self._redis_factory(location.host, location.port, location.database)
        return self._redis[key]

    async def aclose(self) -> None:
        for client in self._redis.values():
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
        for client in [*self._dynamodb.values(), *self._s3.values()]:
            close = getattr(client, "close", None)
            if close is not None:
                close()
        self._dynamodb.clear()
        self._s3.clear()
        self._redis.clear()

    # ---------- default factories ----------

    def _boto_session(self) -> boto3.session.Session:
        if self._session is None:
            self._session = boto3.session.Session()
        return self._session

    def _boto_kwargs(self, region: Optional[str], endpoint: Optional[str]) -> dict:
        kwargs: dict[str, Any] = {"config": self._botocore_config}
        if region:
            kwargs["region_name"] = region
        if endpoint:
            kwargs["endpoint_url"] = endpoint
            kwargs["use_ssl"] = not endpoint.startswith("http://")
        return kwargs

    def _boto_dynamodb(self, region: str, endpoint: Optional[str]) -> Any:
        return self._boto_session().client("dynamodb", **self._boto_kwargs(region, endpoint))

    def _boto_s3(self, region: Optional[str], endpoint: Optional[str]) -> Any:
        return self._boto_session().client("s3", **self._boto_kwargs(region, endpoint))

    @staticmethod
    def _redis_client(host: str, port: int, database: int) -> Any:
        return aioredis.Redis(host=host, port=port, db=database, decode_responses=True)
