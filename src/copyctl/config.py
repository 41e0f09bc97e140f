from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    REGION: str = "us-east-1"
    DYNAMODB_ENDPOINT: Optional[str] = None
    S3_ENDPOINT: Optional[str] = None
    TOTAL_SEGMENTS: int = 1
    MONITOR_INTERVAL: float = 5.0
    MAX_POOL_CONNECTIONS: int = 50
    MAX_UNPROCESSED_RETRIES: Optional[int] = 64

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TABLE_COPY_",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
