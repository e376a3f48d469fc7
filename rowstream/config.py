"""
Configuration settings for rowstream.

Uses Pydantic Settings to load environment variables for database connections,
pool policy, streaming defaults and logging.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("postgres", alias="DB_NAME")
    db_driver: Literal["psycopg", "asyncpg"] = Field("psycopg", alias="DB_DRIVER")
    # 0 disables the transaction-local statement_timeout
    db_statement_timeout_ms: int = Field(0, ge=0, alias="DB_STATEMENT_TIMEOUT_MS")

    # Pool policy
    pool_min_size: int = Field(1, ge=0, alias="POOL_MIN_SIZE")
    pool_max_size: int = Field(20, ge=1, alias="POOL_MAX_SIZE")
    # Seconds to wait for a free connection; 0 fails immediately when the pool is empty.
    pool_acquire_timeout: float = Field(5.0, ge=0, alias="POOL_ACQUIRE_TIMEOUT")
    pool_open_timeout: float = Field(10.0, gt=0, alias="POOL_OPEN_TIMEOUT")

    # Streaming defaults
    stream_batch_size: int = Field(500, gt=0, alias="STREAM_BATCH_SIZE")
    stream_row_limit: Optional[int] = Field(None, ge=0, alias="STREAM_ROW_LIMIT")
    stream_stall_timeout: Optional[float] = Field(30.0, gt=0, alias="STREAM_STALL_TIMEOUT")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
