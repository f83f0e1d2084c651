"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
swap event ingestor, loading and validating environment variables
at startup.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

# Cykura concentrated-liquidity AMM program
DEFAULT_PROGRAM_ADDRESS = "cysPXAjehMpVKUapzbMCCnpFxUFFryEWEaLgnb9NrR8"


class DatabaseSettings(BaseSettings):
    """Database connection settings."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str = Field(
        alias="DATABASE_URL",
        description="PostgreSQL connection string",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate database URL format."""
        if not v.startswith(("postgresql://", "postgresql+asyncpg://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL connection string")
        return v


class RedisSettings(BaseSettings):
    """Redis connection settings (optional transaction cache)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; caching is disabled when unset",
    )
    transaction_cache_ttl_seconds: int = Field(
        default=24 * 3600,
        alias="REDIS_TRANSACTION_CACHE_TTL_SECONDS",
        ge=60,
        le=30 * 24 * 3600,
        description="TTL for cached finalized transaction records",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v


class SolanaSettings(BaseSettings):
    """Solana RPC settings."""

    model_config = SettingsConfigDict(env_prefix="SOLANA_", extra="ignore")

    rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        alias="SOLANA_RPC_URL",
        description="Primary Solana RPC endpoint",
    )
    fallback_rpc_url: str | None = Field(
        default=None,
        alias="SOLANA_FALLBACK_RPC_URL",
        description="Fallback Solana RPC endpoint",
    )
    commitment: Literal["finalized", "confirmed"] = Field(
        default="finalized",
        alias="SOLANA_COMMITMENT",
        description="Commitment level applied to signature and transaction queries",
    )
    max_requests_per_second: float = Field(
        default=10.0,
        alias="SOLANA_MAX_REQUESTS_PER_SECOND",
        gt=0.0,
        le=1000.0,
        description="Client-side rate limit for RPC calls",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        alias="SOLANA_REQUEST_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="HTTP timeout for a single RPC call",
    )

    @field_validator("rpc_url", "fallback_rpc_url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate RPC URL format."""
        if v is None:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError("RPC URL must be an HTTP(S) endpoint")
        return v


class ProgramSettings(BaseSettings):
    """Target program settings."""

    model_config = SettingsConfigDict(env_prefix="PROGRAM_", extra="ignore")

    address: str = Field(
        default=DEFAULT_PROGRAM_ADDRESS,
        alias="PROGRAM_ADDRESS",
        description="Address of the program whose transactions are ingested",
    )
    idl_path: Path | None = Field(
        default=None,
        alias="PROGRAM_IDL_PATH",
        description="Path to the program's Anchor IDL JSON file",
    )

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        v = v.strip()
        if not 32 <= len(v) <= 44:
            raise ValueError("PROGRAM_ADDRESS must be a base58 public key")
        return v


class IngestSettings(BaseSettings):
    """Reconciliation loop settings."""

    model_config = SettingsConfigDict(env_prefix="INGEST_", extra="ignore")

    direction: Literal["forward", "backward"] = Field(
        default="forward",
        alias="INGEST_DIRECTION",
        description="forward follows the ledger head, backward walks history from a start signature",
    )
    start_signature: str | None = Field(
        default=None,
        alias="INGEST_START_SIGNATURE",
        description="Starting anchor for backward ingestion",
    )
    idle_delay_seconds: float = Field(
        default=5.0,
        alias="INGEST_IDLE_DELAY_SECONDS",
        ge=0.0,
        le=3600.0,
        description="Sleep after a page yields no new signatures",
    )
    retry_delay_seconds: float = Field(
        default=1.0,
        alias="INGEST_RETRY_DELAY_SECONDS",
        ge=0.0,
        le=600.0,
        description="Initial backoff after a failed cycle",
    )
    max_retry_delay_seconds: float = Field(
        default=60.0,
        alias="INGEST_MAX_RETRY_DELAY_SECONDS",
        ge=0.0,
        le=3600.0,
        description="Backoff ceiling after repeated failed cycles",
    )
    dedup_capacity: int = Field(
        default=1000,
        alias="INGEST_DEDUP_CAPACITY",
        ge=1,
        le=1_000_000,
        description="Maximum signatures held by the dedup cache",
    )
    dedup_eviction: Literal["clear", "oldest"] = Field(
        default="clear",
        alias="INGEST_DEDUP_EVICTION",
        description="clear empties the cache at capacity, oldest evicts oldest-first",
    )
    fetch_batch_size: int = Field(
        default=100,
        alias="INGEST_FETCH_BATCH_SIZE",
        ge=1,
        le=1000,
        description="Signatures resolved per transaction fetch chunk",
    )
    max_pending: int = Field(
        default=1000,
        alias="INGEST_MAX_PENDING",
        ge=1,
        le=1_000_000,
        description="Maximum unresolved signatures kept for refetch",
    )
    page_limit: int = Field(
        default=1000,
        alias="INGEST_PAGE_LIMIT",
        ge=1,
        le=1000,
        description="Maximum signatures requested per page",
    )
    exhausted_after_empty_pages: int = Field(
        default=3,
        alias="INGEST_EXHAUSTED_AFTER_EMPTY_PAGES",
        ge=1,
        le=1000,
        description="Consecutive empty backward pages before history is reported exhausted",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from swap_event_ingestor.config import get_settings

        settings = get_settings()
        print(settings.database.url)
        print(settings.ingest.direction)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    solana: SolanaSettings = Field(
        default_factory=lambda: SolanaSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    program: ProgramSettings = Field(
        default_factory=lambda: ProgramSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    ingest: IngestSettings = Field(
        default_factory=lambda: IngestSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url),
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "solana": {
                "rpc_url": self.solana.rpc_url,
                "fallback_rpc_url": self.solana.fallback_rpc_url or "(not set)",
                "commitment": self.solana.commitment,
            },
            "program": {
                "address": self.program.address,
                "idl_path": str(self.program.idl_path) if self.program.idl_path else "(not set)",
            },
            "ingest": {
                "direction": self.ingest.direction,
                "start_signature": self.ingest.start_signature or "(not set)",
                "dedup_capacity": str(self.ingest.dedup_capacity),
                "dedup_eviction": self.ingest.dedup_eviction,
            },
            "log_level": self.log_level,
        }

    def validate_requirements(self, *, command: Literal["ingest", "backfill", "rollup"]) -> None:
        """Validate command-specific requirements.

        Raises:
            ValueError: If a setting required by the command is missing.
        """
        if command in ("ingest", "backfill"):
            if self.program.idl_path is None:
                raise ValueError("PROGRAM_IDL_PATH is required to decode program logs")
            if not self.program.idl_path.is_file():
                raise ValueError(f"PROGRAM_IDL_PATH does not exist: {self.program.idl_path}")
        if command == "backfill" and not self.ingest.start_signature:
            raise ValueError("INGEST_START_SIGNATURE is required for backward ingestion")
        if command == "rollup" and self.program.idl_path is None:
            raise ValueError("PROGRAM_IDL_PATH is required to resolve pool tokens")

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Raises:
        ValidationError: If required environment variables are missing
            or have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
