"""
RPGF Configuration Management

Centralized configuration using Pydantic Settings for type-safe environment
variable loading with validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ═══════════════════════════════════════════════════════════════
    # APPLICATION
    # ═══════════════════════════════════════════════════════════════
    app_name: str = Field(default="rpgf-core", description="Application name")
    app_env: Literal["development", "staging", "production", "testing"] = Field(
        default="development", description="Environment"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_json: bool = Field(default=False, description="Emit JSON log lines")

    # ═══════════════════════════════════════════════════════════════
    # NEO4J DATABASE
    # ═══════════════════════════════════════════════════════════════
    neo4j_uri: str = Field(default="bolt://localhost:7687", description="Neo4j connection URI")
    neo4j_user: str = Field(default="neo4j", description="Neo4j username")
    neo4j_password: str = Field(default="", description="Neo4j password")
    neo4j_database: str = Field(default="neo4j", description="Neo4j database name")

    # Connection Pool
    neo4j_max_connection_lifetime: int = Field(
        default=3600, description="Max connection lifetime in seconds"
    )
    neo4j_max_connection_pool_size: int = Field(
        default=50, ge=1, description="Max connection pool size"
    )
    neo4j_connection_timeout: int = Field(
        default=30, ge=1, description="Connection timeout in seconds"
    )

    # ═══════════════════════════════════════════════════════════════
    # REDIS CACHE (Optional)
    # ═══════════════════════════════════════════════════════════════
    redis_url: str | None = Field(default=None, description="Redis URL")
    cache_version: int = Field(default=1, ge=1, description="Cache key namespace version")
    cache_ttl_seconds: int = Field(default=3600, ge=0, description="Cache TTL")

    # ═══════════════════════════════════════════════════════════════
    # CONTENT & LEDGER
    # ═══════════════════════════════════════════════════════════════
    ipfs_gateway_url: str = Field(
        default="https://drips.mypinata.cloud/ipfs",
        description="IPFS gateway used to fetch attested application payloads",
    )
    ipfs_request_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Timeout for a single gateway request"
    )
    attestation_poll_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Upper bound for waiting on a ledger record"
    )
    attestation_poll_interval_seconds: float = Field(
        default=2.0, gt=0, description="Delay between ledger polls"
    )

    # ═══════════════════════════════════════════════════════════════
    # BALLOTS & RESULTS
    # ═══════════════════════════════════════════════════════════════
    ballot_signature_domain_name: str = Field(
        default="Sign votes", description="EIP-712 domain name for ballot signatures"
    )
    ballot_signature_domain_version: str = Field(
        default="1", description="EIP-712 domain version for ballot signatures"
    )
    weight_export_total: int = Field(
        default=1_000_000, ge=1, description="Total weight distributed by the weight export"
    )

    @field_validator("ipfs_gateway_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("attestation_poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: float, info) -> float:
        timeout = info.data.get("attestation_poll_timeout_seconds")
        if timeout is not None and v > timeout:
            raise ValueError("Poll interval cannot exceed the poll timeout")
        return v

    @property
    def phase_override_allowed(self) -> bool:
        """Forcing a round into a phase is a test hook, never available in production."""
        return self.app_env in ("development", "testing")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Singleton settings instance
settings = get_settings()
