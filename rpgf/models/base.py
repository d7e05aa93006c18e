"""
Base Models and Common Types

Foundation classes for all RPGF models including model configuration,
timestamp handling and the actor passed into every orchestrator call.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def convert_neo4j_datetime(value: Any) -> datetime:
    """Convert a Neo4j DateTime (or ISO string) to a timezone-aware datetime."""
    if value is None:
        return datetime.now(UTC)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
    # Neo4j DateTime object
    if hasattr(value, "to_native"):
        return convert_neo4j_datetime(value.to_native())
    if isinstance(value, str):
        return convert_neo4j_datetime(datetime.fromisoformat(value.replace("Z", "+00:00")))
    return value


class RPGFModel(BaseModel):
    """Base model for all RPGF entities with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=True,
    )


class TimestampMixin(BaseModel):
    """Mixin providing a created_at field."""

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("created_at", mode="before")
    @classmethod
    def convert_datetime(cls, v: Any) -> datetime:
        """Convert Neo4j DateTime to Python datetime."""
        return convert_neo4j_datetime(v)


class Actor(RPGFModel):
    """
    The authenticated caller of an orchestrator operation.

    Role facts are resolved by the application layer before the call;
    the core never authenticates.
    """

    user_id: str
    wallet_address: str
    is_admin: bool = False
    is_voter: bool = False


def utcnow() -> datetime:
    """Current UTC time; the default clock at orchestrator boundaries."""
    return datetime.now(UTC)
