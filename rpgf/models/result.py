"""
Result Models
"""

from enum import Enum

from pydantic import Field

from rpgf.models.base import RPGFModel, TimestampMixin


class ResultMethod(str, Enum):
    """How per-voter allocations are aggregated into a result."""

    SUM = "sum"
    AVG = "avg"
    MEDIAN = "median"


class Result(RPGFModel, TimestampMixin):
    round_id: str
    application_id: str
    allocation: int = Field(ge=0)
    method: ResultMethod


class ApplicationResult(RPGFModel):
    """A result joined with its application for display."""

    application_id: str
    project_name: str | None = None
    account_id: str | None = None
    allocation: int
