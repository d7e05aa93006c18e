"""
Round Models

Rounds, their schedules and voting configuration, plus the chain
configuration a round is anchored to.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field, field_validator, model_validator

from rpgf.models.base import RPGFModel, TimestampMixin, convert_neo4j_datetime

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class RoundPhase(str, Enum):
    """Time-derived phases of a published round, in chronological order."""

    PENDING_INTAKE = "pending-intake"
    INTAKE = "intake"
    PENDING_VOTING = "pending-voting"
    VOTING = "voting"
    PENDING_RESULTS = "pending-results"
    RESULTS = "results"


class RoundSchedule(RPGFModel):
    """
    The five phase boundaries of a round.

    Boundaries are non-decreasing; the phase resolver relies on it.
    """

    application_start: datetime
    application_end: datetime
    voting_start: datetime
    voting_end: datetime
    results_start: datetime

    @field_validator(
        "application_start",
        "application_end",
        "voting_start",
        "voting_end",
        "results_start",
        mode="before",
    )
    @classmethod
    def convert_datetime(cls, v: Any) -> datetime:
        return convert_neo4j_datetime(v)

    @model_validator(mode="after")
    def check_order(self) -> "RoundSchedule":
        boundaries = self.boundaries()
        for (earlier_name, earlier), (later_name, later) in zip(boundaries, boundaries[1:]):
            if earlier > later:
                raise ValueError(f"{earlier_name} must not be after {later_name}")
        return self

    def boundaries(self) -> list[tuple[str, datetime]]:
        return [
            ("application_start", self.application_start),
            ("application_end", self.application_end),
            ("voting_start", self.voting_start),
            ("voting_end", self.voting_end),
            ("results_start", self.results_start),
        ]


class VotingConfig(RPGFModel):
    """Per-round ballot budget and eligible voters."""

    max_votes_per_voter: int = Field(gt=0)
    max_votes_per_project_per_voter: int = Field(gt=0)
    allowed_voter_ids: set[str] = Field(default_factory=set)

    @model_validator(mode="after")
    def check_caps(self) -> "VotingConfig":
        if self.max_votes_per_project_per_voter > self.max_votes_per_voter:
            raise ValueError(
                "max_votes_per_project_per_voter cannot exceed max_votes_per_voter"
            )
        return self


class AttestationSetup(RPGFModel):
    """EAS contract and schemas a chain uses for application proofs."""

    contract_address: str
    application_schema_id: str
    review_schema_id: str | None = None

    @field_validator("contract_address", "application_schema_id", "review_schema_id")
    @classmethod
    def lowercase_hex(cls, v: str | None) -> str | None:
        return v.lower() if v else v


class Chain(RPGFModel):
    """A chain rounds can be anchored to."""

    chain_id: int = Field(gt=0)
    name: str = ""
    rpc_url: str
    attestation_setup: AttestationSetup | None = None


class Round(RPGFModel, TimestampMixin):
    """A funding round."""

    id: str
    slug: str = Field(min_length=1, max_length=255, pattern=SLUG_PATTERN)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    chain_id: int
    published: bool = False
    schedule: RoundSchedule | None = None
    voting_config: VotingConfig | None = None
    admin_user_ids: list[str] = Field(default_factory=list)
    results_calculated: bool = False
    results_published: bool = False
    created_by_user_id: str

    @model_validator(mode="after")
    def check_published_has_schedule(self) -> "Round":
        if self.published and self.schedule is None:
            raise ValueError("A published round must have a schedule")
        return self

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admin_user_ids

    def is_voter(self, user_id: str) -> bool:
        return self.voting_config is not None and user_id in self.voting_config.allowed_voter_ids


class RoundCreate(RPGFModel):
    """Schema for creating a draft round."""

    slug: str = Field(min_length=1, max_length=255, pattern=SLUG_PATTERN)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=10000)
    chain_id: int = Field(gt=0)


class RoundUpdate(RPGFModel):
    """Schema for editing a draft round; omitted fields stay unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=10000)
    schedule: RoundSchedule | None = None
    voting_config: VotingConfig | None = None
