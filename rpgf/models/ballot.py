"""
Ballot Models
"""

from pydantic import Field

from rpgf.models.base import RPGFModel, TimestampMixin


class Ballot(RPGFModel, TimestampMixin):
    """A voter's allocation of votes across a round's approved applications."""

    id: str
    round_id: str
    voter_user_id: str
    allocations: dict[str, int]
    signature: str | None = None
    chain_id: int | None = None

    @property
    def total_votes(self) -> int:
        return sum(self.allocations.values())


class BallotSubmission(RPGFModel):
    allocations: dict[str, int] = Field(min_length=1)
    signature: str | None = Field(default=None, pattern=r"^0x[0-9a-fA-F]+$")
    chain_id: int | None = Field(default=None, gt=0)


class BallotRow(RPGFModel):
    """One parsed spreadsheet row; values arrive as the raw cell text."""

    id: str | None = Field(default=None, alias="ID")
    allocation: str | int | float | None = Field(default=None, alias="Allocation")


class BallotStats(RPGFModel):
    number_of_voters: int
    number_of_ballots: int
