"""
Ballot Validation

Budget and reference checks for a voter's allocations, and conversion of
spreadsheet rows into an allocation map.
"""

import re
from collections.abc import Iterable, Mapping

from rpgf.errors import (
    BallotParseError,
    BudgetExceededError,
    InvalidApplicationReferenceError,
    PerProjectLimitExceededError,
    ValidationError,
)
from rpgf.models.ballot import BallotRow
from rpgf.models.round import VotingConfig

# header occupies the first row of an uploaded sheet
FIRST_DATA_ROW = 2

_INTEGER = re.compile(r"^[+-]?\d+$")
_DECIMAL = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)$")


def validate_allocations(allocations: Mapping[str, int], voting_config: VotingConfig) -> None:
    """
    Check a ballot against the round's budget.

    Raises:
        ValidationError: On an empty ballot or a non-positive allocation
        BudgetExceededError: If the ballot total exceeds the voter budget
        PerProjectLimitExceededError: If one allocation exceeds the per-project cap
    """
    if not allocations:
        raise ValidationError("Ballot must allocate votes to at least one application")

    for app_id, votes in allocations.items():
        if isinstance(votes, bool) or not isinstance(votes, int) or votes <= 0:
            raise ValidationError(
                "Allocations must be positive integers",
                application_id=app_id,
                value=votes,
            )

    total = sum(allocations.values())
    if total > voting_config.max_votes_per_voter:
        raise BudgetExceededError(
            f"Ballot allocates {total} votes, the maximum is {voting_config.max_votes_per_voter}",
            total=total,
            maximum=voting_config.max_votes_per_voter,
        )

    over_cap = sorted(
        app_id
        for app_id, votes in allocations.items()
        if votes > voting_config.max_votes_per_project_per_voter
    )
    if over_cap:
        raise PerProjectLimitExceededError(
            f"At most {voting_config.max_votes_per_project_per_voter} votes per application",
            application_ids=over_cap,
            maximum=voting_config.max_votes_per_project_per_voter,
        )


def check_application_references(
    allocations: Mapping[str, int],
    approved_application_ids: Iterable[str],
) -> None:
    """Every allocated id must be an approved application of the round."""
    approved = set(approved_application_ids)
    invalid = sorted(app_id for app_id in allocations if app_id not in approved)
    if invalid:
        raise InvalidApplicationReferenceError(
            f"Invalid application IDs in ballot: {', '.join(invalid)}",
            application_ids=invalid,
        )


def _parse_allocation(raw: str | int | float, row: int) -> int:
    if isinstance(raw, bool):
        raise BallotParseError(f"Row {row}: allocation is not a number", row=row)
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, float):
        if not raw.is_integer():
            raise BallotParseError(f"Row {row}: allocation must be a whole number", row=row)
        value = int(raw)
    else:
        text = raw.strip()
        if _INTEGER.match(text):
            value = int(text)
        elif _DECIMAL.match(text):
            number = float(text)
            if not number.is_integer():
                raise BallotParseError(f"Row {row}: allocation must be a whole number", row=row)
            value = int(number)
        else:
            raise BallotParseError(f"Row {row}: allocation is not a number", row=row)

    if value < 0:
        raise BallotParseError(f"Row {row}: allocation cannot be negative", row=row)
    return value


def parse_ballot_rows(rows: Iterable[BallotRow | Mapping[str, object]]) -> dict[str, int]:
    """
    Convert parsed spreadsheet rows into an allocation map.

    Rows with an empty allocation are skipped, zero allocations are dropped,
    and the same application may appear only once.
    """
    allocations: dict[str, int] = {}
    seen_at: dict[str, int] = {}

    for index, raw_row in enumerate(rows):
        row_number = index + FIRST_DATA_ROW
        row = raw_row if isinstance(raw_row, BallotRow) else BallotRow.model_validate(raw_row)

        raw_allocation = row.allocation
        if raw_allocation is None or (isinstance(raw_allocation, str) and not raw_allocation.strip()):
            continue

        app_id = (row.id or "").strip()
        if not app_id:
            raise BallotParseError(f"Row {row_number}: missing application ID", row=row_number)

        if app_id in seen_at:
            raise BallotParseError(
                f"Row {row_number}: application {app_id} already listed in row {seen_at[app_id]}",
                row=row_number,
            )
        seen_at[app_id] = row_number

        votes = _parse_allocation(raw_allocation, row_number)
        if votes > 0:
            allocations[app_id] = votes

    return allocations
