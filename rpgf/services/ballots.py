"""
Ballot Service

Voter ballots: strict first submission, full-replace edits, spreadsheet
import and admin-side views. Every write re-validates the whole ballot
against the round's budget and its approved applications.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime

import structlog

from rpgf.errors import AuthorizationError, NotFoundError, ValidationError
from rpgf.models.ballot import Ballot, BallotRow, BallotStats, BallotSubmission
from rpgf.models.base import Actor, utcnow
from rpgf.models.events import AuditAction
from rpgf.models.round import Round, RoundPhase
from rpgf.repositories.application_repository import ApplicationRepository
from rpgf.repositories.ballot_repository import BallotRepository
from rpgf.services.audit import AuditService
from rpgf.services.ballot_signature import verify_ballot_signature
from rpgf.services.ballot_validation import (
    check_application_references,
    parse_ballot_rows,
    validate_allocations,
)
from rpgf.services.rounds import RoundService, is_round_voter, require_admin, require_phase

logger = structlog.get_logger(__name__)

VOTING_PHASES = (RoundPhase.VOTING,)


class BallotService:
    def __init__(
        self,
        ballots: BallotRepository,
        applications: ApplicationRepository,
        rounds: RoundService,
        audit: AuditService,
    ):
        self.ballots = ballots
        self.applications = applications
        self.rounds = rounds
        self.audit = audit

    async def _check_ballot(
        self,
        actor: Actor,
        round_: Round,
        submission: BallotSubmission,
        now: datetime,
    ) -> BallotSubmission:
        """Gate and validate a ballot write; returns the submission to persist."""
        if not is_round_voter(round_, actor):
            raise AuthorizationError("You are not a voter in this round", round_id=round_.id)
        require_phase(round_, VOTING_PHASES, now, "vote")
        if round_.voting_config is None:
            raise ValidationError("Round has no voting configuration", round_id=round_.id)

        validate_allocations(submission.allocations, round_.voting_config)
        check_application_references(
            submission.allocations,
            await self.applications.get_approved_ids(round_.id),
        )

        if submission.chain_id is not None and submission.chain_id != round_.chain_id:
            raise ValidationError(
                f"Ballots for this round are signed on chain {round_.chain_id}",
                field="chain_id",
                chain_id=submission.chain_id,
            )
        if submission.signature:
            verify_ballot_signature(
                actor.wallet_address,
                submission.allocations,
                submission.signature,
                round_.chain_id,
            )
            submission = submission.model_copy(update={"chain_id": round_.chain_id})
        return submission

    async def submit(
        self,
        actor: Actor,
        round_id: str,
        submission: BallotSubmission,
        now: datetime | None = None,
    ) -> Ballot:
        """
        Cast the voter's ballot. Each voter submits once; later edits go
        through ``patch``.

        Raises:
            AuthorizationError: If the actor is not a voter of the round
            PhaseError: Outside the voting phase
            BallotAlreadySubmittedError: If the voter already has a ballot
        """
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        submission = await self._check_ballot(actor, round_, submission, now)

        ballot = await self.ballots.create(round_id, actor.user_id, submission)

        logger.info(
            "ballot_submitted",
            round_id=round_id,
            voter_user_id=actor.user_id,
            total_votes=ballot.total_votes,
        )
        await self.audit.record(
            AuditAction.BALLOT_SUBMITTED,
            round_id,
            actor,
            {"ballot_id": ballot.id, "total_votes": ballot.total_votes, "signed": bool(ballot.signature)},
        )
        return ballot

    async def patch(
        self,
        actor: Actor,
        round_id: str,
        submission: BallotSubmission,
        now: datetime | None = None,
    ) -> Ballot:
        """Replace the voter's existing ballot in full."""
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        submission = await self._check_ballot(actor, round_, submission, now)

        ballot = await self.ballots.replace(round_id, actor.user_id, submission)
        if ballot is None:
            raise NotFoundError("No ballot to update for this round", round_id=round_id)

        await self.audit.record(
            AuditAction.BALLOT_UPDATED,
            round_id,
            actor,
            {"ballot_id": ballot.id, "total_votes": ballot.total_votes, "signed": bool(ballot.signature)},
        )
        return ballot

    async def import_rows(
        self,
        actor: Actor,
        round_id: str,
        rows: Iterable[BallotRow | Mapping[str, object]],
        now: datetime | None = None,
    ) -> Ballot:
        """
        Cast or replace the voter's ballot from spreadsheet rows.

        Raises:
            BallotParseError: If a row is malformed, with its 1-based row number
        """
        allocations = parse_ballot_rows(rows)
        if not allocations:
            raise ValidationError("The uploaded sheet allocates no votes")
        submission = BallotSubmission(allocations=allocations)

        if await self.ballots.get(round_id, actor.user_id) is None:
            return await self.submit(actor, round_id, submission, now)
        return await self.patch(actor, round_id, submission, now)

    async def get_ballot(self, actor: Actor, round_id: str) -> Ballot | None:
        """The actor's own ballot, if any."""
        await self.rounds.get_round(round_id)
        return await self.ballots.get(round_id, actor.user_id)

    async def list_ballots(self, actor: Actor, round_id: str) -> list[Ballot]:
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        return await self.ballots.list_by_round(round_id)

    async def get_ballot_stats(self, actor: Actor, round_id: str) -> BallotStats:
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        voters = round_.voting_config.allowed_voter_ids if round_.voting_config else set()
        return BallotStats(
            number_of_voters=len(voters),
            number_of_ballots=await self.ballots.count_by_round(round_id),
        )
