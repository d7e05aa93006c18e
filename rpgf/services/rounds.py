"""
Round Service

Draft creation, schedule and voting configuration, publication, voter
management, and the guards the other orchestrators use to gate their
operations on role and phase.
"""

from collections.abc import Collection
from datetime import datetime

import structlog

from rpgf.config import settings
from rpgf.errors import AuthorizationError, NotFoundError, PhaseError, ValidationError
from rpgf.models.base import Actor, utcnow
from rpgf.models.events import AuditAction
from rpgf.models.round import (
    Chain,
    Round,
    RoundCreate,
    RoundPhase,
    RoundSchedule,
    RoundUpdate,
    VotingConfig,
)
from rpgf.repositories.round_repository import RoundRepository
from rpgf.services.audit import AuditService
from rpgf.services.caching import CachingService, round_pattern
from rpgf.services.phase import round_phase, schedule_forcing_phase, validate_schedule_for_publication

logger = structlog.get_logger(__name__)

VOTER_EDIT_PHASES = (RoundPhase.PENDING_INTAKE, RoundPhase.INTAKE, RoundPhase.PENDING_VOTING)


# ═══════════════════════════════════════════════════════════════
# GUARDS
# ═══════════════════════════════════════════════════════════════


def is_round_admin(round_: Round, actor: Actor) -> bool:
    return actor.is_admin or round_.is_admin(actor.user_id)


def is_round_voter(round_: Round, actor: Actor) -> bool:
    return actor.is_voter or round_.is_voter(actor.user_id)


def require_admin(round_: Round, actor: Actor) -> None:
    if not is_round_admin(round_, actor):
        raise AuthorizationError("Only round admins may perform this action", round_id=round_.id)


def require_phase(
    round_: Round,
    allowed: Collection[RoundPhase],
    now: datetime,
    operation: str,
) -> RoundPhase:
    """
    Resolve the round's phase and require it to be one of ``allowed``.

    Raises:
        PhaseError: If the round is unpublished or in another phase
    """
    phase = round_phase(round_, now)
    if phase is None or phase not in allowed:
        raise PhaseError(
            f"Cannot {operation} while the round is {phase.value if phase else 'unpublished'}",
            phase=phase.value if phase else None,
            allowed=[RoundPhase(p).value for p in allowed],
        )
    return phase


class RoundService:
    def __init__(
        self,
        rounds: RoundRepository,
        audit: AuditService,
        cache: CachingService,
    ):
        self.rounds = rounds
        self.audit = audit
        self.cache = cache

    async def get_round(self, round_id: str) -> Round:
        round_ = await self.rounds.get_by_id(round_id)
        if round_ is None:
            raise NotFoundError(f"Round {round_id} not found", round_id=round_id)
        return round_

    async def get_chain(self, chain_id: int) -> Chain:
        chain = await self.rounds.get_chain(chain_id)
        if chain is None:
            raise NotFoundError(f"Chain {chain_id} is not supported", chain_id=chain_id)
        return chain

    def get_phase(self, round_: Round, now: datetime | None = None) -> RoundPhase | None:
        return round_phase(round_, now or utcnow())

    async def create_draft(self, actor: Actor, data: RoundCreate) -> Round:
        await self.get_chain(data.chain_id)
        if await self.rounds.get_by_slug(data.slug) is not None:
            raise ValidationError(f"Round slug {data.slug} is taken", field="slug")

        round_ = await self.rounds.create(data, created_by_user_id=actor.user_id)
        await self.audit.record(
            AuditAction.ROUND_CREATED,
            round_.id,
            actor,
            {"slug": round_.slug, "name": round_.name, "chain_id": round_.chain_id},
        )
        return round_

    async def update_draft(self, actor: Actor, round_id: str, data: RoundUpdate) -> Round:
        """Edit a draft; published rounds are immutable here."""
        round_ = await self.get_round(round_id)
        require_admin(round_, actor)
        if round_.published:
            raise ValidationError("Published rounds cannot be edited", round_id=round_id)

        updated = await self.rounds.update(round_id, data)
        if updated is None:
            raise ValidationError("Published rounds cannot be edited", round_id=round_id)

        await self.audit.record(
            AuditAction.ROUND_SETTINGS_CHANGED,
            round_id,
            actor,
            data.model_dump(mode="json", exclude_unset=True),
        )
        return updated

    async def update_schedule(self, actor: Actor, round_id: str, schedule: RoundSchedule) -> Round:
        return await self.update_draft(actor, round_id, RoundUpdate(schedule=schedule))

    async def publish(self, actor: Actor, round_id: str, now: datetime | None = None) -> Round:
        """
        Publish a draft round. Publication is irreversible.

        Raises:
            ValidationError: If the round is already published or incomplete
        """
        now = now or utcnow()
        round_ = await self.get_round(round_id)
        require_admin(round_, actor)

        if round_.published:
            raise ValidationError("Round is already published", round_id=round_id)
        if round_.schedule is None:
            raise ValidationError("Round has no schedule", field="schedule")
        if round_.voting_config is None:
            raise ValidationError("Round has no voting configuration", field="voting_config")
        if not round_.voting_config.allowed_voter_ids:
            raise ValidationError("Round has no voters", field="allowed_voter_ids")
        if not round_.admin_user_ids:
            raise ValidationError("Round has no admins", field="admin_user_ids")
        validate_schedule_for_publication(round_.schedule, now)

        published = await self.rounds.mark_published(round_id)
        if published is None:
            raise ValidationError("Round is already published", round_id=round_id)

        logger.info("round_published", round_id=round_id)
        await self.cache.invalidate(round_pattern(round_id))
        await self.audit.record(AuditAction.ROUND_PUBLISHED, round_id, actor)
        return published

    async def set_voters(
        self,
        actor: Actor,
        round_id: str,
        voter_user_ids: list[str],
        now: datetime | None = None,
    ) -> Round:
        """Replace the round's eligible voters; closed once voting starts."""
        now = now or utcnow()
        round_ = await self.get_round(round_id)
        require_admin(round_, actor)

        if round_.voting_config is None:
            raise ValidationError("Round has no voting configuration", field="voting_config")
        if round_.published:
            require_phase(round_, VOTER_EDIT_PHASES, now, "change voters")

        if len(set(voter_user_ids)) != len(voter_user_ids):
            raise ValidationError("Voter list contains duplicates", field="voter_user_ids")

        config = VotingConfig(
            max_votes_per_voter=round_.voting_config.max_votes_per_voter,
            max_votes_per_project_per_voter=round_.voting_config.max_votes_per_project_per_voter,
            allowed_voter_ids=set(voter_user_ids),
        )
        updated = await self.rounds.set_voting_config(round_id, config)
        if updated is None:
            raise NotFoundError(f"Round {round_id} not found", round_id=round_id)

        await self.cache.invalidate(round_pattern(round_id))
        await self.audit.record(
            AuditAction.ROUND_VOTERS_CHANGED,
            round_id,
            actor,
            {"voter_count": len(voter_user_ids)},
        )
        return updated

    async def force_phase(
        self,
        actor: Actor,
        round_id: str,
        phase: RoundPhase,
        now: datetime | None = None,
    ) -> Round:
        """Rewrite a published round's schedule so it is in ``phase`` now. Test environments only."""
        if not settings.phase_override_allowed:
            raise AuthorizationError("Forcing a round phase is disabled in this environment")

        now = now or utcnow()
        round_ = await self.get_round(round_id)
        require_admin(round_, actor)
        if not round_.published:
            raise ValidationError("Only published rounds have a phase", round_id=round_id)

        updated = await self.rounds.set_schedule(round_id, schedule_forcing_phase(phase, now))
        if updated is None:
            raise NotFoundError(f"Round {round_id} not found", round_id=round_id)

        logger.warning("round_phase_forced", round_id=round_id, phase=RoundPhase(phase).value)
        await self.cache.invalidate(round_pattern(round_id))
        await self.audit.record(
            AuditAction.ROUND_PHASE_FORCED,
            round_id,
            actor,
            {"phase": RoundPhase(phase).value},
        )
        return updated
