"""
Results Service

Recalculation, publication and read access for round results, plus the
weight export derived from them.
"""

from datetime import datetime

import structlog

from rpgf.config import settings
from rpgf.database.client import Neo4jClient
from rpgf.errors import AuthorizationError, NotFoundError, ValidationError
from rpgf.models.base import Actor, utcnow
from rpgf.models.events import AuditAction
from rpgf.models.result import ApplicationResult, ResultMethod
from rpgf.models.round import Round, RoundPhase
from rpgf.repositories.application_repository import ApplicationRepository
from rpgf.repositories.ballot_repository import BallotRepository
from rpgf.repositories.result_repository import ResultRepository
from rpgf.repositories.round_repository import RoundRepository
from rpgf.services.audit import AuditService
from rpgf.services.caching import CachingService, generate_key, results_pattern
from rpgf.services.rounds import RoundService, is_round_admin, require_admin, require_phase
from rpgf.services.tallying import compute_weights, tally

logger = structlog.get_logger(__name__)

CALCULATION_PHASES = (RoundPhase.PENDING_RESULTS, RoundPhase.RESULTS)


class ResultsService:
    def __init__(
        self,
        client: Neo4jClient,
        results: ResultRepository,
        ballots: BallotRepository,
        applications: ApplicationRepository,
        round_repository: RoundRepository,
        rounds: RoundService,
        audit: AuditService,
        cache: CachingService,
    ):
        self.client = client
        self.results = results
        self.ballots = ballots
        self.applications = applications
        self.round_repository = round_repository
        self.rounds = rounds
        self.audit = audit
        self.cache = cache

    def _require_visible(self, round_: Round, actor: Actor) -> None:
        if not round_.results_published and not is_round_admin(round_, actor):
            raise AuthorizationError("Results for this round are not published yet", round_id=round_.id)

    async def recalculate(
        self,
        actor: Actor,
        round_id: str,
        method: ResultMethod = ResultMethod.SUM,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """
        Tally the round's ballots and replace its stored results.

        The delete, the insert and the ``results_calculated`` flag commit
        together.

        Returns:
            application id -> allocation
        """
        now = now or utcnow()
        method = ResultMethod(method)
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        require_phase(round_, CALCULATION_PHASES, now, "calculate results")

        async with self.client.transaction() as tx:
            application_ids = await self.applications.get_approved_ids(round_id, tx)
            ballots = await self.ballots.list_by_round(round_id, tx)
            allocations = tally(application_ids, (b.allocations for b in ballots), method)
            await self.results.replace_all(round_id, allocations, method, tx)
            await self.round_repository.set_results_calculated(round_id, tx)

        logger.info(
            "results_calculated",
            round_id=round_id,
            method=method.value,
            applications=len(allocations),
            ballots=len(ballots),
        )
        await self.cache.invalidate(results_pattern(round_id))
        await self.audit.record(
            AuditAction.RESULTS_CALCULATED,
            round_id,
            actor,
            {"method": method.value, "ballot_count": len(ballots)},
        )
        return allocations

    async def publish(self, actor: Actor, round_id: str) -> Round:
        """Make calculated results visible to everyone; recomputes nothing."""
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        if not round_.results_calculated:
            raise ValidationError("Results have not been calculated yet", round_id=round_id)

        published = await self.round_repository.mark_results_published(round_id)
        if published is None:
            raise NotFoundError(f"Round {round_id} not found", round_id=round_id)

        await self.cache.invalidate(results_pattern(round_id))
        await self.audit.record(AuditAction.RESULTS_PUBLISHED, round_id, actor)
        return published

    async def get_results(self, actor: Actor, round_id: str) -> list[ApplicationResult]:
        """
        Results joined with their applications, highest allocation first.

        Raises:
            AuthorizationError: If a non-admin asks before publication
        """
        round_ = await self.rounds.get_round(round_id)
        self._require_visible(round_, actor)

        cache_key = generate_key("results", round_id, "list")
        cached = await self.cache.get(cache_key)
        if cached is not None:
            return [ApplicationResult.model_validate(item) for item in cached]

        applications = {app.id: app for app in await self.applications.list_by_round(round_id)}
        rows = []
        for result in await self.results.list_by_round(round_id):
            application = applications.get(result.application_id)
            version = application.current_version if application else None
            rows.append(
                ApplicationResult(
                    application_id=result.application_id,
                    project_name=version.project_name if version else None,
                    account_id=version.account_id if version else None,
                    allocation=result.allocation,
                )
            )

        await self.cache.set(cache_key, [row.model_dump(mode="json") for row in rows])
        return rows

    async def export_weights(self, actor: Actor, round_id: str) -> dict[str, int]:
        """
        Proportional weights per receiving account, summing exactly to the
        configured export total.
        """
        round_ = await self.rounds.get_round(round_id)
        self._require_visible(round_, actor)
        if not round_.results_calculated:
            raise ValidationError("Results have not been calculated yet", round_id=round_id)

        results = {r.application_id: r.allocation for r in await self.results.list_by_round(round_id)}
        grouping = await self.applications.get_account_grouping(round_id)
        weights = compute_weights(results, grouping, settings.weight_export_total)
        logger.info("weights_exported", round_id=round_id, groups=len(weights))
        return weights
