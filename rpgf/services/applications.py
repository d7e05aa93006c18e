"""
Application Service

Submission, editing and review of applications.

Every write follows the same order: gate on role and phase, validate the
answers against the category form, verify the attestation proof, then
persist inside a single transaction. Verification completes before the
transaction opens, so a rejected proof never leaves a partial version.
"""

from datetime import datetime

import structlog

from rpgf.chains.base import BaseContentClient
from rpgf.chains.registry import ChainProviderRegistry
from rpgf.database.client import Neo4jClient
from rpgf.errors import (
    ApplicationAlreadySubmittedError,
    AttestationRequiredError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from rpgf.models.application import (
    Application,
    ApplicationReviewDecision,
    ApplicationState,
    ApplicationSubmission,
    ApplicationVersion,
)
from rpgf.models.base import Actor, utcnow
from rpgf.models.events import AuditAction
from rpgf.models.form import ApplicationForm
from rpgf.models.round import Chain, Round, RoundPhase
from rpgf.repositories.application_repository import ApplicationRepository
from rpgf.repositories.form_repository import FormRepository
from rpgf.services.answers import validate_answers
from rpgf.services.attestation import AttestationVerifier
from rpgf.services.audit import AuditService
from rpgf.services.caching import (
    CachingService,
    application_pattern,
    applications_pattern,
    generate_key,
)
from rpgf.services.rounds import RoundService, is_round_admin, require_admin, require_phase

logger = structlog.get_logger(__name__)

SUBMIT_PHASES = (RoundPhase.INTAKE,)
ADMIN_EDIT_PHASES = (
    RoundPhase.PENDING_INTAKE,
    RoundPhase.INTAKE,
    RoundPhase.PENDING_VOTING,
    RoundPhase.VOTING,
)
REVIEW_PHASES = (RoundPhase.INTAKE, RoundPhase.PENDING_VOTING)


class ApplicationService:
    def __init__(
        self,
        client: Neo4jClient,
        applications: ApplicationRepository,
        forms: FormRepository,
        rounds: RoundService,
        registry: ChainProviderRegistry,
        content: BaseContentClient,
        audit: AuditService,
        cache: CachingService,
    ):
        self.client = client
        self.applications = applications
        self.forms = forms
        self.rounds = rounds
        self.registry = registry
        self.content = content
        self.audit = audit
        self.cache = cache

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_application(self, application_id: str) -> Application:
        application = await self.applications.get_by_id(application_id)
        if application is None:
            raise NotFoundError(f"Application {application_id} not found", application_id=application_id)
        return application

    async def _get_form(
        self,
        round_id: str,
        category_id: str,
        allow_deleted: bool = False,
    ) -> ApplicationForm:
        """The category's form; stored versions may still point at a deleted category."""
        category = await self.forms.get_category(category_id)
        if (
            category is None
            or category.round_id != round_id
            or (category.deleted_at is not None and not allow_deleted)
        ):
            raise ValidationError(
                f"Category {category_id} does not belong to this round",
                field="category_id",
            )
        form = await self.forms.get_form(category.form_id)
        if form is None:
            raise NotFoundError(f"Form {category.form_id} not found", form_id=category.form_id)
        return form

    async def _verifier(self, chain: Chain) -> AttestationVerifier:
        ledger = await self.registry.get_client(chain)
        return AttestationVerifier(ledger, self.content, chain.attestation_setup)

    async def _verify_proof(
        self,
        round_: Round,
        submission: ApplicationSubmission,
        submitter_wallet: str,
        form: ApplicationForm,
    ) -> tuple[ApplicationSubmission, str | None]:
        """
        Verify the submission's proof against the round's chain.

        Returns:
            The submission to persist and the verified attestation id. On
            chains without an attestation setup, proof fields are dropped.
        """
        chain = await self.rounds.get_chain(round_.chain_id)
        if chain.attestation_setup is None:
            if submission.attestation_id or submission.deferred_tx_hash:
                logger.info("attestation_ignored", round_id=round_.id, chain_id=chain.chain_id)
            return submission.model_copy(update={"attestation_id": None, "deferred_tx_hash": None}), None

        if not submission.attestation_id and not submission.deferred_tx_hash:
            raise AttestationRequiredError("This round requires an attestation for applications")

        verifier = await self._verifier(chain)
        if submission.attestation_id:
            attestation_id = await verifier.verify_immediate(
                submission.attestation_id,
                submission,
                submitter_wallet,
                form,
                round_.slug,
            )
        else:
            attestation_id = await verifier.verify_deferred(
                submission.deferred_tx_hash,
                submission,
                submitter_wallet,
                form,
            )
        return submission, attestation_id

    async def _redact(self, application: Application, include_private: bool) -> Application:
        forms: dict[str, ApplicationForm] = {}
        versions: list[ApplicationVersion] = []
        for version in application.versions:
            if version.category_id not in forms:
                forms[version.category_id] = await self._get_form(
                    application.round_id, version.category_id, allow_deleted=True
                )
            form = forms[version.category_id]
            versions.append(
                version.model_copy(
                    update={"answers": form.visible_answers(version.answers, include_private)}
                )
            )
        return application.model_copy(update={"versions": versions})

    # =========================================================================
    # Writes
    # =========================================================================

    async def submit(
        self,
        actor: Actor,
        round_id: str,
        submission: ApplicationSubmission,
        now: datetime | None = None,
    ) -> Application:
        """
        Submit a new application to a round in intake.

        Raises:
            PhaseError: Outside the intake phase
            ApplicationAlreadySubmittedError: The actor already applied
            ValidationError: Invalid answers or category
            AttestationError: The proof was rejected
            TransientExternalError: The ledger or content store is unavailable
        """
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        require_phase(round_, SUBMIT_PHASES, now, "submit applications")

        if await self.applications.get_by_submitter(round_id, actor.user_id) is not None:
            raise ApplicationAlreadySubmittedError(
                "You already submitted an application to this round",
                round_id=round_id,
            )

        form = await self._get_form(round_id, submission.category_id)
        validate_answers(submission.answers, form)
        submission, attestation_id = await self._verify_proof(
            round_, submission, actor.wallet_address, form
        )

        async with self.client.transaction() as tx:
            application = await self.applications.create(
                round_id=round_id,
                submitter_user_id=actor.user_id,
                submitter_wallet_address=actor.wallet_address,
                submission=submission,
                attestation_id=attestation_id,
                tx=tx,
            )

        logger.info("application_submitted", round_id=round_id, application_id=application.id)
        await self.cache.invalidate(applications_pattern(round_id))
        await self.audit.record(
            AuditAction.APPLICATION_SUBMITTED,
            round_id,
            actor,
            {"application_id": application.id, "project_name": submission.project_name},
        )
        return application

    async def update(
        self,
        actor: Actor,
        application_id: str,
        submission: ApplicationSubmission,
        now: datetime | None = None,
    ) -> Application:
        """
        Append a new version to an application and return it to review.

        Submitters may edit during intake; round admins until voting ends.
        """
        now = now or utcnow()
        application = await self._get_application(application_id)
        round_ = await self.rounds.get_round(application.round_id)

        if is_round_admin(round_, actor):
            require_phase(round_, ADMIN_EDIT_PHASES, now, "edit applications")
        elif actor.user_id == application.submitter_user_id:
            require_phase(round_, SUBMIT_PHASES, now, "edit applications")
        else:
            raise AuthorizationError("Only the submitter or a round admin may edit this application")

        form = await self._get_form(round_.id, submission.category_id)
        validate_answers(submission.answers, form)
        submission, attestation_id = await self._verify_proof(
            round_, submission, application.submitter_wallet_address, form
        )

        async with self.client.transaction() as tx:
            updated = await self.applications.add_version(
                application_id, submission, attestation_id, tx
            )
        if updated is None:
            raise NotFoundError(f"Application {application_id} not found", application_id=application_id)

        await self.cache.invalidate(applications_pattern(round_.id), application_pattern(application_id))
        await self.audit.record(
            AuditAction.APPLICATION_UPDATED,
            round_.id,
            actor,
            {"application_id": application_id, "version_count": len(updated.versions)},
        )
        return updated

    async def review(
        self,
        actor: Actor,
        round_id: str,
        decisions: list[ApplicationReviewDecision],
        now: datetime | None = None,
    ) -> int:
        """
        Approve or reject pending applications, all or nothing.

        Returns:
            Number of applications reviewed
        """
        now = now or utcnow()
        round_ = await self.rounds.get_round(round_id)
        require_admin(round_, actor)
        require_phase(round_, REVIEW_PHASES, now, "review applications")

        if not decisions:
            raise ValidationError("No review decisions given")
        by_id = {d.application_id: ApplicationState(d.decision) for d in decisions}
        if len(by_id) != len(decisions):
            raise ValidationError("An application may only be reviewed once per request")

        async with self.client.transaction() as tx:
            updated = await self.applications.set_states(round_id, by_id, tx)
            if updated != len(by_id):
                raise ValidationError(
                    "Some applications were not in pending state",
                    expected=len(by_id),
                    updated=updated,
                )

        await self.cache.invalidate(
            applications_pattern(round_id),
            *(application_pattern(app_id) for app_id in by_id),
        )
        await self.audit.record(
            AuditAction.APPLICATION_REVIEWED,
            round_id,
            actor,
            {"decisions": {app_id: state.value for app_id, state in by_id.items()}},
        )
        return updated

    async def resolve_deferred_attestation(self, application_id: str) -> bool:
        """
        Turn the current version's pending transaction hash into an
        attestation id.

        Returns:
            True if the version was promoted, False if nothing was pending
        """
        application = await self._get_application(application_id)
        version = application.current_version
        if version is None or not version.attestation_pending:
            return False

        round_ = await self.rounds.get_round(application.round_id)
        chain = await self.rounds.get_chain(round_.chain_id)
        if chain.attestation_setup is None:
            logger.info("deferred_attestation_skipped", application_id=application_id, reason="no_attestation_setup")
            return False

        form = await self._get_form(round_.id, version.category_id, allow_deleted=True)
        submission = ApplicationSubmission(
            project_name=version.project_name,
            account_id=version.account_id,
            category_id=version.category_id,
            answers=version.answers,
            deferred_tx_hash=version.deferred_tx_hash,
        )
        verifier = await self._verifier(chain)
        attestation_id = await verifier.verify_deferred(
            version.deferred_tx_hash,
            submission,
            application.submitter_wallet_address,
            form,
        )

        promoted = await self.applications.resolve_attestation(version.id, attestation_id)
        if promoted:
            await self.cache.invalidate(application_pattern(application_id))
            await self.audit.record(
                AuditAction.APPLICATION_ATTESTATION_RESOLVED,
                round_.id,
                None,
                {"application_id": application_id, "attestation_id": attestation_id},
            )
        return promoted

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_application(self, actor: Actor, application_id: str) -> Application:
        """An application; private answers only for its submitter and round admins."""
        application = await self._get_application(application_id)
        round_ = await self.rounds.get_round(application.round_id)
        include_private = (
            is_round_admin(round_, actor) or actor.user_id == application.submitter_user_id
        )
        return await self._redact(application, include_private)

    async def list_applications(
        self,
        actor: Actor,
        round_id: str,
        state: ApplicationState | None = None,
    ) -> list[Application]:
        round_ = await self.rounds.get_round(round_id)
        include_private = is_round_admin(round_, actor)
        cache_key = generate_key(
            "applications",
            round_id,
            ApplicationState(state).value if state else "all",
            "private" if include_private else "public",
        )

        cached = await self.cache.get(cache_key)
        if cached is not None:
            return [Application.model_validate(item) for item in cached]

        applications = [
            await self._redact(app, include_private)
            for app in await self.applications.list_by_round(round_id, state)
        ]
        await self.cache.set(cache_key, [app.model_dump(mode="json") for app in applications])
        return applications
