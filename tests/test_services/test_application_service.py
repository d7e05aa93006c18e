"""
Application Service Tests

Tests for submitting, editing, reviewing and reading applications.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from rpgf.errors import (
    ApplicationAlreadySubmittedError,
    AttestationRequiredError,
    AuthorizationError,
    FieldMismatchError,
    InvalidAnswersError,
    NotFoundError,
    PhaseError,
    ValidationError,
)
from rpgf.models.application import (
    Application,
    ApplicationReviewDecision,
    ApplicationState,
    ApplicationSubmission,
    ApplicationVersion,
)
from rpgf.models.events import AuditAction
from rpgf.models.form import ApplicationAnswer
from rpgf.services.applications import ApplicationService
from rpgf.services.caching import generate_key

ATTESTATION_ID = "0x" + "11" * 32
TX_HASH = "0x" + "22" * 32


# =============================================================================
# Fixtures
# =============================================================================


def make_submission(**overrides) -> ApplicationSubmission:
    data = {
        "project_name": "Drips",
        "account_id": "acc-1",
        "category_id": "cat-1",
        "answers": [
            ApplicationAnswer(field_id="summary", value="Streams funds"),
            ApplicationAnswer(field_id="contact", value="team@example.org"),
        ],
    }
    data.update(overrides)
    return ApplicationSubmission(**data)


def make_application(submitter, **version_overrides) -> Application:
    version = {
        "id": "ver-1",
        "application_id": "app-1",
        "project_name": "Drips",
        "account_id": "acc-1",
        "category_id": "cat-1",
        "answers": [
            ApplicationAnswer(field_id="summary", value="Streams funds"),
            ApplicationAnswer(field_id="contact", value="team@example.org"),
        ],
    }
    version.update(version_overrides)
    return Application(
        id="app-1",
        round_id="round-1",
        submitter_user_id=submitter.user_id,
        submitter_wallet_address=submitter.wallet_address,
        versions=[ApplicationVersion(**version)],
    )


@pytest.fixture
def application(submitter):
    return make_application(submitter)


@pytest.fixture
def mock_app_repo(application, category, application_form):
    repo = AsyncMock()
    repo.get_by_id = AsyncMock(return_value=application)
    repo.get_by_submitter = AsyncMock(return_value=None)
    repo.create = AsyncMock(return_value=application)
    repo.add_version = AsyncMock(return_value=application)
    repo.set_states = AsyncMock(return_value=2)
    repo.list_by_round = AsyncMock(return_value=[application])
    repo.resolve_attestation = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def mock_form_repo(category, application_form):
    repo = AsyncMock()
    repo.get_category = AsyncMock(return_value=category)
    repo.get_form = AsyncMock(return_value=application_form)
    return repo


@pytest.fixture
def mock_rounds(sample_round, chain):
    rounds = AsyncMock()
    rounds.get_round = AsyncMock(return_value=sample_round)
    rounds.get_chain = AsyncMock(return_value=chain)
    return rounds


@pytest.fixture
def mock_verifier(monkeypatch):
    """Replace attestation verification with a stub that accepts every proof."""
    verifier = MagicMock()
    verifier.verify_immediate = AsyncMock(return_value=ATTESTATION_ID)
    verifier.verify_deferred = AsyncMock(return_value=ATTESTATION_ID)
    monkeypatch.setattr(
        "rpgf.services.applications.AttestationVerifier",
        MagicMock(return_value=verifier),
    )
    return verifier


@pytest.fixture
def application_service(mock_db_client, mock_app_repo, mock_form_repo, mock_rounds, mock_audit, mock_cache):
    registry = AsyncMock()
    registry.get_client = AsyncMock(return_value=MagicMock())
    return ApplicationService(
        mock_db_client,
        mock_app_repo,
        mock_form_repo,
        mock_rounds,
        registry,
        AsyncMock(),
        mock_audit,
        mock_cache,
    )


@pytest.fixture
def attested_round(mock_rounds, attested_chain):
    mock_rounds.get_chain.return_value = attested_chain
    return attested_chain


# =============================================================================
# Submission
# =============================================================================


class TestSubmit:
    """Tests for ApplicationService.submit."""

    @pytest.mark.asyncio
    async def test_submit_during_intake(
        self, application_service, mock_app_repo, mock_audit, mock_cache, mock_transaction, submitter, now
    ):
        result = await application_service.submit(submitter, "round-1", make_submission(), now)

        assert result.id == "app-1"
        kwargs = mock_app_repo.create.await_args.kwargs
        assert kwargs["submitter_wallet_address"] == submitter.wallet_address
        assert kwargs["attestation_id"] is None
        assert kwargs["tx"] is mock_transaction
        mock_cache.invalidate.assert_awaited()
        assert mock_audit.record.await_args.args[0] == AuditAction.APPLICATION_SUBMITTED

    @pytest.mark.asyncio
    async def test_submit_after_intake_closes(
        self, application_service, mock_app_repo, sample_round, submitter
    ):
        """Applying once intake has ended fails with the round's phase attached."""
        later = sample_round.schedule.application_end + timedelta(hours=1)

        with pytest.raises(PhaseError) as exc_info:
            await application_service.submit(submitter, "round-1", make_submission(), later)

        assert exc_info.value.phase == "pending-voting"
        mock_app_repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_application_per_submitter(
        self, application_service, mock_app_repo, application, submitter, now
    ):
        mock_app_repo.get_by_submitter.return_value = application

        with pytest.raises(ApplicationAlreadySubmittedError):
            await application_service.submit(submitter, "round-1", make_submission(), now)
        mock_app_repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_category_from_other_round(
        self, application_service, mock_form_repo, category, submitter, now
    ):
        mock_form_repo.get_category.return_value = category.model_copy(update={"round_id": "round-2"})

        with pytest.raises(ValidationError) as exc_info:
            await application_service.submit(submitter, "round-1", make_submission(), now)
        assert exc_info.value.details["field"] == "category_id"

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_rejected_by_store(
        self, application_service, mock_app_repo, mock_audit, mock_cache, submitter, now
    ):
        """A submission that passes the read check but loses the insert race."""
        mock_app_repo.create.side_effect = ApplicationAlreadySubmittedError(
            "You already submitted an application to this round", round_id="round-1"
        )

        with pytest.raises(ApplicationAlreadySubmittedError) as exc_info:
            await application_service.submit(submitter, "round-1", make_submission(), now)

        assert isinstance(exc_info.value, ValidationError)
        mock_audit.record.assert_not_awaited()
        mock_cache.invalidate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deleted_category_rejected(
        self, application_service, mock_form_repo, mock_app_repo, category, submitter, now
    ):
        mock_form_repo.get_category.return_value = category.model_copy(update={"deleted_at": now})

        with pytest.raises(ValidationError) as exc_info:
            await application_service.submit(submitter, "round-1", make_submission(), now)

        assert exc_info.value.details["field"] == "category_id"
        mock_app_repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_answers_rejected(self, application_service, mock_app_repo, submitter, now):
        submission = make_submission(answers=[ApplicationAnswer(field_id="website", value="nope")])

        with pytest.raises(InvalidAnswersError):
            await application_service.submit(submitter, "round-1", submission, now)
        mock_app_repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_proof_dropped_without_attestation_setup(
        self, application_service, mock_app_repo, submitter, now
    ):
        await application_service.submit(
            submitter, "round-1", make_submission(attestation_id=ATTESTATION_ID), now
        )

        stored = mock_app_repo.create.await_args.kwargs["submission"]
        assert stored.attestation_id is None
        assert stored.deferred_tx_hash is None

    @pytest.mark.asyncio
    async def test_attestation_required(self, application_service, mock_app_repo, attested_round, submitter, now):
        with pytest.raises(AttestationRequiredError):
            await application_service.submit(submitter, "round-1", make_submission(), now)
        mock_app_repo.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_immediate_attestation(
        self, application_service, mock_app_repo, mock_verifier, attested_round, submitter, now
    ):
        await application_service.submit(
            submitter, "round-1", make_submission(attestation_id=ATTESTATION_ID), now
        )

        args = mock_verifier.verify_immediate.await_args.args
        assert args[0] == ATTESTATION_ID
        assert args[2] == submitter.wallet_address
        assert args[4] == "rpgf-1"
        assert mock_app_repo.create.await_args.kwargs["attestation_id"] == ATTESTATION_ID

    @pytest.mark.asyncio
    async def test_deferred_attestation(
        self, application_service, mock_app_repo, mock_verifier, attested_round, submitter, now
    ):
        await application_service.submit(
            submitter, "round-1", make_submission(deferred_tx_hash=TX_HASH), now
        )

        assert mock_verifier.verify_deferred.await_args.args[0] == TX_HASH
        kwargs = mock_app_repo.create.await_args.kwargs
        assert kwargs["attestation_id"] == ATTESTATION_ID
        assert kwargs["submission"].deferred_tx_hash == TX_HASH

    @pytest.mark.asyncio
    async def test_rejected_proof_persists_nothing(
        self, application_service, mock_app_repo, mock_verifier, attested_round, submitter, now
    ):
        mock_verifier.verify_immediate.side_effect = FieldMismatchError("projectName differs")

        with pytest.raises(FieldMismatchError):
            await application_service.submit(
                submitter, "round-1", make_submission(attestation_id=ATTESTATION_ID), now
            )
        mock_app_repo.create.assert_not_awaited()


# =============================================================================
# Editing
# =============================================================================


class TestUpdate:
    """Tests for ApplicationService.update."""

    @pytest.mark.asyncio
    async def test_submitter_edits_during_intake(
        self, application_service, mock_app_repo, mock_audit, submitter, now
    ):
        await application_service.update(submitter, "app-1", make_submission(project_name="Drips v2"), now)

        args = mock_app_repo.add_version.await_args.args
        assert args[0] == "app-1"
        assert args[1].project_name == "Drips v2"
        assert mock_audit.record.await_args.args[0] == AuditAction.APPLICATION_UPDATED

    @pytest.mark.asyncio
    async def test_submitter_cannot_edit_after_intake(
        self, application_service, mock_app_repo, sample_round, submitter
    ):
        later = sample_round.schedule.application_end + timedelta(hours=1)

        with pytest.raises(PhaseError):
            await application_service.update(submitter, "app-1", make_submission(), later)
        mock_app_repo.add_version.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_admin_edits_during_voting(
        self, application_service, mock_app_repo, sample_round, admin
    ):
        voting = sample_round.schedule.voting_start + timedelta(hours=1)

        await application_service.update(admin, "app-1", make_submission(), voting)

        mock_app_repo.add_version.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_admin_edit_verified_against_submitter_wallet(
        self, application_service, mock_verifier, attested_round, admin, submitter, now
    ):
        await application_service.update(
            admin, "app-1", make_submission(attestation_id=ATTESTATION_ID), now
        )

        assert mock_verifier.verify_immediate.await_args.args[2] == submitter.wallet_address

    @pytest.mark.asyncio
    async def test_outsider_cannot_edit(self, application_service, outsider, now):
        with pytest.raises(AuthorizationError):
            await application_service.update(outsider, "app-1", make_submission(), now)

    @pytest.mark.asyncio
    async def test_missing_application(self, application_service, mock_app_repo, submitter, now):
        mock_app_repo.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await application_service.update(submitter, "app-9", make_submission(), now)


# =============================================================================
# Review
# =============================================================================


class TestReview:
    """Tests for ApplicationService.review."""

    @staticmethod
    def decisions():
        return [
            ApplicationReviewDecision(application_id="app-1", decision="approved"),
            ApplicationReviewDecision(application_id="app-2", decision="rejected"),
        ]

    @pytest.mark.asyncio
    async def test_review_pending_applications(
        self, application_service, mock_app_repo, mock_audit, mock_transaction, admin, now
    ):
        reviewed = await application_service.review(admin, "round-1", self.decisions(), now)

        assert reviewed == 2
        round_id, states, tx = mock_app_repo.set_states.await_args.args
        assert round_id == "round-1"
        assert states == {"app-1": ApplicationState.APPROVED, "app-2": ApplicationState.REJECTED}
        assert tx is mock_transaction
        assert mock_audit.record.await_args.args[3] == {
            "decisions": {"app-1": "approved", "app-2": "rejected"}
        }

    @pytest.mark.asyncio
    async def test_review_is_all_or_nothing(self, application_service, mock_app_repo, mock_audit, admin, now):
        """An already-reviewed application in the batch fails the whole request."""
        mock_app_repo.set_states.return_value = 1

        with pytest.raises(ValidationError, match="not in pending state"):
            await application_service.review(admin, "round-1", self.decisions(), now)
        mock_audit.record.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_review_requires_admin(self, application_service, submitter, now):
        with pytest.raises(AuthorizationError):
            await application_service.review(submitter, "round-1", self.decisions(), now)

    @pytest.mark.asyncio
    async def test_review_closed_during_voting(self, application_service, sample_round, admin):
        voting = sample_round.schedule.voting_start + timedelta(hours=1)

        with pytest.raises(PhaseError):
            await application_service.review(admin, "round-1", self.decisions(), voting)

    @pytest.mark.asyncio
    async def test_duplicate_decisions_rejected(self, application_service, admin, now):
        duplicated = [
            ApplicationReviewDecision(application_id="app-1", decision="approved"),
            ApplicationReviewDecision(application_id="app-1", decision="rejected"),
        ]

        with pytest.raises(ValidationError):
            await application_service.review(admin, "round-1", duplicated, now)

    @pytest.mark.asyncio
    async def test_empty_review_rejected(self, application_service, admin, now):
        with pytest.raises(ValidationError):
            await application_service.review(admin, "round-1", [], now)


# =============================================================================
# Deferred Attestations
# =============================================================================


class TestResolveDeferredAttestation:
    """Tests for ApplicationService.resolve_deferred_attestation."""

    @pytest.mark.asyncio
    async def test_pending_version_promoted(
        self, application_service, mock_app_repo, mock_verifier, mock_audit, attested_round, submitter
    ):
        mock_app_repo.get_by_id.return_value = make_application(submitter, deferred_tx_hash=TX_HASH)

        assert await application_service.resolve_deferred_attestation("app-1") is True

        assert mock_verifier.verify_deferred.await_args.args[2] == submitter.wallet_address
        mock_app_repo.resolve_attestation.assert_awaited_once_with("ver-1", ATTESTATION_ID)
        action, round_id, actor, _ = mock_audit.record.await_args.args
        assert action == AuditAction.APPLICATION_ATTESTATION_RESOLVED
        assert actor is None

    @pytest.mark.asyncio
    async def test_nothing_pending(self, application_service, mock_app_repo, mock_verifier):
        assert await application_service.resolve_deferred_attestation("app-1") is False
        mock_verifier.verify_deferred.assert_not_awaited()
        mock_app_repo.resolve_attestation.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_skipped_without_attestation_setup(
        self, application_service, mock_app_repo, mock_verifier, submitter
    ):
        mock_app_repo.get_by_id.return_value = make_application(submitter, deferred_tx_hash=TX_HASH)

        assert await application_service.resolve_deferred_attestation("app-1") is False
        mock_verifier.verify_deferred.assert_not_awaited()


# =============================================================================
# Reads
# =============================================================================


class TestReads:
    """Tests for private-answer redaction and the list cache."""

    @staticmethod
    def answer_ids(application):
        return [a.field_id for a in application.current_version.answers]

    @pytest.mark.asyncio
    async def test_private_answers_hidden_from_others(self, application_service, outsider):
        result = await application_service.get_application(outsider, "app-1")
        assert self.answer_ids(result) == ["summary"]

    @pytest.mark.asyncio
    async def test_submitter_sees_private_answers(self, application_service, submitter):
        result = await application_service.get_application(submitter, "app-1")
        assert self.answer_ids(result) == ["summary", "contact"]

    @pytest.mark.asyncio
    async def test_admin_sees_private_answers(self, application_service, admin):
        result = await application_service.get_application(admin, "app-1")
        assert "contact" in self.answer_ids(result)

    @pytest.mark.asyncio
    async def test_read_under_deleted_category(
        self, application_service, mock_form_repo, category, outsider, now
    ):
        mock_form_repo.get_category.return_value = category.model_copy(update={"deleted_at": now})

        result = await application_service.get_application(outsider, "app-1")
        assert self.answer_ids(result) == ["summary"]

    @pytest.mark.asyncio
    async def test_list_populates_cache(self, application_service, mock_cache, outsider):
        results = await application_service.list_applications(outsider, "round-1", ApplicationState.APPROVED)

        assert self.answer_ids(results[0]) == ["summary"]
        key, value = mock_cache.set.await_args.args
        assert key == generate_key("applications", "round-1", "approved", "public")
        assert value[0]["id"] == "app-1"

    @pytest.mark.asyncio
    async def test_list_served_from_cache(
        self, application_service, mock_app_repo, mock_cache, application, admin
    ):
        mock_cache.get.return_value = [application.model_dump(mode="json")]

        results = await application_service.list_applications(admin, "round-1")

        assert results[0].id == "app-1"
        assert mock_cache.get.await_args.args[0] == generate_key("applications", "round-1", "all", "private")
        mock_app_repo.list_by_round.assert_not_awaited()
