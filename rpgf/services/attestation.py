"""
Attestation Verification

Proves that an application is backed by a declaration the submitter's
wallet attested to on the round's chain.

Two modes, selected by which proof the submission carries:

- Immediate: an attestation id. The attestation is read from the ledger,
  its payload points at the declared application in the content store,
  and the declaration is compared field by field with the submission.
- Deferred: the hash of the transaction that creates the attestation.
  The receipt's Attested event yields the attestation id and attester;
  the declaration is rebuilt from the submission's own public answers.

Ledger and content reads are polled with a fixed interval up to a time
bound. A record still missing at the bound is a definitive failure; a
transport error still failing at the bound is a TransientExternalError.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from pydantic import AliasChoices, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_delay, wait_fixed

from rpgf.chains.base import (
    BaseContentClient,
    BaseLedgerClient,
    ContentFetchError,
    LedgerUnavailableError,
)
from rpgf.chains.eas import decode_application_attestation_data, find_attested_event
from rpgf.config import settings
from rpgf.errors import (
    AttestationError,
    AttestationEventNotFoundError,
    AttestationNotFoundError,
    AttestationPayloadInvalidError,
    AttestationRevokedError,
    AttestationSubmitterMismatchError,
    FieldMismatchError,
    PrivateFieldLeakedError,
    TransactionNotFoundError,
    TransientExternalError,
)
from rpgf.models.application import ApplicationSubmission
from rpgf.models.base import RPGFModel
from rpgf.models.form import ApplicationForm
from rpgf.models.round import AttestationSetup

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TRANSPORT_ERRORS = (LedgerUnavailableError, ContentFetchError)


class _StillPending(Exception):
    """The ledger does not know the record yet."""


class DeclaredAnswer(RPGFModel):
    model_config = ConfigDict(str_strip_whitespace=False)

    field_id: str = Field(validation_alias=AliasChoices("fieldId", "field_id"))
    value: Any = None


class DeclaredApplication(RPGFModel):
    """
    The application payload the submitter published and attested to.

    Values are compared verbatim, so nothing is trimmed on parsing.
    """

    model_config = ConfigDict(str_strip_whitespace=False)

    project_name: str = Field(
        min_length=1,
        validation_alias=AliasChoices("projectName", "project_name"),
    )
    account_id: str = Field(
        min_length=1,
        validation_alias=AliasChoices("dripsAccountId", "accountId", "account_id"),
    )
    answers: list[DeclaredAnswer] = Field(
        default_factory=list,
        validation_alias=AliasChoices("answers", "fields"),
    )

    def answer_map(self) -> dict[str, Any]:
        return {a.field_id: a.value for a in self.answers}


def deep_equal(left: Any, right: Any) -> bool:
    """Structural equality that also requires identical types at every level."""
    if type(left) is not type(right):
        return False
    if isinstance(left, dict):
        return left.keys() == right.keys() and all(deep_equal(left[k], right[k]) for k in left)
    if isinstance(left, list):
        return len(left) == len(right) and all(deep_equal(a, b) for a, b in zip(left, right))
    return left == right


def compare_declared_fields(
    declared: DeclaredApplication,
    submission: ApplicationSubmission,
    form: ApplicationForm,
) -> None:
    """
    Compare a declaration with the submission it is meant to back.

    Raises:
        FieldMismatchError: If identity or a public answer differs
        PrivateFieldLeakedError: If a private field appears in the declaration
    """
    if declared.project_name != submission.project_name:
        raise FieldMismatchError("Project name does not match the attested application", field="project_name")
    if declared.account_id != submission.account_id:
        raise FieldMismatchError("Account id does not match the attested application", field="account_id")

    fields = form.fillable_fields()
    declared_answers = declared.answer_map()

    for field_id in declared_answers:
        field = fields.get(field_id)
        if field is not None and field.private:
            raise PrivateFieldLeakedError(
                f"Private field {field.slug} must not be attested",
                field_id=field_id,
            )

    for answer in submission.answers:
        field = fields.get(answer.field_id)
        if field is None:
            # removed from the form after attesting
            continue
        if field.private:
            continue
        if answer.field_id not in declared_answers:
            raise FieldMismatchError(
                f"Field {field.slug} is missing from the attested application",
                field_id=answer.field_id,
            )
        if not deep_equal(declared_answers[answer.field_id], answer.value):
            raise FieldMismatchError(
                f"Field {field.slug} does not match the attested application",
                field_id=answer.field_id,
            )


def declaration_from_submission(
    submission: ApplicationSubmission,
    form: ApplicationForm,
) -> DeclaredApplication:
    """Rebuild the public declaration implied by a submission."""
    fields = form.fillable_fields()
    public_answers = [
        DeclaredAnswer(field_id=a.field_id, value=a.value)
        for a in submission.answers
        if a.field_id in fields and not fields[a.field_id].private
    ]
    return DeclaredApplication(
        project_name=submission.project_name,
        account_id=submission.account_id,
        answers=public_answers,
    )


def parse_declared_application(raw: bytes) -> DeclaredApplication:
    try:
        return DeclaredApplication.model_validate(json.loads(raw))
    except (ValueError, PydanticValidationError) as e:
        raise AttestationPayloadInvalidError(
            "Attested application payload is not a valid application"
        ) from e


class AttestationVerifier:
    """Verifies application proofs against one chain's attestation setup."""

    def __init__(
        self,
        ledger: BaseLedgerClient,
        content: BaseContentClient,
        setup: AttestationSetup,
        poll_timeout_seconds: float | None = None,
        poll_interval_seconds: float | None = None,
    ):
        self.ledger = ledger
        self.content = content
        self.setup = setup
        self.poll_timeout_seconds = (
            poll_timeout_seconds
            if poll_timeout_seconds is not None
            else settings.attestation_poll_timeout_seconds
        )
        self.poll_interval_seconds = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else settings.attestation_poll_interval_seconds
        )

    async def _poll(
        self,
        fetch: Callable[[], Awaitable[T | None]],
        missing: AttestationError,
    ) -> T:
        """
        Call ``fetch`` until it returns a value or the bound elapses.

        Raises:
            ``missing``: If the record never appeared
            TransientExternalError: If the last attempt failed in transport
        """
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_delay(self.poll_timeout_seconds),
                wait=wait_fixed(self.poll_interval_seconds),
                retry=retry_if_exception_type((_StillPending, *TRANSPORT_ERRORS)),
                reraise=True,
            ):
                with attempt:
                    result = await fetch()
                    if result is None:
                        raise _StillPending()
                    return result
        except _StillPending:
            raise missing from None
        except TRANSPORT_ERRORS as e:
            raise TransientExternalError(
                "Attestation ledger or content store unavailable",
                error=str(e),
            ) from e
        raise missing

    async def verify_immediate(
        self,
        attestation_id: str,
        submission: ApplicationSubmission,
        submitter_wallet: str,
        form: ApplicationForm,
        round_slug: str,
    ) -> str:
        """
        Verify an existing attestation backs ``submission``.

        Returns:
            The verified attestation id
        """
        log = logger.bind(attestation_id=attestation_id, mode="immediate")

        record = await self._poll(
            lambda: self.ledger.get_attestation(attestation_id),
            AttestationNotFoundError(f"Attestation {attestation_id} not found"),
        )

        if record.attester.lower() != submitter_wallet.lower():
            log.warning("attestation_submitter_mismatch", attester=record.attester)
            raise AttestationSubmitterMismatchError(
                "Attestation was not made by the submitter's wallet",
                attester=record.attester,
            )
        if record.revoked:
            raise AttestationRevokedError(f"Attestation {attestation_id} has been revoked")
        if record.schema.lower() != self.setup.application_schema_id.lower():
            raise AttestationPayloadInvalidError(
                "Attestation does not use the application schema",
                schema=record.schema,
            )

        try:
            content_pointer, attested_round = decode_application_attestation_data(record.data)
        except Exception as e:
            raise AttestationPayloadInvalidError("Attestation data could not be decoded") from e

        if attested_round != round_slug:
            raise AttestationPayloadInvalidError(
                "Attestation was made for a different round",
                attested_round=attested_round,
            )

        raw = await self._poll(
            lambda: self.content.get_by_hash(content_pointer),
            AttestationPayloadInvalidError(f"Attested content {content_pointer} not found"),
        )
        declared = parse_declared_application(raw)
        compare_declared_fields(declared, submission, form)

        log.info("attestation_verified")
        return attestation_id

    async def verify_deferred(
        self,
        tx_hash: str,
        submission: ApplicationSubmission,
        submitter_wallet: str,
        form: ApplicationForm,
    ) -> str:
        """
        Resolve a deferred proof into an attestation id.

        Returns:
            The attestation id created by ``tx_hash``
        """
        log = logger.bind(tx_hash=tx_hash, mode="deferred")

        receipt = await self._poll(
            lambda: self.ledger.get_transaction_receipt(tx_hash),
            TransactionNotFoundError(f"Transaction {tx_hash} not found"),
        )

        event = find_attested_event(
            receipt,
            self.setup.contract_address,
            self.setup.application_schema_id,
        )
        if event is None:
            raise AttestationEventNotFoundError(
                f"Transaction {tx_hash} did not create an application attestation"
            )
        attestation_id, attester = event

        if attester.lower() != submitter_wallet.lower():
            log.warning("attestation_submitter_mismatch", attester=attester)
            raise AttestationSubmitterMismatchError(
                "Attestation was not made by the submitter's wallet",
                attester=attester,
            )

        compare_declared_fields(declaration_from_submission(submission, form), submission, form)

        log.info("deferred_attestation_resolved", resolved_attestation_id=attestation_id)
        return attestation_id

