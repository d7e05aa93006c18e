"""
RPGF Error Taxonomy

Every failure surfaced by the core derives from RPGFError and carries a
stable machine-readable code plus structured details for the HTTP layer.
"""

from typing import Any


class RPGFError(Exception):
    """Base exception for all RPGF core errors."""

    code = "rpgf_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


# ═══════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════


class ValidationError(RPGFError):
    """Input rejected; nothing was persisted."""

    code = "validation_error"


class PhaseError(ValidationError):
    """Operation not allowed in the round's current phase."""

    code = "wrong_phase"

    def __init__(self, message: str, phase: str | None, **details: Any):
        super().__init__(message, phase=phase, **details)
        self.phase = phase


class InvalidAnswersError(ValidationError):
    """Application answers do not satisfy the category form."""

    code = "invalid_answers"


class BudgetExceededError(ValidationError):
    """Ballot total exceeds the voter's budget."""

    code = "budget_exceeded"


class PerProjectLimitExceededError(ValidationError):
    """A single allocation exceeds the per-project cap."""

    code = "per_project_limit_exceeded"


class InvalidApplicationReferenceError(ValidationError):
    """Ballot references applications that are unknown or not approved."""

    code = "invalid_application_reference"

    def __init__(self, message: str, application_ids: list[str]):
        super().__init__(message, application_ids=application_ids)
        self.application_ids = application_ids


class InvalidSignatureError(ValidationError):
    """Ballot signature does not recover to the voter's wallet."""

    code = "invalid_signature"


class BallotParseError(ValidationError):
    """A ballot row could not be parsed."""

    code = "ballot_parse_error"

    def __init__(self, message: str, row: int):
        super().__init__(message, row=row)
        self.row = row


class ApplicationAlreadySubmittedError(ValidationError):
    """The submitter already has an application in this round."""

    code = "application_already_submitted"


class BallotAlreadySubmittedError(ValidationError):
    """A ballot already exists for this voter in this round."""

    code = "ballot_already_submitted"


class NoVotesAllocatedError(ValidationError):
    """Weights cannot be derived from a round without any votes."""

    code = "no_votes_allocated"


# ═══════════════════════════════════════════════════════════════
# ATTESTATIONS
# ═══════════════════════════════════════════════════════════════


class AttestationError(ValidationError):
    """Base class for definitive attestation verification failures."""

    code = "attestation_error"


class AttestationRequiredError(AttestationError):
    code = "attestation_required"


class AttestationNotFoundError(AttestationError):
    code = "attestation_not_found"


class TransactionNotFoundError(AttestationError):
    code = "transaction_not_found"


class AttestationSubmitterMismatchError(AttestationError):
    code = "attestation_submitter_mismatch"


class AttestationRevokedError(AttestationError):
    code = "attestation_revoked"


class AttestationPayloadInvalidError(AttestationError):
    code = "attestation_payload_invalid"


class PrivateFieldLeakedError(AttestationError):
    """A private form field was published in the attested payload."""

    code = "private_field_leaked"


class FieldMismatchError(AttestationError):
    """Submitted values differ from the attested payload."""

    code = "field_mismatch"


class AttestationEventNotFoundError(AttestationError):
    """The transaction receipt carries no matching attestation event."""

    code = "attestation_event_not_found"


# ═══════════════════════════════════════════════════════════════
# ACCESS & LOOKUP
# ═══════════════════════════════════════════════════════════════


class AuthorizationError(RPGFError):
    """The actor is not permitted to perform this operation."""

    code = "unauthorized"


class NotFoundError(RPGFError):
    """A referenced entity does not exist."""

    code = "not_found"


# ═══════════════════════════════════════════════════════════════
# EXTERNAL COLLABORATORS
# ═══════════════════════════════════════════════════════════════


class TransientExternalError(RPGFError):
    """Ledger or content store unavailable past the retry bound; safe to retry."""

    code = "transient_external_error"


__all__ = [
    "RPGFError",
    "ValidationError",
    "PhaseError",
    "InvalidAnswersError",
    "BudgetExceededError",
    "PerProjectLimitExceededError",
    "InvalidApplicationReferenceError",
    "InvalidSignatureError",
    "BallotParseError",
    "BallotAlreadySubmittedError",
    "NoVotesAllocatedError",
    "AttestationError",
    "AttestationRequiredError",
    "AttestationNotFoundError",
    "TransactionNotFoundError",
    "AttestationSubmitterMismatchError",
    "AttestationRevokedError",
    "AttestationPayloadInvalidError",
    "PrivateFieldLeakedError",
    "FieldMismatchError",
    "AttestationEventNotFoundError",
    "AuthorizationError",
    "NotFoundError",
    "TransientExternalError",
]
