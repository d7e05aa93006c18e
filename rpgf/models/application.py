"""
Application Models

An application carries an append-only list of versions; the latest
version is the current one. Proof of identity for a version is either an
attestation id or, transiently, the hash of the transaction that will
create it.
"""

from enum import Enum

from pydantic import ConfigDict, Field, field_validator, model_validator

from rpgf.models.base import RPGFModel, TimestampMixin
from rpgf.models.form import ApplicationAnswer

HEX_32_PATTERN = r"^0x[0-9a-fA-F]{64}$"


class ApplicationState(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApplicationVersion(RPGFModel, TimestampMixin):
    model_config = ConfigDict(str_strip_whitespace=False)

    id: str
    application_id: str
    project_name: str = Field(min_length=1, max_length=255)
    account_id: str = Field(min_length=1, max_length=255)
    category_id: str
    answers: list[ApplicationAnswer] = Field(default_factory=list)
    attestation_id: str | None = None
    deferred_tx_hash: str | None = None

    @property
    def attestation_pending(self) -> bool:
        return self.attestation_id is None and self.deferred_tx_hash is not None


class Application(RPGFModel, TimestampMixin):
    id: str
    round_id: str
    submitter_user_id: str
    submitter_wallet_address: str
    state: ApplicationState = ApplicationState.PENDING
    versions: list[ApplicationVersion] = Field(default_factory=list)

    @property
    def current_version(self) -> ApplicationVersion | None:
        return self.versions[-1] if self.versions else None

    @property
    def project_name(self) -> str | None:
        current = self.current_version
        return current.project_name if current else None


class ApplicationSubmission(RPGFModel):
    """
    A new application, or a new version of an existing one.

    At most one of ``attestation_id`` and ``deferred_tx_hash`` may be given.
    Project name and account id are kept exactly as sent: attestations are
    compared against them verbatim.
    """

    model_config = ConfigDict(str_strip_whitespace=False)

    project_name: str = Field(min_length=1, max_length=255)
    account_id: str = Field(min_length=1, max_length=255)
    category_id: str = Field(min_length=1)
    answers: list[ApplicationAnswer] = Field(default_factory=list)
    attestation_id: str | None = Field(default=None, pattern=HEX_32_PATTERN)
    deferred_tx_hash: str | None = Field(default=None, pattern=HEX_32_PATTERN)

    @field_validator("project_name", "account_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @field_validator("attestation_id", "deferred_tx_hash")
    @classmethod
    def lowercase_hex(cls, v: str | None) -> str | None:
        return v.lower() if v else v

    @model_validator(mode="after")
    def check_single_proof(self) -> "ApplicationSubmission":
        if self.attestation_id and self.deferred_tx_hash:
            raise ValueError("Provide either attestation_id or deferred_tx_hash, not both")
        return self


class ApplicationReviewDecision(RPGFModel):
    application_id: str
    decision: ApplicationState

    @field_validator("decision")
    @classmethod
    def check_decision(cls, v: ApplicationState) -> ApplicationState:
        if v == ApplicationState.PENDING:
            raise ValueError("A review must approve or reject")
        return v
