"""
Audit Event Models

Actions recorded in the audit trail for round lifecycle operations.
"""

from enum import Enum
from typing import Any

from pydantic import Field

from rpgf.models.base import RPGFModel, TimestampMixin


class AuditAction(str, Enum):
    ROUND_CREATED = "round_created"
    ROUND_SETTINGS_CHANGED = "round_settings_changed"
    ROUND_VOTERS_CHANGED = "round_voters_changed"
    ROUND_PUBLISHED = "round_published"
    ROUND_PHASE_FORCED = "round_phase_forced"
    APPLICATION_FORM_CREATED = "application_form_created"
    APPLICATION_FORM_UPDATED = "application_form_updated"
    APPLICATION_FORM_DELETED = "application_form_deleted"
    APPLICATION_CATEGORY_CREATED = "application_category_created"
    APPLICATION_CATEGORY_UPDATED = "application_category_updated"
    APPLICATION_CATEGORY_DELETED = "application_category_deleted"
    APPLICATION_SUBMITTED = "application_submitted"
    APPLICATION_UPDATED = "application_updated"
    APPLICATION_REVIEWED = "application_reviewed"
    APPLICATION_ATTESTATION_RESOLVED = "application_attestation_resolved"
    BALLOT_SUBMITTED = "ballot_submitted"
    BALLOT_UPDATED = "ballot_updated"
    RESULTS_CALCULATED = "results_calculated"
    RESULTS_PUBLISHED = "results_published"


class ActorType(str, Enum):
    USER = "user"
    SYSTEM = "system"


class AuditEvent(RPGFModel, TimestampMixin):
    id: str
    action: AuditAction
    round_id: str | None = None
    actor_type: ActorType = ActorType.USER
    actor_user_id: str | None = None
    actor_wallet_address: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
