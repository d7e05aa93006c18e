"""
RPGF Models
"""

from rpgf.models.application import (
    Application,
    ApplicationReviewDecision,
    ApplicationState,
    ApplicationSubmission,
    ApplicationVersion,
)
from rpgf.models.ballot import Ballot, BallotRow, BallotStats, BallotSubmission
from rpgf.models.base import Actor, RPGFModel, TimestampMixin, utcnow
from rpgf.models.events import ActorType, AuditAction, AuditEvent
from rpgf.models.form import (
    ApplicationAnswer,
    ApplicationCategory,
    ApplicationForm,
    CategoryDefinition,
    FormDefinition,
    FormField,
)
from rpgf.models.result import ApplicationResult, Result, ResultMethod
from rpgf.models.round import (
    AttestationSetup,
    Chain,
    Round,
    RoundCreate,
    RoundPhase,
    RoundSchedule,
    RoundUpdate,
    VotingConfig,
)

__all__ = [
    "Actor",
    "RPGFModel",
    "TimestampMixin",
    "utcnow",
    "Application",
    "ApplicationReviewDecision",
    "ApplicationState",
    "ApplicationSubmission",
    "ApplicationVersion",
    "ApplicationAnswer",
    "ApplicationCategory",
    "ApplicationForm",
    "CategoryDefinition",
    "FormDefinition",
    "FormField",
    "Ballot",
    "BallotRow",
    "BallotStats",
    "BallotSubmission",
    "ActorType",
    "AuditAction",
    "AuditEvent",
    "ApplicationResult",
    "Result",
    "ResultMethod",
    "AttestationSetup",
    "Chain",
    "Round",
    "RoundCreate",
    "RoundPhase",
    "RoundSchedule",
    "RoundUpdate",
    "VotingConfig",
]
