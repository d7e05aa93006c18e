"""
Audit Service

Records lifecycle actions after the operation they describe has
committed. Recording is best-effort: a failure is logged, never raised.
"""

from typing import Any

import structlog

from rpgf.models.base import Actor
from rpgf.models.events import ActorType, AuditAction, AuditEvent
from rpgf.repositories.audit_repository import AuditRepository

logger = structlog.get_logger(__name__)


class AuditService:
    def __init__(self, repository: AuditRepository):
        self.repository = repository

    async def record(
        self,
        action: AuditAction,
        round_id: str | None,
        actor: Actor | None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent | None:
        """Record ``action``; ``actor=None`` attributes it to the system."""
        try:
            return await self.repository.log(
                action=action,
                round_id=round_id,
                actor_type=ActorType.USER if actor else ActorType.SYSTEM,
                actor_user_id=actor.user_id if actor else None,
                actor_wallet_address=actor.wallet_address if actor else None,
                payload=payload,
            )
        except Exception as e:
            logger.error(
                "audit_record_failed",
                action=AuditAction(action).value,
                round_id=round_id,
                error=str(e),
            )
            return None
