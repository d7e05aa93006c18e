"""
Audit Repository

Append-only audit trail of round lifecycle actions.
"""

from typing import Any

from rpgf.models.events import ActorType, AuditAction, AuditEvent
from rpgf.repositories.base import BaseRepository, from_json, to_json


class AuditRepository(BaseRepository[AuditEvent]):
    @property
    def node_label(self) -> str:
        return "AuditLog"

    @property
    def model_class(self) -> type[AuditEvent]:
        return AuditEvent

    def _decode(self, record: dict[str, Any]) -> dict[str, Any]:
        data = dict(record)
        data["payload"] = from_json(record.get("payload"), default={})
        return data

    async def log(
        self,
        action: AuditAction,
        round_id: str | None,
        actor_type: ActorType,
        actor_user_id: str | None = None,
        actor_wallet_address: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        query = """
        CREATE (a:AuditLog {
            id: $id,
            action: $action,
            round_id: $round_id,
            actor_type: $actor_type,
            actor_user_id: $actor_user_id,
            actor_wallet_address: $actor_wallet_address,
            payload: $payload,
            created_at: $now
        })
        RETURN a {.*} AS entity
        """
        params = {
            "id": self._generate_id(),
            "action": AuditAction(action).value,
            "round_id": round_id,
            "actor_type": ActorType(actor_type).value,
            "actor_user_id": actor_user_id,
            "actor_wallet_address": actor_wallet_address,
            "payload": to_json(payload or {}),
            "now": self._now().isoformat(),
        }
        record = await self.client.execute_single(query, params)
        event = self._to_model(record["entity"] if record else None)
        if event is None:
            raise RuntimeError("Audit log creation returned no record")
        return event

    async def list_by_round(self, round_id: str, limit: int = 100) -> list[AuditEvent]:
        query = """
        MATCH (a:AuditLog {round_id: $round_id})
        RETURN a {.*} AS entity
        ORDER BY a.created_at DESC
        LIMIT $limit
        """
        records = await self.client.execute(
            query, {"round_id": round_id, "limit": min(max(1, limit), 1000)}
        )
        return self._to_models([r["entity"] for r in records if r.get("entity")])
