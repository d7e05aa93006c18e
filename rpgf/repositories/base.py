"""
Base Repository

Common plumbing for repositories: id and clock helpers, record to model
conversion, and running a query either standalone or inside an open
transaction.
"""

import json
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar
from uuid import uuid4

import structlog
from neo4j import AsyncTransaction
from pydantic import BaseModel

from rpgf.database.client import Neo4jClient, collect

T = TypeVar("T", bound=BaseModel)


def to_json(value: Any) -> str | None:
    """Neo4j properties cannot hold maps; nested values are stored as JSON."""
    if value is None:
        return None
    return json.dumps(value, default=str)


def from_json(value: Any, default: Any = None) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


class BaseRepository(ABC, Generic[T]):
    """Base repository bound to one node label and one model."""

    def __init__(self, client: Neo4jClient):
        self.client = client
        self.logger = structlog.get_logger(self.__class__.__name__)

    @property
    @abstractmethod
    def node_label(self) -> str:
        """The Neo4j node label for this entity."""
        pass

    @property
    @abstractmethod
    def model_class(self) -> type[T]:
        """The Pydantic model class for this entity."""
        pass

    def _generate_id(self) -> str:
        return str(uuid4())

    def _now(self) -> datetime:
        return datetime.now(UTC)

    def _decode(self, record: dict[str, Any]) -> dict[str, Any]:
        """Hook for turning stored properties back into model input."""
        return record

    def _to_model(self, record: dict[str, Any] | None) -> T | None:
        if not record:
            return None
        return self.model_class.model_validate(self._decode(record))

    def _to_models(self, records: list[dict[str, Any]]) -> list[T]:
        return [m for m in (self._to_model(r) for r in records) if m is not None]

    async def _run(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
        tx: AsyncTransaction | None = None,
    ) -> list[dict[str, Any]]:
        if tx is None:
            return await self.client.execute(query, parameters or {})
        result = await tx.run(query, parameters or {})
        return await collect(result)

    async def _run_single(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
        tx: AsyncTransaction | None = None,
    ) -> dict[str, Any] | None:
        if tx is None:
            return await self.client.execute_single(query, parameters or {})
        records = await self._run(query, parameters, tx)
        return records[0] if records else None

    async def get_by_id(self, entity_id: str) -> T | None:
        query = f"""
        MATCH (n:{self.node_label} {{id: $id}})
        RETURN n {{.*}} AS entity
        """
        result = await self.client.execute_single(query, {"id": entity_id})
        if result and result.get("entity"):
            return self._to_model(result["entity"])
        return None
