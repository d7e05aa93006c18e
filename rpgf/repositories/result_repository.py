"""
Result Repository
"""

from neo4j import AsyncTransaction

from rpgf.models.result import Result, ResultMethod
from rpgf.repositories.base import BaseRepository


class ResultRepository(BaseRepository[Result]):
    @property
    def node_label(self) -> str:
        return "Result"

    @property
    def model_class(self) -> type[Result]:
        return Result

    async def list_by_round(self, round_id: str) -> list[Result]:
        query = """
        MATCH (r:Result {round_id: $round_id})
        RETURN r {.*} AS entity
        ORDER BY r.allocation DESC, r.application_id ASC
        """
        records = await self.client.execute(query, {"round_id": round_id})
        return self._to_models([r["entity"] for r in records if r.get("entity")])

    async def replace_all(
        self,
        round_id: str,
        allocations: dict[str, int],
        method: ResultMethod,
        tx: AsyncTransaction,
    ) -> None:
        """Delete the round's results and write ``allocations`` in their place."""
        await self._run(
            "MATCH (r:Result {round_id: $round_id}) DETACH DELETE r",
            {"round_id": round_id},
            tx,
        )
        if not allocations:
            return
        query = """
        UNWIND $rows AS row
        CREATE (r:Result {
            result_key: $round_id + ':' + row.application_id,
            round_id: $round_id,
            application_id: row.application_id,
            allocation: row.allocation,
            method: $method,
            created_at: $now
        })
        """
        await self._run(
            query,
            {
                "round_id": round_id,
                "method": ResultMethod(method).value,
                "now": self._now().isoformat(),
                "rows": [
                    {"application_id": app_id, "allocation": allocation}
                    for app_id, allocation in sorted(allocations.items())
                ],
            },
            tx,
        )
