"""
Ballot Repository

One ballot per (round, voter), enforced by the ``ballot_key`` uniqueness
constraint. A create that loses the race surfaces as
BallotAlreadySubmittedError.
"""

from typing import Any

from neo4j import AsyncTransaction
from neo4j.exceptions import ConstraintError

from rpgf.errors import BallotAlreadySubmittedError
from rpgf.models.ballot import Ballot, BallotSubmission
from rpgf.repositories.base import BaseRepository, from_json, to_json


def ballot_key(round_id: str, voter_user_id: str) -> str:
    return f"{round_id}:{voter_user_id}"


class BallotRepository(BaseRepository[Ballot]):
    @property
    def node_label(self) -> str:
        return "Ballot"

    @property
    def model_class(self) -> type[Ballot]:
        return Ballot

    def _decode(self, record: dict[str, Any]) -> dict[str, Any]:
        data = dict(record)
        data["allocations"] = from_json(record.get("allocations"), default={})
        return data

    async def get(self, round_id: str, voter_user_id: str) -> Ballot | None:
        query = """
        MATCH (b:Ballot {ballot_key: $ballot_key})
        RETURN b {.*} AS entity
        """
        result = await self.client.execute_single(
            query, {"ballot_key": ballot_key(round_id, voter_user_id)}
        )
        return self._to_model(result["entity"]) if result else None

    async def list_by_round(self, round_id: str, tx: AsyncTransaction | None = None) -> list[Ballot]:
        query = """
        MATCH (b:Ballot {round_id: $round_id})
        RETURN b {.*} AS entity
        ORDER BY b.created_at ASC
        """
        records = await self._run(query, {"round_id": round_id}, tx)
        return self._to_models([r["entity"] for r in records if r.get("entity")])

    async def count_by_round(self, round_id: str) -> int:
        query = "MATCH (b:Ballot {round_id: $round_id}) RETURN count(b) AS count"
        result = await self.client.execute_single(query, {"round_id": round_id})
        return result.get("count", 0) if result else 0

    async def create(
        self,
        round_id: str,
        voter_user_id: str,
        submission: BallotSubmission,
        tx: AsyncTransaction | None = None,
    ) -> Ballot:
        """
        Insert the voter's ballot.

        Raises:
            BallotAlreadySubmittedError: If the voter already has a ballot
        """
        now = self._now().isoformat()
        query = """
        CREATE (b:Ballot {
            id: $id,
            ballot_key: $ballot_key,
            round_id: $round_id,
            voter_user_id: $voter_user_id,
            allocations: $allocations,
            signature: $signature,
            chain_id: $chain_id,
            created_at: $now,
            updated_at: $now
        })
        RETURN b {.*} AS entity
        """
        try:
            result = await self._run_single(
                query,
                {
                    "id": self._generate_id(),
                    "ballot_key": ballot_key(round_id, voter_user_id),
                    "round_id": round_id,
                    "voter_user_id": voter_user_id,
                    "allocations": to_json(submission.allocations),
                    "signature": submission.signature,
                    "chain_id": submission.chain_id,
                    "now": now,
                },
                tx,
            )
        except ConstraintError as e:
            self.logger.info("ballot_already_submitted", round_id=round_id, voter_user_id=voter_user_id)
            raise BallotAlreadySubmittedError(
                "A ballot was already submitted for this round",
                round_id=round_id,
            ) from e

        ballot = self._to_model(result["entity"] if result else None)
        if ballot is None:
            raise RuntimeError("Ballot creation returned no record")
        return ballot

    async def replace(
        self,
        round_id: str,
        voter_user_id: str,
        submission: BallotSubmission,
        tx: AsyncTransaction | None = None,
    ) -> Ballot | None:
        """Overwrite the voter's allocations; None if there is no ballot."""
        query = """
        MATCH (b:Ballot {ballot_key: $ballot_key})
        SET b.allocations = $allocations,
            b.signature = $signature,
            b.chain_id = $chain_id,
            b.updated_at = $now
        RETURN b {.*} AS entity
        """
        result = await self._run_single(
            query,
            {
                "ballot_key": ballot_key(round_id, voter_user_id),
                "allocations": to_json(submission.allocations),
                "signature": submission.signature,
                "chain_id": submission.chain_id,
                "now": self._now().isoformat(),
            },
            tx,
        )
        return self._to_model(result["entity"]) if result else None
