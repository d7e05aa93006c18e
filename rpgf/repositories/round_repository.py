"""
Round Repository

Persistence for rounds and the chains they are anchored to. Schedules are
stored as flat ISO timestamp properties; voting config and attestation
setup as JSON.
"""

from typing import Any

from neo4j import AsyncTransaction

from rpgf.models.round import Chain, Round, RoundCreate, RoundSchedule, RoundUpdate, VotingConfig
from rpgf.repositories.base import BaseRepository, from_json, to_json

SCHEDULE_FIELDS = (
    "application_start",
    "application_end",
    "voting_start",
    "voting_end",
    "results_start",
)


def schedule_params(schedule: RoundSchedule | None) -> dict[str, str | None]:
    if schedule is None:
        return {name: None for name in SCHEDULE_FIELDS}
    return {name: getattr(schedule, name).isoformat() for name in SCHEDULE_FIELDS}


def voting_config_json(config: VotingConfig | None) -> str | None:
    if config is None:
        return None
    data = config.model_dump()
    data["allowed_voter_ids"] = sorted(config.allowed_voter_ids)
    return to_json(data)


class RoundRepository(BaseRepository[Round]):
    @property
    def node_label(self) -> str:
        return "Round"

    @property
    def model_class(self) -> type[Round]:
        return Round

    def _decode(self, record: dict[str, Any]) -> dict[str, Any]:
        data = {k: v for k, v in record.items() if k not in SCHEDULE_FIELDS}
        if record.get("application_start") is not None:
            data["schedule"] = {name: record[name] for name in SCHEDULE_FIELDS}
        data["voting_config"] = from_json(record.get("voting_config"))
        data["admin_user_ids"] = list(record.get("admin_user_ids") or [])
        return data

    async def get_by_slug(self, slug: str) -> Round | None:
        query = """
        MATCH (r:Round {slug: $slug})
        RETURN r {.*} AS entity
        """
        result = await self.client.execute_single(query, {"slug": slug})
        return self._to_model(result["entity"]) if result else None

    async def create(self, data: RoundCreate, created_by_user_id: str) -> Round:
        """Create a draft round; the creator becomes its first admin."""
        query = """
        CREATE (r:Round {
            id: $id,
            slug: $slug,
            name: $name,
            description: $description,
            chain_id: $chain_id,
            published: false,
            admin_user_ids: [$created_by_user_id],
            results_calculated: false,
            results_published: false,
            created_by_user_id: $created_by_user_id,
            created_at: $now
        })
        RETURN r {.*} AS entity
        """
        result = await self.client.execute_single(
            query,
            {
                "id": self._generate_id(),
                "slug": data.slug,
                "name": data.name,
                "description": data.description,
                "chain_id": data.chain_id,
                "created_by_user_id": created_by_user_id,
                "now": self._now().isoformat(),
            },
        )
        round_ = self._to_model(result["entity"] if result else None)
        if round_ is None:
            raise RuntimeError("Round creation returned no record")
        self.logger.info("round_created", round_id=round_.id, slug=round_.slug)
        return round_

    async def update(self, round_id: str, data: RoundUpdate) -> Round | None:
        """Apply the provided fields to a draft round."""
        set_clauses = []
        params: dict[str, Any] = {"id": round_id}
        provided = data.model_fields_set

        if "name" in provided and data.name is not None:
            set_clauses.append("r.name = $name")
            params["name"] = data.name
        if "description" in provided:
            set_clauses.append("r.description = $description")
            params["description"] = data.description
        if "schedule" in provided:
            for name, value in schedule_params(data.schedule).items():
                set_clauses.append(f"r.{name} = ${name}")
                params[name] = value
        if "voting_config" in provided:
            set_clauses.append("r.voting_config = $voting_config")
            params["voting_config"] = voting_config_json(data.voting_config)

        if not set_clauses:
            return await self.get_by_id(round_id)

        query = f"""
        MATCH (r:Round {{id: $id}})
        WHERE r.published = false
        SET {", ".join(set_clauses)}
        RETURN r {{.*}} AS entity
        """
        result = await self.client.execute_single(query, params)
        return self._to_model(result["entity"]) if result else None

    async def set_schedule(self, round_id: str, schedule: RoundSchedule) -> Round | None:
        params: dict[str, Any] = {"id": round_id, **schedule_params(schedule)}
        assignments = ", ".join(f"r.{name} = ${name}" for name in SCHEDULE_FIELDS)
        query = f"""
        MATCH (r:Round {{id: $id}})
        SET {assignments}
        RETURN r {{.*}} AS entity
        """
        result = await self.client.execute_single(query, params)
        return self._to_model(result["entity"]) if result else None

    async def set_voting_config(self, round_id: str, config: VotingConfig) -> Round | None:
        query = """
        MATCH (r:Round {id: $id})
        SET r.voting_config = $voting_config
        RETURN r {.*} AS entity
        """
        result = await self.client.execute_single(
            query, {"id": round_id, "voting_config": voting_config_json(config)}
        )
        return self._to_model(result["entity"]) if result else None

    async def mark_published(self, round_id: str) -> Round | None:
        """Publish a draft; returns None if the round was already published."""
        query = """
        MATCH (r:Round {id: $id})
        WHERE r.published = false
        SET r.published = true, r.published_at = $now
        RETURN r {.*} AS entity
        """
        result = await self.client.execute_single(
            query, {"id": round_id, "now": self._now().isoformat()}
        )
        return self._to_model(result["entity"]) if result else None

    async def set_results_calculated(self, round_id: str, tx: AsyncTransaction | None = None) -> None:
        query = """
        MATCH (r:Round {id: $id})
        SET r.results_calculated = true
        """
        await self._run(query, {"id": round_id}, tx)

    async def mark_results_published(self, round_id: str) -> Round | None:
        query = """
        MATCH (r:Round {id: $id})
        WHERE r.results_calculated = true
        SET r.results_published = true
        RETURN r {.*} AS entity
        """
        result = await self.client.execute_single(query, {"id": round_id})
        return self._to_model(result["entity"]) if result else None

    # =========================================================================
    # Chains
    # =========================================================================

    async def get_chain(self, chain_id: int) -> Chain | None:
        query = """
        MATCH (c:Chain {chain_id: $chain_id})
        RETURN c {.*} AS entity
        """
        result = await self.client.execute_single(query, {"chain_id": chain_id})
        if not result or not result.get("entity"):
            return None
        record = dict(result["entity"])
        record["attestation_setup"] = from_json(record.get("attestation_setup"))
        return Chain.model_validate(record)

    async def save_chain(self, chain: Chain) -> Chain:
        query = """
        MERGE (c:Chain {chain_id: $chain_id})
        SET c.name = $name, c.rpc_url = $rpc_url, c.attestation_setup = $attestation_setup
        RETURN c {.*} AS entity
        """
        setup = chain.attestation_setup.model_dump() if chain.attestation_setup else None
        await self.client.execute_single(
            query,
            {
                "chain_id": chain.chain_id,
                "name": chain.name,
                "rpc_url": chain.rpc_url,
                "attestation_setup": to_json(setup),
            },
        )
        return chain
