"""
Application Repository

Applications and their append-only versions. One application per
submitter and round, enforced by the ``submitter_key`` uniqueness
constraint.

Graph layout:
    (:Application)-[:HAS_VERSION]->(:ApplicationVersion)
Answers are stored on the version as a JSON list.
"""

from typing import Any

from neo4j import AsyncTransaction
from neo4j.exceptions import ConstraintError

from rpgf.errors import ApplicationAlreadySubmittedError
from rpgf.models.application import (
    Application,
    ApplicationState,
    ApplicationSubmission,
    ApplicationVersion,
)
from rpgf.repositories.base import BaseRepository, from_json, to_json

APPLICATION_WITH_VERSIONS = """
OPTIONAL MATCH (a)-[:HAS_VERSION]->(v:ApplicationVersion)
WITH a, v ORDER BY v.created_at ASC, v.sequence ASC
WITH a, [x IN collect(v) WHERE x IS NOT NULL | x {.*}] AS versions
RETURN a {.*, versions: versions} AS entity
"""


class ApplicationRepository(BaseRepository[Application]):
    @property
    def node_label(self) -> str:
        return "Application"

    @property
    def model_class(self) -> type[Application]:
        return Application

    def _decode(self, record: dict[str, Any]) -> dict[str, Any]:
        data = dict(record)
        data["versions"] = [self._decode_version(v) for v in record.get("versions") or []]
        return data

    @staticmethod
    def _decode_version(record: dict[str, Any]) -> dict[str, Any]:
        data = dict(record)
        data["answers"] = from_json(record.get("answers"), default=[])
        return data

    def _version_params(self, application_id: str, submission: ApplicationSubmission, attestation_id: str | None) -> dict[str, Any]:
        return {
            "version_id": self._generate_id(),
            "application_id": application_id,
            "project_name": submission.project_name,
            "account_id": submission.account_id,
            "category_id": submission.category_id,
            "answers": to_json([a.model_dump() for a in submission.answers]),
            "attestation_id": attestation_id,
            "deferred_tx_hash": submission.deferred_tx_hash,
            "now": self._now().isoformat(),
        }

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_by_id(self, entity_id: str) -> Application | None:
        query = "MATCH (a:Application {id: $id})" + APPLICATION_WITH_VERSIONS
        result = await self.client.execute_single(query, {"id": entity_id})
        return self._to_model(result["entity"]) if result else None

    async def get_by_submitter(self, round_id: str, submitter_user_id: str) -> Application | None:
        query = (
            "MATCH (a:Application {round_id: $round_id, submitter_user_id: $submitter_user_id})"
            + APPLICATION_WITH_VERSIONS
        )
        result = await self.client.execute_single(
            query, {"round_id": round_id, "submitter_user_id": submitter_user_id}
        )
        return self._to_model(result["entity"]) if result else None

    async def list_by_round(
        self,
        round_id: str,
        state: ApplicationState | None = None,
    ) -> list[Application]:
        query = (
            "MATCH (a:Application {round_id: $round_id}) "
            "WHERE $state IS NULL OR a.state = $state"
            + APPLICATION_WITH_VERSIONS
            + " ORDER BY entity.created_at ASC"
        )
        results = await self.client.execute(
            query,
            {"round_id": round_id, "state": ApplicationState(state).value if state else None},
        )
        return self._to_models([r["entity"] for r in results if r.get("entity")])

    async def get_approved_ids(self, round_id: str, tx: AsyncTransaction | None = None) -> list[str]:
        query = """
        MATCH (a:Application {round_id: $round_id, state: 'approved'})
        RETURN a.id AS id
        ORDER BY a.id
        """
        records = await self._run(query, {"round_id": round_id}, tx)
        return [r["id"] for r in records]

    async def get_account_grouping(self, round_id: str) -> dict[str, str]:
        """application id -> account id of the application's current version."""
        query = """
        MATCH (a:Application {round_id: $round_id})-[:HAS_VERSION]->(v:ApplicationVersion)
        WITH a, v ORDER BY v.created_at DESC, v.sequence DESC
        WITH a, head(collect(v)) AS current
        RETURN a.id AS application_id, current.account_id AS account_id
        """
        records = await self.client.execute(query, {"round_id": round_id})
        return {r["application_id"]: r["account_id"] for r in records}

    async def list_pending_attestations(self, round_id: str | None = None) -> list[Application]:
        """Applications whose current version still waits on a deferred attestation."""
        query = """
        MATCH (a:Application)-[:HAS_VERSION]->(v:ApplicationVersion)
        WHERE ($round_id IS NULL OR a.round_id = $round_id)
          AND v.attestation_id IS NULL AND v.deferred_tx_hash IS NOT NULL
        WITH DISTINCT a
        """ + APPLICATION_WITH_VERSIONS
        results = await self.client.execute(query, {"round_id": round_id})
        applications = self._to_models([r["entity"] for r in results if r.get("entity")])
        return [
            app for app in applications
            if app.current_version is not None and app.current_version.attestation_pending
        ]

    # =========================================================================
    # Writes
    # =========================================================================

    async def create(
        self,
        round_id: str,
        submitter_user_id: str,
        submitter_wallet_address: str,
        submission: ApplicationSubmission,
        attestation_id: str | None,
        tx: AsyncTransaction,
    ) -> Application:
        """
        Insert an application with its first version.

        Raises:
            ApplicationAlreadySubmittedError: If the submitter already applied
        """
        application_id = self._generate_id()
        params = self._version_params(application_id, submission, attestation_id)
        params.update(
            {
                "round_id": round_id,
                "submitter_user_id": submitter_user_id,
                "submitter_wallet_address": submitter_wallet_address.lower(),
                "submitter_key": f"{round_id}:{submitter_user_id}",
            }
        )
        query = """
        CREATE (a:Application {
            id: $application_id,
            round_id: $round_id,
            submitter_user_id: $submitter_user_id,
            submitter_wallet_address: $submitter_wallet_address,
            submitter_key: $submitter_key,
            state: 'pending',
            created_at: $now
        })
        CREATE (a)-[:HAS_VERSION]->(v:ApplicationVersion {
            id: $version_id,
            application_id: $application_id,
            sequence: 0,
            project_name: $project_name,
            account_id: $account_id,
            category_id: $category_id,
            answers: $answers,
            attestation_id: $attestation_id,
            deferred_tx_hash: $deferred_tx_hash,
            created_at: $now
        })
        WITH a
        """ + APPLICATION_WITH_VERSIONS
        try:
            result = await self._run_single(query, params, tx)
        except ConstraintError as e:
            self.logger.info(
                "application_already_submitted",
                round_id=round_id,
                submitter_user_id=submitter_user_id,
            )
            raise ApplicationAlreadySubmittedError(
                "You already submitted an application to this round",
                round_id=round_id,
            ) from e

        application = self._to_model(result["entity"] if result else None)
        if application is None:
            raise RuntimeError("Application creation returned no record")
        return application

    async def add_version(
        self,
        application_id: str,
        submission: ApplicationSubmission,
        attestation_id: str | None,
        tx: AsyncTransaction,
    ) -> Application | None:
        """Append a version and send the application back to review."""
        params = self._version_params(application_id, submission, attestation_id)
        query = """
        MATCH (a:Application {id: $application_id})
        OPTIONAL MATCH (a)-[:HAS_VERSION]->(prev:ApplicationVersion)
        WITH a, count(prev) AS sequence
        SET a.state = 'pending'
        CREATE (a)-[:HAS_VERSION]->(v:ApplicationVersion {
            id: $version_id,
            application_id: $application_id,
            sequence: sequence,
            project_name: $project_name,
            account_id: $account_id,
            category_id: $category_id,
            answers: $answers,
            attestation_id: $attestation_id,
            deferred_tx_hash: $deferred_tx_hash,
            created_at: $now
        })
        WITH a
        """ + APPLICATION_WITH_VERSIONS
        result = await self._run_single(query, params, tx)
        return self._to_model(result["entity"]) if result else None

    async def set_states(
        self,
        round_id: str,
        decisions: dict[str, ApplicationState],
        tx: AsyncTransaction,
    ) -> int:
        """Apply review decisions to pending applications; returns how many changed."""
        query = """
        UNWIND $decisions AS d
        MATCH (a:Application {id: d.id, round_id: $round_id})
        WHERE a.state = 'pending'
        SET a.state = d.state, a.reviewed_at = $now
        RETURN count(a) AS updated
        """
        result = await self._run_single(
            query,
            {
                "round_id": round_id,
                "decisions": [
                    {"id": app_id, "state": ApplicationState(state).value}
                    for app_id, state in decisions.items()
                ],
                "now": self._now().isoformat(),
            },
            tx,
        )
        return result["updated"] if result else 0

    async def resolve_attestation(
        self,
        version_id: str,
        attestation_id: str,
        tx: AsyncTransaction | None = None,
    ) -> bool:
        """Promote a deferred proof; a version is promoted at most once."""
        query = """
        MATCH (v:ApplicationVersion {id: $version_id})
        WHERE v.attestation_id IS NULL AND v.deferred_tx_hash IS NOT NULL
        SET v.attestation_id = $attestation_id
        RETURN count(v) AS updated
        """
        result = await self._run_single(
            query, {"version_id": version_id, "attestation_id": attestation_id}, tx
        )
        return bool(result and result["updated"])
