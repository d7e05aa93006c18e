"""
Neo4j Schema Manager

Creates the constraints and indexes the round core relies on. Ballot and
result uniqueness per round live here as composite-key constraints, so
concurrent writers are arbitrated by the database rather than by reads.
"""

import structlog
from neo4j.exceptions import (
    ClientError,
    ConstraintError,
    DatabaseError,
    ServiceUnavailable,
)

from rpgf.database.client import Neo4jClient

logger = structlog.get_logger(__name__)


CONSTRAINTS: list[tuple[str, str]] = [
    (
        "round_id_unique",
        "CREATE CONSTRAINT round_id_unique IF NOT EXISTS "
        "FOR (r:Round) REQUIRE r.id IS UNIQUE"
    ),
    (
        "round_slug_unique",
        "CREATE CONSTRAINT round_slug_unique IF NOT EXISTS "
        "FOR (r:Round) REQUIRE r.slug IS UNIQUE"
    ),
    (
        "chain_id_unique",
        "CREATE CONSTRAINT chain_id_unique IF NOT EXISTS "
        "FOR (c:Chain) REQUIRE c.chain_id IS UNIQUE"
    ),
    (
        "application_id_unique",
        "CREATE CONSTRAINT application_id_unique IF NOT EXISTS "
        "FOR (a:Application) REQUIRE a.id IS UNIQUE"
    ),
    (
        "application_submitter_key_unique",
        "CREATE CONSTRAINT application_submitter_key_unique IF NOT EXISTS "
        "FOR (a:Application) REQUIRE a.submitter_key IS UNIQUE"
    ),
    (
        "applicationform_id_unique",
        "CREATE CONSTRAINT applicationform_id_unique IF NOT EXISTS "
        "FOR (f:ApplicationForm) REQUIRE f.id IS UNIQUE"
    ),
    (
        "applicationcategory_id_unique",
        "CREATE CONSTRAINT applicationcategory_id_unique IF NOT EXISTS "
        "FOR (c:ApplicationCategory) REQUIRE c.id IS UNIQUE"
    ),
    (
        "applicationversion_id_unique",
        "CREATE CONSTRAINT applicationversion_id_unique IF NOT EXISTS "
        "FOR (v:ApplicationVersion) REQUIRE v.id IS UNIQUE"
    ),
    (
        "ballot_key_unique",
        "CREATE CONSTRAINT ballot_key_unique IF NOT EXISTS "
        "FOR (b:Ballot) REQUIRE b.ballot_key IS UNIQUE"
    ),
    (
        "result_key_unique",
        "CREATE CONSTRAINT result_key_unique IF NOT EXISTS "
        "FOR (r:Result) REQUIRE r.result_key IS UNIQUE"
    ),
    (
        "auditlog_id_unique",
        "CREATE CONSTRAINT auditlog_id_unique IF NOT EXISTS "
        "FOR (a:AuditLog) REQUIRE a.id IS UNIQUE"
    ),
]

INDEXES: list[tuple[str, str]] = [
    (
        "application_round_idx",
        "CREATE INDEX application_round_idx IF NOT EXISTS "
        "FOR (a:Application) ON (a.round_id)"
    ),
    (
        "applicationform_round_idx",
        "CREATE INDEX applicationform_round_idx IF NOT EXISTS "
        "FOR (f:ApplicationForm) ON (f.round_id)"
    ),
    (
        "applicationcategory_round_idx",
        "CREATE INDEX applicationcategory_round_idx IF NOT EXISTS "
        "FOR (c:ApplicationCategory) ON (c.round_id)"
    ),
    (
        "ballot_round_idx",
        "CREATE INDEX ballot_round_idx IF NOT EXISTS "
        "FOR (b:Ballot) ON (b.round_id)"
    ),
    (
        "result_round_idx",
        "CREATE INDEX result_round_idx IF NOT EXISTS "
        "FOR (r:Result) ON (r.round_id)"
    ),
    (
        "applicationversion_pending_idx",
        "CREATE INDEX applicationversion_pending_idx IF NOT EXISTS "
        "FOR (v:ApplicationVersion) ON (v.deferred_tx_hash)"
    ),
    (
        "auditlog_round_idx",
        "CREATE INDEX auditlog_round_idx IF NOT EXISTS "
        "FOR (a:AuditLog) ON (a.round_id)"
    ),
]


class SchemaManager:
    """
    Manages Neo4j schema setup.

    Schema statements cannot share a transaction with data writes, so each
    runs on its own; all use IF NOT EXISTS and setup_all() can be re-run.
    """

    def __init__(self, client: Neo4jClient):
        self.client = client

    async def setup_all(self) -> dict[str, bool]:
        results = await self._apply(CONSTRAINTS + INDEXES)
        logger.info(
            "schema_setup_complete",
            total=len(results),
            successful=sum(1 for v in results.values() if v),
            failed=sum(1 for v in results.values() if not v),
        )
        return results

    async def _apply(self, statements: list[tuple[str, str]]) -> dict[str, bool]:
        results: dict[str, bool] = {}
        for name, query in statements:
            try:
                await self.client.execute(query)
                results[name] = True
                logger.debug("schema_element_created", name=name)
            except ConstraintError as e:
                # existing data violates the constraint
                results[name] = False
                logger.warning("schema_constraint_conflict", name=name, error=str(e))
            except (ClientError, DatabaseError) as e:
                results[name] = False
                logger.error("schema_element_failed", name=name, error=str(e))
            except ServiceUnavailable as e:
                logger.critical("schema_database_unavailable", name=name, error=str(e))
                raise
        return results
