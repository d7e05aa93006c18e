"""
Neo4j Async Client

One driver per process, owned by ``RPGFApp`` or a maintenance script.
Reads go through ``execute``/``execute_single``, which retry when the
cluster reports a transient failure; multi-statement writes (application
versions, ballot replacement) go through ``transaction``, which is never
retried because its body is not idempotent.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncResult, AsyncSession, AsyncTransaction
from neo4j.exceptions import ServiceUnavailable, SessionExpired, TransientError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from rpgf.config import Settings, settings as default_settings

logger = structlog.get_logger(__name__)

RETRYABLE_EXCEPTIONS = (ServiceUnavailable, SessionExpired, TransientError)

retry_transient = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
    reraise=True,
)


async def collect(result: AsyncResult) -> list[dict[str, Any]]:
    """Drain a driver result into plain dicts."""
    return [dict(record) async for record in result]


class Neo4jClient:
    """Async Neo4j access for the round, application and ballot stores."""

    def __init__(
        self,
        uri: str | None = None,
        user: str | None = None,
        password: str | None = None,
        database: str | None = None,
        config: Settings | None = None,
    ):
        self.config = config or default_settings
        self.uri = uri or self.config.neo4j_uri
        self.database = database or self.config.neo4j_database
        self._auth = (user or self.config.neo4j_user, password or self.config.neo4j_password)
        self._driver: AsyncDriver | None = None

    @classmethod
    def from_settings(cls, config: Settings) -> "Neo4jClient":
        return cls(config=config)

    @property
    def is_connected(self) -> bool:
        return self._driver is not None

    async def connect(self) -> None:
        """Open the driver and check the server answers; a no-op when connected."""
        if self._driver is not None:
            return

        driver = AsyncGraphDatabase.driver(
            self.uri,
            auth=self._auth,
            max_connection_lifetime=self.config.neo4j_max_connection_lifetime,
            max_connection_pool_size=self.config.neo4j_max_connection_pool_size,
            connection_timeout=self.config.neo4j_connection_timeout,
        )
        try:
            await driver.verify_connectivity()
        except Exception as e:
            logger.error("neo4j_unreachable", uri=self.uri, database=self.database, error=str(e))
            await driver.close()
            raise

        self._driver = driver
        logger.info("neo4j_connected", uri=self.uri, database=self.database)

    async def close(self) -> None:
        if self._driver is None:
            return
        driver, self._driver = self._driver, None
        await driver.close()
        logger.info("neo4j_closed", database=self.database)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._driver is None:
            raise RuntimeError("Neo4j client not connected. Call connect() first.")
        async with self._driver.session(database=self.database) as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncTransaction, None]:
        """
        Explicit transaction for writes that span several statements.

        Commits when the block exits normally. Any exception, including a
        domain error raised between statements, rolls the whole unit back
        and propagates.
        """
        async with self.session() as session:
            tx = await session.begin_transaction()
            try:
                yield tx
            except BaseException as e:
                if not tx.closed():
                    await tx.rollback()
                logger.debug("neo4j_transaction_rolled_back", error_type=type(e).__name__)
                raise
            await tx.commit()

    @retry_transient
    async def execute(self, query: str, parameters: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        async with self.session() as session:
            return await collect(await session.run(query, parameters or {}))

    @retry_transient
    async def execute_single(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """First record of the query as a dict, or None when it matched nothing."""
        async with self.session() as session:
            result = await session.run(query, parameters or {})
            record = await result.single()
        return dict(record) if record is not None else None
