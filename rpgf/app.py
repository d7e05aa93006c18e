"""
RPGF Application Container

Builds the store, chain, cache and audit components and wires them into
the round orchestrators. The HTTP layer (and the maintenance scripts)
hold one container for their lifetime.
"""

import structlog

from rpgf.chains.ipfs import IpfsClient
from rpgf.chains.registry import ChainProviderRegistry
from rpgf.config import Settings, get_settings
from rpgf.database.client import Neo4jClient
from rpgf.database.schema import SchemaManager
from rpgf.monitoring.logging import configure_logging
from rpgf.repositories import (
    ApplicationRepository,
    AuditRepository,
    BallotRepository,
    FormRepository,
    ResultRepository,
    RoundRepository,
)
from rpgf.services.applications import ApplicationService
from rpgf.services.audit import AuditService
from rpgf.services.ballots import BallotService
from rpgf.services.caching import CachingService
from rpgf.services.forms import FormService
from rpgf.services.results import ResultsService
from rpgf.services.rounds import RoundService

logger = structlog.get_logger(__name__)


class RPGFApp:
    """
    RPGF application container.

    Holds references to all core components for dependency injection.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

        self.db_client: Neo4jClient | None = None
        self.cache: CachingService | None = None
        self.registry: ChainProviderRegistry | None = None
        self.content: IpfsClient | None = None

        self.rounds: RoundService | None = None
        self.forms: FormService | None = None
        self.applications: ApplicationService | None = None
        self.ballots: BallotService | None = None
        self.results: ResultsService | None = None

        self.is_ready: bool = False

    async def initialize(self, setup_schema: bool = False) -> None:
        """Connect to the store and cache and build the orchestrators."""
        configure_logging(
            level=self.settings.log_level,
            json_output=self.settings.log_json,
        )
        logger.info("rpgf_initializing", environment=self.settings.app_env)

        self.db_client = Neo4jClient.from_settings(self.settings)
        await self.db_client.connect()
        if setup_schema:
            await SchemaManager(self.db_client).setup_all()

        self.cache = CachingService()
        await self.cache.initialize()
        self.registry = ChainProviderRegistry()
        self.content = IpfsClient()

        round_repository = RoundRepository(self.db_client)
        application_repository = ApplicationRepository(self.db_client)
        form_repository = FormRepository(self.db_client)
        ballot_repository = BallotRepository(self.db_client)
        audit = AuditService(AuditRepository(self.db_client))

        self.rounds = RoundService(round_repository, audit, self.cache)
        self.forms = FormService(form_repository, self.rounds, audit, self.cache)
        self.applications = ApplicationService(
            client=self.db_client,
            applications=application_repository,
            forms=form_repository,
            rounds=self.rounds,
            registry=self.registry,
            content=self.content,
            audit=audit,
            cache=self.cache,
        )
        self.ballots = BallotService(
            ballots=ballot_repository,
            applications=application_repository,
            rounds=self.rounds,
            audit=audit,
        )
        self.results = ResultsService(
            client=self.db_client,
            results=ResultRepository(self.db_client),
            ballots=ballot_repository,
            applications=application_repository,
            round_repository=round_repository,
            rounds=self.rounds,
            audit=audit,
            cache=self.cache,
        )

        self.is_ready = True
        logger.info("rpgf_initialized")

    async def shutdown(self) -> None:
        """Close external connections."""
        logger.info("rpgf_shutting_down")
        self.is_ready = False

        if self.registry is not None:
            await self.registry.close()
        if self.content is not None:
            await self.content.close()
        if self.cache is not None:
            await self.cache.close()
        if self.db_client is not None:
            await self.db_client.close()

        logger.info("rpgf_shutdown_complete")
