"""
RPGF Core - Test Fixtures

Shared pytest fixtures for all test modules.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

# =============================================================================
# TEST ENVIRONMENT SETUP
# =============================================================================

if os.environ.get("APP_ENV", "") == "production":
    raise RuntimeError("Test fixtures cannot be loaded in production environment.")

os.environ["APP_ENV"] = "testing"

# TEST-ONLY database credentials
os.environ.setdefault("NEO4J_URI", "bolt://localhost:7687")
os.environ.setdefault("NEO4J_USER", "neo4j")
os.environ.setdefault("NEO4J_PASSWORD", "testpassword")
os.environ.setdefault("REDIS_URL", "")

from rpgf.models.base import Actor  # noqa: E402
from rpgf.models.form import (  # noqa: E402
    ApplicationCategory,
    ApplicationForm,
    MarkdownField,
    SelectField,
    TextField,
    UrlField,
)
from rpgf.models.round import (  # noqa: E402
    AttestationSetup,
    Chain,
    Round,
    RoundSchedule,
    VotingConfig,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

CONTRACT = "0x4200000000000000000000000000000000000021"
APPLICATION_SCHEMA = "0x" + "ab" * 32
SUBMITTER_WALLET = "0x1111111111111111111111111111111111111111"


# =============================================================================
# Mock Database Client
# =============================================================================


class RecordStream:
    """Async-iterable stand-in for a driver result."""

    def __init__(self, records=()):
        self._records = list(records)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for record in self._records:
            yield record


@pytest.fixture
def mock_transaction():
    """A stand-in transaction handed out by ``client.transaction()``."""
    tx = AsyncMock()
    tx.run = AsyncMock(return_value=RecordStream())
    return tx


@pytest.fixture
def tx_results(mock_transaction):
    """Queue the records each successive ``tx.run`` call yields."""

    def _queue(*batches):
        mock_transaction.run.side_effect = [RecordStream(batch) for batch in batches]

    return _queue


@pytest.fixture
def mock_db_client(mock_transaction):
    """Create a mock Neo4j client."""
    client = AsyncMock()
    client.execute = AsyncMock(return_value=[])
    client.execute_single = AsyncMock(return_value=None)
    client.connect = AsyncMock()
    client.close = AsyncMock()
    client._driver = MagicMock()

    @asynccontextmanager
    async def transaction():
        yield mock_transaction

    client.transaction = transaction
    return client


# =============================================================================
# Mock Infrastructure
# =============================================================================


@pytest.fixture
def mock_cache():
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock()
    cache.invalidate = AsyncMock()
    return cache


@pytest.fixture
def mock_audit():
    audit = AsyncMock()
    audit.record = AsyncMock(return_value=None)
    return audit


# =============================================================================
# Sample Data
# =============================================================================


def make_schedule(start: datetime = NOW, step: timedelta = timedelta(days=7)) -> RoundSchedule:
    """Schedule whose boundaries are ``start``, ``start + step``, ..."""
    return RoundSchedule(
        application_start=start,
        application_end=start + step,
        voting_start=start + 2 * step,
        voting_end=start + 3 * step,
        results_start=start + 4 * step,
    )


@pytest.fixture
def schedule() -> RoundSchedule:
    return make_schedule()


@pytest.fixture
def voting_config() -> VotingConfig:
    return VotingConfig(
        max_votes_per_voter=100,
        max_votes_per_project_per_voter=50,
        allowed_voter_ids={"voter-1", "voter-2"},
    )


@pytest.fixture
def sample_round(schedule, voting_config) -> Round:
    return Round(
        id="round-1",
        slug="rpgf-1",
        name="RetroPGF 1",
        chain_id=10,
        published=True,
        schedule=schedule,
        voting_config=voting_config,
        admin_user_ids=["admin-1"],
        created_by_user_id="admin-1",
    )


@pytest.fixture
def chain() -> Chain:
    return Chain(chain_id=10, name="Optimism", rpc_url="http://localhost:8545")


@pytest.fixture
def attested_chain() -> Chain:
    return Chain(
        chain_id=10,
        name="Optimism",
        rpc_url="http://localhost:8545",
        attestation_setup=AttestationSetup(
            contract_address=CONTRACT,
            application_schema_id=APPLICATION_SCHEMA,
        ),
    )


@pytest.fixture
def application_form() -> ApplicationForm:
    return ApplicationForm(
        id="form-1",
        round_id="round-1",
        name="Default form",
        fields=[
            MarkdownField(id="intro", content="Tell us about your project"),
            TextField(id="summary", slug="summary", label="Summary", required=True),
            UrlField(id="website", slug="website", label="Website"),
            SelectField(
                id="stage",
                slug="stage",
                label="Stage",
                options=[{"label": "Live", "value": "live"}, {"label": "Beta", "value": "beta"}],
            ),
            TextField(id="contact", slug="contact", label="Contact", private=True),
        ],
    )


@pytest.fixture
def category() -> ApplicationCategory:
    return ApplicationCategory(id="cat-1", round_id="round-1", name="Infra", form_id="form-1")


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="admin-1", wallet_address="0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa")


@pytest.fixture
def submitter() -> Actor:
    return Actor(user_id="user-1", wallet_address=SUBMITTER_WALLET)


@pytest.fixture
def voter() -> Actor:
    return Actor(user_id="voter-1", wallet_address="0x2222222222222222222222222222222222222222")


@pytest.fixture
def outsider() -> Actor:
    return Actor(user_id="user-9", wallet_address="0x9999999999999999999999999999999999999999")


@pytest.fixture
def now() -> datetime:
    """Fixed clock; the sample schedule's application window opens here."""
    return NOW


@pytest.fixture
def schedule_factory():
    return make_schedule
