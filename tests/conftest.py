"""Test configuration and common fixtures."""

from datetime import date

import pytest
import pytest_asyncio

from passport_forum.domain.models.disclosure import DisclosurePreferences
from passport_forum.domain.models.entity import CommentDraft, PostDraft
from passport_forum.domain.services.publication_service import PublicationService, PublicationSettings
from passport_forum.infrastructure.persistence.sql_rewards import SQLRewardLedger
from passport_forum.infrastructure.persistence.sql_store import SQLEntityStore
from passport_forum.infrastructure.verifier.mock_verifier import MockIdentityVerifier

TODAY = date(2025, 6, 15)


@pytest.fixture
def today() -> date:
    """Fixed reference date for age computations."""
    return TODAY


@pytest_asyncio.fixture
async def store(tmp_path) -> SQLEntityStore:
    """Provide a store backed by a fresh SQLite file."""
    entity_store = SQLEntityStore(database_url=f"sqlite+aiosqlite:///{tmp_path / 'forum.db'}")
    await entity_store.initialize()
    yield entity_store
    await entity_store.shutdown()


@pytest.fixture
def reward_ledger(store: SQLEntityStore) -> SQLRewardLedger:
    """Provide a reward ledger sharing the store's engine."""
    return SQLRewardLedger(store.engine)


@pytest_asyncio.fixture
async def mock_verifier(today: date) -> MockIdentityVerifier:
    """Provide an initialized mock verifier."""
    verifier = MockIdentityVerifier(today=today)
    await verifier.initialize()
    yield verifier
    await verifier.shutdown()


@pytest.fixture
def service(store, mock_verifier, reward_ledger, today) -> PublicationService:
    """Provide the publication pipeline wired to real adapters."""
    return PublicationService(
        store=store,
        verifier=mock_verifier,
        reward_ledger=reward_ledger,
        settings=PublicationSettings(mock_passport=True),
        today=lambda: today,
    )


@pytest.fixture
def post_draft() -> PostDraft:
    """A post disclosing nationality and date of birth."""
    return PostDraft(
        title="Hello",
        content="First post",
        wallet_address="0xAuthor",
        disclosures=DisclosurePreferences(nationality=True, date_of_birth=True),
    )


@pytest.fixture
def comment_draft() -> CommentDraft:
    """A comment disclosing nothing."""
    return CommentDraft(content="Nice post", wallet_address="0xCommenter")
