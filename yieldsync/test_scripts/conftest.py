"""Pytest configuration and fixtures."""
import pytest
import pytest_asyncio

from yieldsync.app.config import set_test_mode
from yieldsync.app.db.models import AssetKind
from yieldsync.app.db.session import create_schema, get_async_engine, get_session_factory
from yieldsync.app.services.asset_reconciliation import AssetReconciliationService
from yieldsync.app.services.asset_search import AssetSearchService
from yieldsync.app.services.asset_source_providers.mockprov import MockProvider
from yieldsync.app.services.asset_store import AssetStore
from yieldsync.app.services.query_log_store import QueryLogStore
from yieldsync.test_scripts.test_utils import FakeClock

# Never let a test pick up the development database
set_test_mode(True)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database file per test, schema created from SQLModel metadata."""
    engine = get_async_engine(f"sqlite:///{tmp_path / 'test_assets.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_session_factory(engine)


@pytest.fixture
def store(session_factory) -> AssetStore:
    return AssetStore(session_factory)


@pytest.fixture
def query_log(session_factory) -> QueryLogStore:
    return QueryLogStore(session_factory)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def equity_provider() -> MockProvider:
    return MockProvider(AssetKind.EQUITY)


@pytest.fixture
def crypto_provider() -> MockProvider:
    return MockProvider(AssetKind.DIGITAL_ASSET)


@pytest.fixture
def providers(equity_provider, crypto_provider) -> dict:
    return {AssetKind.EQUITY: equity_provider, AssetKind.DIGITAL_ASSET: crypto_provider}


@pytest.fixture
def reconciliation(store, providers, clock) -> AssetReconciliationService:
    return AssetReconciliationService(store, providers, provider_timeout=1.0, clock=clock)


@pytest.fixture
def search_service(store, query_log, providers, clock) -> AssetSearchService:
    return AssetSearchService(store, query_log, providers, provider_timeout=1.0, clock=clock)
