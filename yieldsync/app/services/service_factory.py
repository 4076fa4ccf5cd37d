"""
Service assembly.

Builds the stores, providers and engines explicitly from Settings. Nothing is
cached at module level: callers (CLI, HTTP layer, tests) own the returned
objects and the engine behind them.
"""
from datetime import timedelta
from typing import NamedTuple, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yieldsync.app.config import Settings, get_settings
from yieldsync.app.db.models import AssetKind
from yieldsync.app.db.session import get_async_engine, get_session_factory
from yieldsync.app.logging_config import get_logger
from yieldsync.app.services.asset_reconciliation import AssetReconciliationService
from yieldsync.app.services.asset_search import AssetSearchService
from yieldsync.app.services.asset_source import AssetSourceProvider
from yieldsync.app.services.asset_store import AssetStore
from yieldsync.app.services.provider_registry import AssetProviderRegistry
from yieldsync.app.services.query_log_store import QueryLogStore

logger = get_logger(__name__)


class AssetServices(NamedTuple):
    store: AssetStore
    query_log: QueryLogStore
    reconciliation: AssetReconciliationService
    search: AssetSearchService


def provider_kwargs(code: str, settings: Settings) -> dict:
    """Constructor arguments for the built-in providers, taken from settings."""
    if code == "fmp":
        return {
            "api_key": settings.FMP_API_KEY,
            "base_url": settings.FMP_BASE_URL,
            "openfigi_api_key": settings.OPENFIGI_API_KEY,
            "openfigi_base_url": settings.OPENFIGI_BASE_URL,
            "timeout": settings.PROVIDER_TIMEOUT_SECONDS,
            }
    if code == "coingecko":
        return {
            "api_key": settings.COINGECKO_API_KEY,
            "base_url": settings.COINGECKO_BASE_URL,
            "timeout": settings.PROVIDER_TIMEOUT_SECONDS,
            }
    return {}


def configured_provider_codes(settings: Settings) -> dict[AssetKind, str]:
    """Provider code selected in settings for each asset kind."""
    return {
        AssetKind.EQUITY: settings.EQUITY_PROVIDER,
        AssetKind.DIGITAL_ASSET: settings.DIGITAL_ASSET_PROVIDER,
        }


def build_providers(settings: Optional[Settings] = None) -> dict[AssetKind, AssetSourceProvider]:
    """
    Instantiate the configured provider for each asset kind via AssetProviderRegistry.

    Raises:
        ValueError: a configured provider code is not registered, or serves another kind
    """
    settings = settings or get_settings()
    configured = configured_provider_codes(settings)
    providers: dict[AssetKind, AssetSourceProvider] = {}
    for kind in AssetKind:
        code = configured[kind]
        providers[kind] = AssetProviderRegistry.provider_for_kind(kind, code, **provider_kwargs(code, settings))
        logger.debug("Provider selected", kind=kind.value, provider=code)
    return providers


def build_asset_services(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    providers: Optional[dict[AssetKind, AssetSourceProvider]] = None,
    ) -> AssetServices:
    """
    Wire stores, providers and engines.

    Args:
        settings: Settings (default: get_settings(), test-mode aware)
        session_factory: Session factory (default: new engine on settings.DATABASE_URL)
        providers: Providers per kind (default: from settings via the registry)

    Returns:
        AssetServices tuple
    """
    settings = settings or get_settings()
    if session_factory is None:
        session_factory = get_session_factory(get_async_engine(settings.DATABASE_URL))
    if providers is None:
        providers = build_providers(settings)

    timeout = settings.PROVIDER_TIMEOUT_SECONDS
    store = AssetStore(session_factory)
    query_log = QueryLogStore(session_factory)
    reconciliation = AssetReconciliationService(
        store,
        providers,
        refresh_window=timedelta(minutes=settings.ASSET_REFRESH_WINDOW_MINUTES),
        provider_timeout=timeout,
        )
    search = AssetSearchService(
        store,
        query_log,
        providers,
        query_window=timedelta(minutes=settings.QUERY_REFRESH_WINDOW_MINUTES),
        result_cap=settings.SEARCH_RESULT_CAP,
        provider_timeout=timeout,
        )
    return AssetServices(store=store, query_log=query_log, reconciliation=reconciliation, search=search)
