"""
Asset Search Service.

Throttled external search merged with local prefix/substring matches.

Flow for a search:
1. normalize the query (symbol style for equities, free text for digital assets)
2. local matches (capped)
3. if the query log says the query is stale, ask the provider, store the
   results not yet known by stable id, stamp the query log, re-read local matches
4. return local matches + raw provider results

A provider failure only cancels the external augmentation: local matches are
still returned, the error is reported in the response, and the query log is
left alone so the next search retries.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterable

from yieldsync.app.db.models import AssetKind
from yieldsync.app.logging_config import get_logger
from yieldsync.app.schemas.assets import FAProfile
from yieldsync.app.schemas.reconcile import FASearchResponse
from yieldsync.app.services.asset_source import AssetSourceProvider, call_provider
from yieldsync.app.services.asset_store import AssetStore
from yieldsync.app.services.errors import AlreadyExistsError, ExternalRequestError
from yieldsync.app.services.query_log_store import QueryLogStore
from yieldsync.app.services.staleness import QUERY_REFRESH_WINDOW, query_needs_external_lookup
from yieldsync.app.utils.datetime_utils import utcnow
from yieldsync.app.utils.query_normalization import normalize_query

logger = get_logger(__name__)

DEFAULT_RESULT_CAP = 10


def filter_supported_venues(profiles: Iterable[FAProfile], venues: Iterable[str]) -> list[FAProfile]:
    """
    Keep profiles listed on an allowed venue (case-insensitive).

    Collaborator helper: the engine returns external results unfiltered.

    Example:
        >>> filter_supported_venues(results, ["nasdaq", "nyse", "amex"])
    """
    allowed = {v.lower() for v in venues}
    return [p for p in profiles if p.venue and p.venue.lower() in allowed]


class AssetSearchService:
    """
    Search service for local and external asset discovery.

    Features:
    - Query normalization per asset kind
    - Per-query throttle of external lookups (QueryLogStore)
    - Provider errors degrade to local-only results
    - Hard cap on local matches
    """

    def __init__(
        self,
        store: AssetStore,
        query_log: QueryLogStore,
        providers: dict[AssetKind, AssetSourceProvider],
        query_window: timedelta = QUERY_REFRESH_WINDOW,
        result_cap: int = DEFAULT_RESULT_CAP,
        provider_timeout: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
        ):
        self._store = store
        self._query_log = query_log
        self._providers = dict(providers)
        self._query_window = query_window
        self._result_cap = result_cap
        self._provider_timeout = provider_timeout
        self._clock = clock

    async def _local_matches(self, query: str, kind: AssetKind) -> list[FAProfile]:
        records = await self._store.search_by_symbol(
            query,
            kind,
            limit=self._result_cap,
            include_name=kind == AssetKind.DIGITAL_ASSET,
            )
        return [r.to_profile() for r in records]

    async def search(
        self,
        raw_query: str,
        kind: AssetKind = AssetKind.EQUITY,
        allow_external: bool = True,
        ) -> FASearchResponse:
        """
        Search assets by text.

        Args:
            raw_query: User input (normalized here)
            kind: Asset kind to search
            allow_external: Allow the provider lookup (still subject to throttle)

        Returns:
            FASearchResponse; external_results is empty when the lookup was
            throttled or not allowed

        Raises:
            InvalidQueryError: query has no usable characters
            StoreError: persistence failure
        """
        query = normalize_query(raw_query, kind)
        matches = await self._local_matches(query, kind)

        if not allow_external:
            return FASearchResponse(query=query, matches=matches)

        now = self._clock()
        last_requested_at = await self._query_log.get(kind, query)
        if not query_needs_external_lookup(last_requested_at, now, self._query_window):
            logger.debug("External search throttled", query=query, kind=kind.value, last_requested_at=str(last_requested_at))
            return FASearchResponse(query=query, matches=matches)

        provider = self._providers.get(kind)
        if provider is None:
            logger.warning("No provider configured, local results only", kind=kind.value)
            return FASearchResponse(
                query=query,
                matches=matches,
                external_error=f"No provider configured for {kind.value}",
                )

        try:
            external_results = await call_provider(provider, "search", query, self._provider_timeout)
        except ExternalRequestError as e:
            logger.warning(f"External search failed, returning local results: {e.message}", query=query)
            return FASearchResponse(
                query=query,
                matches=matches,
                external_lookup_performed=True,
                external_error=e.message,
                )

        created = await self._store_new_results(external_results, kind)
        await self._query_log.upsert(kind, query, now)
        logger.info(
            f"External search returned {len(external_results)} results, {created} new",
            query=query, kind=kind.value, provider=provider.provider_code
            )

        return FASearchResponse(
            query=query,
            matches=await self._local_matches(query, kind),
            external_results=external_results,
            external_lookup_performed=True,
            )

    async def _store_new_results(self, profiles: list[FAProfile], kind: AssetKind) -> int:
        """
        Create records for results not yet stored (by stable id).

        Results whose live symbol is already held locally (or repeated earlier
        in the same batch) are not stored: symbol ownership changes go through
        the reconciliation engine, never through search.
        """
        created = 0
        claimed: set[str] = set()
        for profile in profiles:
            if profile.kind != kind:
                continue
            if await self._store.get(profile.stable_id) is not None:
                continue
            if profile.has_live_symbol:
                symbol_key = profile.symbol.upper()
                if symbol_key in claimed or await self._store.get_by_symbol(profile.symbol, kind) is not None:
                    logger.info(
                        "Search result not stored, symbol already held",
                        stable_id=profile.stable_id, symbol=profile.symbol
                        )
                    continue
                claimed.add(symbol_key)
            try:
                # Not reconciled by id yet: the first profile request refreshes it
                await self._store.create(profile.model_copy(update={"last_refreshed_at": None}))
                created += 1
            except AlreadyExistsError:
                # Created concurrently by another request
                continue
        return created
