"""
Asset reconciliation engine.

Keeps cached asset records in line with their authoritative external source:
- process_new_asset(): onboard an identifier seen for the first time
- process_new_asset_by_symbol(): same, starting from a trading symbol
- refresh_asset(): re-fetch a stale record and apply symbol drift
- resolve_profile(): profile-by-id flow (local lookup, onboarding or refresh)

Symbol churn
============
Symbols are not identity: exchanges and platforms reassign them. When the
external source says record X now trades under a symbol that record Y holds
locally, the engine repairs the store in this order:

1. demote Y to the unknown sentinel ("0") - committed before anything else
2. promote X to the symbol (the write is refused if someone else holds it)
3. re-identify Y: lookup by stable id, then a name search matched on stable id;
   Y's new symbol may itself be held by a third record, which cascades through
   the same steps (bounded depth)

A displaced record that cannot be re-identified stays on the sentinel. That is
reported as a partially resolved collision (flag + warning), not as an error:
the stale symbol was freed, which is the forward progress that matters.

Every step is its own store transaction, so a failure at any point leaves the
previously committed steps valid. The engine holds no state of its own: the
per-identifier locks live in the AssetStore, providers are injected.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional

from yieldsync.app.db.models import AssetKind, SYMBOL_UNKNOWN
from yieldsync.app.logging_config import get_logger, reconciliation_context
from yieldsync.app.schemas.assets import FAAssetRecord, FAProfile
from yieldsync.app.schemas.reconcile import FADisplacedRecord, FAProfileResponse, FAReconcileResult
from yieldsync.app.services.asset_source import AssetSourceProvider, call_provider
from yieldsync.app.services.asset_store import AssetStore
from yieldsync.app.services.errors import (
    AlreadyExistsError,
    ConflictingWriterError,
    ExternallyDeindexedError,
    ExternalRequestError,
    InvalidQueryError,
    NotFoundError,
    NothingFoundExternallyError,
    )
from yieldsync.app.services.staleness import ASSET_REFRESH_WINDOW, record_needs_refresh
from yieldsync.app.utils.datetime_utils import utcnow
from yieldsync.app.utils.query_normalization import infer_asset_kind, normalize_stable_id

logger = get_logger(__name__)

# How many displaced-owner hops a single call follows before giving up
MAX_COLLISION_DEPTH = 3


class _CollisionReport:
    """Accumulates displaced records and soft warnings during one engine call."""

    def __init__(self):
        self.displaced: list[FADisplacedRecord] = []
        self.warnings: list[str] = []
        # Set when the record being processed was itself pushed back onto the sentinel
        self.claimant_displaced = False

    def build(self, record: FAAssetRecord, previous_symbol: Optional[str]) -> FAReconcileResult:
        unresolved = self.claimant_displaced or any(not d.resolved for d in self.displaced)
        return FAReconcileResult(
            record=record,
            symbol_changed=previous_symbol is not None and previous_symbol != record.symbol,
            previous_symbol=previous_symbol,
            collision_found=bool(self.displaced),
            collision_resolved=bool(self.displaced) and not unresolved,
            collision_partially_resolved=unresolved,
            displaced=self.displaced,
            warnings=self.warnings,
            )


class AssetReconciliationService:
    """Onboarding and staleness-driven refresh of asset records."""

    def __init__(
        self,
        store: AssetStore,
        providers: dict[AssetKind, AssetSourceProvider],
        refresh_window: timedelta = ASSET_REFRESH_WINDOW,
        provider_timeout: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
        ):
        self._store = store
        self._providers = dict(providers)
        self._refresh_window = refresh_window
        self._provider_timeout = provider_timeout
        self._clock = clock

    # ------------------------------------------------------------------
    # Provider access
    # ------------------------------------------------------------------

    def _provider(self, kind: AssetKind) -> AssetSourceProvider:
        provider = self._providers.get(kind)
        if provider is None:
            raise ExternalRequestError(f"No provider configured for {kind.value}", details={"kind": kind.value})
        return provider

    async def _profile_by_stable_id(self, kind: AssetKind, stable_id: str) -> Optional[FAProfile]:
        provider = self._provider(kind)
        profile = await call_provider(provider, "profile_by_stable_id", stable_id, self._provider_timeout)
        if profile is None:
            return None
        if profile.stable_id != stable_id or profile.kind != kind:
            # The answer is about the identifier we asked for; identity fields are ours
            logger.debug(
                "Provider profile identity normalized",
                requested=stable_id, returned=profile.stable_id, provider=provider.provider_code
                )
            profile = profile.model_copy(update={"stable_id": stable_id, "kind": kind})
        return profile

    async def _search(self, kind: AssetKind, query: str) -> list[FAProfile]:
        return await call_provider(self._provider(kind), "search", query, self._provider_timeout)

    @asynccontextmanager
    async def _exclusive(self, stable_id: str, operation: str) -> AsyncIterator[None]:
        """Hold the identifier lock, with stable_id and operation bound to every log event."""
        with reconciliation_context(stable_id=stable_id, operation=operation):
            async with self._store.identifier_lock(stable_id):
                yield

    # ------------------------------------------------------------------
    # Staleness
    # ------------------------------------------------------------------

    def needs_refresh(self, record: FAAssetRecord) -> bool:
        """Whether record's last reconciliation is older than the refresh window."""
        return record_needs_refresh(record.last_refreshed_at, self._clock(), self._refresh_window)

    # ------------------------------------------------------------------
    # Onboarding
    # ------------------------------------------------------------------

    async def process_new_asset(self, stable_id: str, kind: Optional[AssetKind] = None) -> FAReconcileResult:
        """
        Onboard an identifier that is not stored yet.

        Args:
            stable_id: ISIN or coin id
            kind: Asset kind (inferred from the identifier shape when None)

        Returns:
            FAReconcileResult for the created record (previous_symbol is None)

        Raises:
            AlreadyExistsError: identifier already stored
            NothingFoundExternallyError: provider does not know the identifier
            ExternalRequestError: provider unavailable or timed out
        """
        stable_id = normalize_stable_id(stable_id)
        kind = kind or infer_asset_kind(stable_id)

        async with self._exclusive(stable_id, "onboard"):
            if await self._store.get(stable_id) is not None:
                raise AlreadyExistsError(f"Asset {stable_id} already exists", details={"stable_id": stable_id})

            profile = await self._profile_by_stable_id(kind, stable_id)
            if profile is None:
                logger.info("Nothing found externally for new asset", stable_id=stable_id, kind=kind.value)
                raise NothingFoundExternallyError(
                    f"No external match for {stable_id}",
                    details={"stable_id": stable_id, "kind": kind.value}
                    )

            now = self._clock()
            report = _CollisionReport()
            holders = await self._store.list_by_symbol(profile.symbol, kind)
            if not holders:
                record = await self._store.create(profile.model_copy(update={"last_refreshed_at": now}))
                logger.info("Asset onboarded", stable_id=stable_id, symbol=record.symbol)
                return report.build(record, previous_symbol=None)

            # Symbol already held locally: enter on the sentinel, then claim it like a refresh would
            logger.info(
                "New asset symbol already held locally, claiming it",
                stable_id=stable_id, symbol=profile.symbol, holders=[h.stable_id for h in holders]
                )
            placeholder = await self._store.create(
                profile.model_copy(update={"symbol": SYMBOL_UNKNOWN, "last_refreshed_at": None})
                )
            claimed = await self._claim_symbol(placeholder, profile, now, report, depth=0)
            record = await self._reload_claimant(claimed, report)
            return report.build(record, previous_symbol=None)

    async def process_new_asset_by_symbol(self, symbol: str, kind: AssetKind = AssetKind.EQUITY) -> FAReconcileResult:
        """
        Onboard an asset known only by its current trading symbol.

        The provider resolves the symbol to a stable identifier; onboarding then
        continues exactly like process_new_asset (re-fetched by identifier, which
        stays authoritative). A local record holding the symbol under another
        identifier goes through the collision path.

        Raises:
            InvalidQueryError: empty symbol or the unknown sentinel
            AlreadyExistsError: the resolved identifier is already stored
            NothingFoundExternallyError: provider does not know the symbol
            ExternalRequestError: provider unavailable or timed out
        """
        cleaned = (symbol or "").strip()
        if not cleaned or cleaned == SYMBOL_UNKNOWN:
            raise InvalidQueryError(f"Invalid symbol: {symbol!r}", details={"symbol": symbol})

        profile = await call_provider(self._provider(kind), "profile_by_symbol", cleaned, self._provider_timeout)
        if profile is None:
            logger.info("Nothing found externally for symbol", symbol=cleaned, kind=kind.value)
            raise NothingFoundExternallyError(
                f"No external match for symbol {cleaned}",
                details={"symbol": cleaned, "kind": kind.value}
                )

        logger.debug("Symbol resolved to stable id", symbol=cleaned, stable_id=profile.stable_id)
        return await self.process_new_asset(profile.stable_id, kind)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh_asset(self, existing: FAAssetRecord) -> FAReconcileResult:
        """
        Re-fetch a stored record from its provider and apply what changed.

        Same-identifier calls are serialized; the record is reloaded under the
        lock so a refresh never works from a stale copy.

        Args:
            existing: Persisted record (normally judged stale by needs_refresh)

        Returns:
            FAReconcileResult (collision flags tell a clean refresh apart from
            one that also repaired other records)

        Raises:
            NotFoundError: record was deleted meanwhile
            ExternallyDeindexedError: provider no longer knows the identifier (record untouched)
            ExternalRequestError: provider unavailable or timed out (record untouched)
            ConflictingWriterError: lost a race on this record or on the symbol
        """
        async with self._exclusive(existing.stable_id, "refresh"):
            current = await self._store.get(existing.stable_id)
            if current is None:
                raise NotFoundError(f"Asset {existing.stable_id} not found", details={"stable_id": existing.stable_id})

            profile = await self._profile_by_stable_id(current.kind, current.stable_id)
            if profile is None:
                logger.warning(
                    "Asset no longer known externally, record left untouched",
                    stable_id=current.stable_id, symbol=current.symbol
                    )
                raise ExternallyDeindexedError(
                    f"Asset {current.stable_id} is no longer listed by the provider",
                    details={"stable_id": current.stable_id, "symbol": current.symbol}
                    )

            if profile.symbol != current.symbol:
                logger.info(
                    "Symbol drift detected",
                    stable_id=current.stable_id, old_symbol=current.symbol, new_symbol=profile.symbol
                    )

            report = _CollisionReport()
            claimed = await self._claim_symbol(current, profile, self._clock(), report, depth=0)
            record = await self._reload_claimant(claimed, report)
            return report.build(record, previous_symbol=current.symbol)

    async def refresh_by_id(self, stable_id: str) -> FAReconcileResult:
        """Refresh a stored record by identifier, regardless of staleness."""
        stable_id = normalize_stable_id(stable_id)
        record = await self._store.get(stable_id)
        if record is None:
            raise NotFoundError(f"Asset {stable_id} not found", details={"stable_id": stable_id})
        return await self.refresh_asset(record)

    # ------------------------------------------------------------------
    # Collision handling
    # ------------------------------------------------------------------

    async def _claim_symbol(
        self,
        record: FAAssetRecord,
        profile: FAProfile,
        now: datetime,
        report: _CollisionReport,
        depth: int,
        ) -> FAAssetRecord:
        """
        Apply profile to record, demoting any other holder of profile.symbol first.

        Returns the stored record. Displaced holders are re-identified after the
        promotion and recorded in report.
        """
        demoted: list[tuple[str, FAAssetRecord]] = []
        try:
            for holder in await self._store.list_by_symbol(profile.symbol, record.kind):
                if holder.stable_id == record.stable_id:
                    continue
                logger.warning(
                    "Symbol collision, demoting current holder",
                    symbol=profile.symbol, holder=holder.stable_id, claimant=record.stable_id
                    )
                demoted.append((holder.symbol, await self._store.mark_symbol_unknown(holder.stable_id, holder.version)))

            updated = await self._store.update(
                record.with_profile(profile, now),
                expected_version=record.version,
                claim_symbol=True,
                )
        except ConflictingWriterError:
            # The demotions done so far are committed; give those losers their new symbols before bailing out
            for previous_symbol, loser in demoted:
                await self._reidentify(loser, previous_symbol, now, report, depth + 1)
            raise

        for previous_symbol, loser in demoted:
            await self._reidentify(loser, previous_symbol, now, report, depth + 1)
        return updated

    async def _reload_claimant(self, claimed: FAAssetRecord, report: _CollisionReport) -> FAAssetRecord:
        """
        Re-read the claimant once its collision cascade is over.

        A record displaced further down the chain can be paired by its provider
        with the claimant's new symbol and take it back, leaving the claimant on
        the sentinel. The result must describe the stored state, not the copy
        returned by the promotion.
        """
        stored = await self._store.get(claimed.stable_id)
        if stored is None:
            return claimed
        if stored.symbol != claimed.symbol:
            logger.warning(
                "Asset lost its new symbol later in the same collision cascade",
                stable_id=stored.stable_id, claimed_symbol=claimed.symbol, stored_symbol=stored.symbol
                )
            report.warnings.append(
                f"{stored.stable_id} was displaced from {claimed.symbol} later in the same collision cascade"
                )
            if stored.symbol == SYMBOL_UNKNOWN:
                report.claimant_displaced = True
            if not any(d.stable_id == stored.stable_id for d in report.displaced):
                report.displaced.append(FADisplacedRecord(
                    stable_id=stored.stable_id,
                    previous_symbol=claimed.symbol,
                    new_symbol=stored.symbol,
                    resolved=stored.symbol != SYMBOL_UNKNOWN,
                    ))
        return stored

    async def _locate_displaced(self, loser: FAAssetRecord) -> Optional[FAProfile]:
        """Find the displaced record's current profile: by stable id, then by name search."""
        profile = await self._profile_by_stable_id(loser.kind, loser.stable_id)
        if profile is not None or not loser.name:
            return profile
        for candidate in await self._search(loser.kind, loser.name):
            if candidate.stable_id == loser.stable_id:
                return candidate.model_copy(update={"kind": loser.kind})
        return None

    async def _reidentify(
        self,
        loser: FAAssetRecord,
        previous_symbol: str,
        now: datetime,
        report: _CollisionReport,
        depth: int,
        ) -> None:
        def unresolved(reason: str) -> None:
            logger.warning(
                "Displaced asset not re-identified, symbol will remain unknown",
                stable_id=loser.stable_id, previous_symbol=previous_symbol, reason=reason
                )
            report.warnings.append(
                f"{loser.stable_id} lost symbol {previous_symbol} and could not be re-identified: {reason}"
                )
            report.displaced.append(FADisplacedRecord(
                stable_id=loser.stable_id,
                previous_symbol=previous_symbol,
                new_symbol=SYMBOL_UNKNOWN,
                resolved=False,
                ))

        try:
            profile = await self._locate_displaced(loser)
        except ExternalRequestError as e:
            unresolved(f"provider error ({e.message})")
            return

        if profile is None:
            unresolved("not found externally")
            return
        if profile.symbol.upper() == previous_symbol.upper():
            # Provider still pairs the loser with the symbol just reassigned
            unresolved(f"provider still reports {previous_symbol}")
            return
        if depth >= MAX_COLLISION_DEPTH and await self._store.list_by_symbol(profile.symbol, loser.kind):
            unresolved(f"symbol {profile.symbol} held by another asset (collision chain too deep)")
            return

        try:
            updated = await self._claim_symbol(loser, profile, now, report, depth)
        except ConflictingWriterError as e:
            # Another writer touched the displaced record meanwhile; it is theirs to finish
            unresolved(f"concurrent update ({e.message})")
            return

        logger.info(
            "Displaced asset re-identified",
            stable_id=loser.stable_id, previous_symbol=previous_symbol, new_symbol=updated.symbol
            )
        report.displaced.append(FADisplacedRecord(
            stable_id=loser.stable_id,
            previous_symbol=previous_symbol,
            new_symbol=updated.symbol,
            resolved=updated.symbol != SYMBOL_UNKNOWN,
            ))

    # ------------------------------------------------------------------
    # Profile-by-id flow
    # ------------------------------------------------------------------

    async def resolve_profile(self, stable_id: str, allow_external: bool = True) -> FAProfileResponse:
        """
        Return the canonical profile for an identifier.

        - Unknown locally: onboarded (allow_external) or NotFoundError
        - Known and stale: refreshed first (allow_external)
        - Known and fresh: served from the store

        Raises:
            InvalidQueryError: identifier has no usable characters
            NotFoundError / NothingFoundExternallyError: nothing to return
            ExternallyDeindexedError, ExternalRequestError, ConflictingWriterError: from refresh
        """
        stable_id = normalize_stable_id(stable_id)
        record = await self._store.get(stable_id)

        if record is None:
            if not allow_external:
                raise NotFoundError(f"Asset {stable_id} not found", details={"stable_id": stable_id})
            try:
                result = await self.process_new_asset(stable_id)
            except AlreadyExistsError:
                # Onboarded concurrently by another request
                record = await self._store.get(stable_id)
                if record is None:
                    raise
                return FAProfileResponse(asset=record.to_profile())
            return FAProfileResponse(
                asset=result.record.to_profile(),
                processed_unknown_asset=True,
                collision_found=result.collision_found,
                collision_partially_resolved=result.collision_partially_resolved,
                warnings=result.warnings,
                )

        if allow_external and self.needs_refresh(record):
            result = await self.refresh_asset(record)
            return FAProfileResponse(
                asset=result.record.to_profile(),
                refresh_performed=True,
                collision_found=result.collision_found,
                collision_partially_resolved=result.collision_partially_resolved,
                warnings=result.warnings,
                )

        return FAProfileResponse(asset=record.to_profile())
