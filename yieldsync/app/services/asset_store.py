"""
Asset Store - persistence boundary for canonical asset records.

Every public operation is a single short transaction on its own session.
Multi-step reconciliation sequences compose several of these calls; a failure
part-way leaves the already-committed steps valid (no cross-call rollback).

Concurrency model:
- identifier_lock(stable_id): in-process serialization of reconciliations on
  the same record (different ids proceed in parallel)
- version column: optimistic check on every write, catches writers the
  in-process lock cannot see (other processes)
- update(claim_symbol=True): the write is refused when another record of the
  same kind already holds the symbol, so two racing refreshes can never both
  end up owning it; the loser gets ConflictingWriterError and may retry

Records cross this boundary as detached FAAssetRecord objects.
"""
import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import select, update, delete, func, case, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from yieldsync.app.db.models import Asset, AssetKind, SYMBOL_UNKNOWN
from yieldsync.app.logging_config import get_logger
from yieldsync.app.schemas.assets import FAAssetRecord, FAProfile
from yieldsync.app.services.errors import (
    AssetServiceError,
    AlreadyExistsError,
    ConflictingWriterError,
    NotFoundError,
    StoreError,
    )
from yieldsync.app.utils.datetime_utils import utcnow, as_utc

logger = get_logger(__name__)


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_record(row: Asset) -> FAAssetRecord:
    return FAAssetRecord(
        stable_id=row.stable_id,
        kind=row.kind,
        symbol=row.symbol,
        name=row.name,
        venue=row.venue,
        sector=row.sector,
        industry=row.industry,
        last_refreshed_at=as_utc(row.last_refreshed_at),
        version=row.version,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        )


class AssetStore:
    """CRUD and symbol lookups over the assets table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        # Entries disappear once no task holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Open a session, converting SQLAlchemy failures to StoreError."""
        try:
            async with self._session_factory() as session:
                yield session
        except AssetServiceError:
            raise
        except SQLAlchemyError as e:
            logger.error("Asset store operation failed", operation=operation, error=str(e))
            raise StoreError(f"Asset store {operation} failed: {e}", details={"operation": operation}) from e

    @asynccontextmanager
    async def identifier_lock(self, stable_id: str) -> AsyncIterator[None]:
        """Serialize reconciliations of the same stable_id within this process."""
        lock = self._locks.get(stable_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[stable_id] = lock
        async with lock:
            yield

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, stable_id: str) -> Optional[FAAssetRecord]:
        async with self._session("get") as session:
            row = await session.get(Asset, stable_id)
            return _to_record(row) if row is not None else None

    async def list_by_symbol(self, symbol: str, kind: AssetKind) -> list[FAAssetRecord]:
        """All records of `kind` currently holding `symbol` (never matches the unknown sentinel)."""
        if not symbol or symbol == SYMBOL_UNKNOWN:
            return []
        async with self._session("list_by_symbol") as session:
            stmt = (
                select(Asset)
                .where(Asset.kind == kind, func.upper(Asset.symbol) == symbol.upper())
                .order_by(Asset.stable_id)
                )
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_record(row) for row in rows]

    async def get_by_symbol(self, symbol: str, kind: AssetKind) -> Optional[FAAssetRecord]:
        holders = await self.list_by_symbol(symbol, kind)
        return holders[0] if holders else None

    async def search_by_symbol(
        self,
        text: str,
        kind: AssetKind,
        limit: int = 10,
        include_name: bool = False,
        ) -> list[FAAssetRecord]:
        """
        Case-insensitive prefix/substring search on symbol (and optionally name).

        Ordering: exact symbol, symbol prefix, symbol substring, name match;
        ties broken by symbol then stable_id. Records on the unknown sentinel
        are never returned.

        Args:
            text: Normalized query
            kind: Asset kind to search
            limit: Max results (the cap)
            include_name: Also match on name (digital-asset free text)
        """
        if limit <= 0:
            return []
        needle = _escape_like(text.upper())
        symbol_upper = func.upper(Asset.symbol)
        symbol_match = symbol_upper.like(f"%{needle}%", escape="\\")
        condition = or_(symbol_match, func.upper(Asset.name).like(f"%{needle}%", escape="\\")) if include_name else symbol_match
        rank = case(
            (symbol_upper == text.upper(), 0),
            (symbol_upper.like(f"{needle}%", escape="\\"), 1),
            (symbol_match, 2),
            else_=3,
            )
        async with self._session("search_by_symbol") as session:
            stmt = (
                select(Asset)
                .where(Asset.kind == kind, Asset.symbol != SYMBOL_UNKNOWN, condition)
                .order_by(rank, Asset.symbol, Asset.stable_id)
                .limit(limit)
                )
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_record(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, profile: FAProfile) -> FAAssetRecord:
        """
        Insert a new record from a profile (version starts at 1).

        Raises:
            AlreadyExistsError: stable_id already stored
        """
        now = utcnow()
        row = Asset(
            stable_id=profile.stable_id,
            kind=profile.kind,
            symbol=profile.symbol,
            name=profile.name,
            venue=profile.venue,
            sector=profile.sector,
            industry=profile.industry,
            last_refreshed_at=profile.last_refreshed_at,
            version=1,
            created_at=now,
            updated_at=now,
            )
        async with self._session("create") as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise AlreadyExistsError(
                    f"Asset {profile.stable_id} already exists",
                    details={"stable_id": profile.stable_id}
                    ) from e
            record = _to_record(row)
        logger.info("Asset created", stable_id=record.stable_id, symbol=record.symbol, kind=record.kind.value)
        return record

    async def update(
        self,
        record: FAAssetRecord,
        expected_version: Optional[int] = None,
        claim_symbol: bool = False,
        ) -> FAAssetRecord:
        """
        Write record's mutable fields if the stored version is still expected_version.

        stable_id and kind are never written.

        Args:
            record: Desired state
            expected_version: Version read by the caller (default: record.version)
            claim_symbol: Refuse the write if another record of the same kind
                holds record.symbol (checked in the same statement)

        Returns:
            Stored record with the bumped version

        Raises:
            NotFoundError: record no longer exists
            ConflictingWriterError: version moved, or symbol held by another record
        """
        expected = record.version if expected_version is None else expected_version
        now = utcnow()
        stmt = update(Asset).where(Asset.stable_id == record.stable_id, Asset.version == expected)
        if claim_symbol and record.symbol != SYMBOL_UNKNOWN:
            other = aliased(Asset)
            holder = (
                select(other.stable_id)
                .where(
                    other.kind == record.kind,
                    func.upper(other.symbol) == record.symbol.upper(),
                    other.stable_id != record.stable_id,
                    )
                .exists()
                )
            stmt = stmt.where(~holder)
        stmt = stmt.values(
            symbol=record.symbol,
            name=record.name,
            venue=record.venue,
            sector=record.sector,
            industry=record.industry,
            last_refreshed_at=record.last_refreshed_at,
            version=expected + 1,
            updated_at=now,
            ).execution_options(synchronize_session=False)

        async with self._session("update") as session:
            result = await session.execute(stmt)
            await session.commit()
            updated = result.rowcount

        if updated == 0:
            await self._raise_write_failure(record.stable_id, expected, claim_symbol and record.symbol)

        return record.model_copy(update={"version": expected + 1, "updated_at": now})

    async def mark_symbol_unknown(self, stable_id: str, expected_version: Optional[int] = None) -> FAAssetRecord:
        """
        Demote a record's symbol to the unknown sentinel (single atomic statement).

        Raises:
            NotFoundError: record does not exist
            ConflictingWriterError: expected_version given and no longer current
        """
        stmt = update(Asset).where(Asset.stable_id == stable_id)
        if expected_version is not None:
            stmt = stmt.where(Asset.version == expected_version)
        stmt = stmt.values(
            symbol=SYMBOL_UNKNOWN,
            version=Asset.version + 1,
            updated_at=utcnow(),
            ).execution_options(synchronize_session=False)

        async with self._session("mark_symbol_unknown") as session:
            result = await session.execute(stmt)
            await session.commit()
            updated = result.rowcount

        if updated == 0:
            await self._raise_write_failure(stable_id, expected_version, None)

        record = await self.get(stable_id)
        if record is None:
            # Deleted between the two statements
            raise NotFoundError(f"Asset {stable_id} not found", details={"stable_id": stable_id})
        logger.info("Asset symbol marked unknown", stable_id=stable_id)
        return record

    async def delete(self, stable_id: str) -> bool:
        """Delete a record. Returns False if it did not exist."""
        async with self._session("delete") as session:
            result = await session.execute(
                delete(Asset).where(Asset.stable_id == stable_id).execution_options(synchronize_session=False)
                )
            await session.commit()
            deleted = result.rowcount > 0
        if deleted:
            logger.info("Asset deleted", stable_id=stable_id)
        return deleted

    async def _raise_write_failure(self, stable_id: str, expected_version: Optional[int], claimed_symbol) -> None:
        """Explain a zero-row write: missing record, stale version or claimed symbol."""
        current = await self.get(stable_id)
        if current is None:
            raise NotFoundError(f"Asset {stable_id} not found", details={"stable_id": stable_id})
        if expected_version is not None and current.version != expected_version:
            raise ConflictingWriterError(
                f"Asset {stable_id} was modified concurrently",
                details={"stable_id": stable_id, "expected_version": expected_version, "current_version": current.version}
                )
        raise ConflictingWriterError(
            f"Symbol {claimed_symbol} is held by another asset",
            details={"stable_id": stable_id, "symbol": claimed_symbol}
            )
