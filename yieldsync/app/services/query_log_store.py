"""
Query Log Store - search throttle bookkeeping.

One row per (kind, normalized query) holding the last time the query was sent
to the external provider. Writes are INSERT ... ON CONFLICT DO UPDATE, so
concurrent searches for the same text never create duplicates.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from yieldsync.app.db.models import AssetKind, QueryLog
from yieldsync.app.logging_config import get_logger
from yieldsync.app.services.errors import StoreError
from yieldsync.app.utils.datetime_utils import as_utc

logger = get_logger(__name__)


class QueryLogStore:
    """Per-kind query throttle log."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, kind: AssetKind, query: str) -> Optional[datetime]:
        """Return last_requested_at for a normalized query (None if never requested)."""
        try:
            async with self._session_factory() as session:
                stmt = select(QueryLog.last_requested_at).where(QueryLog.kind == kind, QueryLog.query == query)
                value = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Query log read failed", query=query, error=str(e))
            raise StoreError(f"Query log read failed: {e}", details={"query": query}) from e
        return as_utc(value)

    async def upsert(self, kind: AssetKind, query: str, requested_at: datetime) -> None:
        """Insert or update the log entry for a normalized query."""
        try:
            async with self._session_factory() as session:
                dialect = session.bind.dialect.name
                insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
                stmt = insert(QueryLog.__table__).values(kind=kind, query=query, last_requested_at=requested_at)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["kind", "query"],
                    set_={"last_requested_at": requested_at},
                    )
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Query log upsert failed", query=query, error=str(e))
            raise StoreError(f"Query log upsert failed: {e}", details={"query": query}) from e
        logger.debug("Query log updated", kind=kind.value, query=query)
