"""
Query Log Store Tests

Upsert semantics of the search throttle log.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from yieldsync.app.db.models import AssetKind, QueryLog

T0 = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_unknown_query_returns_none(query_log):
    assert await query_log.get(AssetKind.EQUITY, "AAPL") is None


@pytest.mark.asyncio
async def test_upsert_inserts_then_updates(query_log):
    await query_log.upsert(AssetKind.EQUITY, "AAPL", T0)
    assert await query_log.get(AssetKind.EQUITY, "AAPL") == T0

    later = T0 + timedelta(days=2)
    await query_log.upsert(AssetKind.EQUITY, "AAPL", later)
    assert await query_log.get(AssetKind.EQUITY, "AAPL") == later


@pytest.mark.asyncio
async def test_entries_are_per_kind(query_log):
    await query_log.upsert(AssetKind.DIGITAL_ASSET, "ETH", T0)
    assert await query_log.get(AssetKind.EQUITY, "ETH") is None
    assert await query_log.get(AssetKind.DIGITAL_ASSET, "ETH") == T0


@pytest.mark.asyncio
async def test_concurrent_upserts_single_row(query_log, session_factory):
    await asyncio.gather(*[
        query_log.upsert(AssetKind.EQUITY, "MSFT", T0 + timedelta(seconds=i))
        for i in range(5)
        ])

    async with session_factory() as session:
        count = (await session.execute(
            select(func.count()).select_from(QueryLog).where(QueryLog.query == "MSFT")
            )).scalar_one()
    assert count == 1
    assert await query_log.get(AssetKind.EQUITY, "MSFT") is not None


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
