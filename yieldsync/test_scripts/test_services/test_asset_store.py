"""
Asset Store Tests

CRUD, symbol lookups, search ordering/cap and the optimistic-concurrency
guards of AssetStore, on a fresh SQLite file per test.
"""
import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from yieldsync.app.db.models import AssetKind, SYMBOL_UNKNOWN
from yieldsync.app.schemas.assets import FAProfile
from yieldsync.app.services.errors import AlreadyExistsError, ConflictingWriterError, NotFoundError
from yieldsync.test_scripts.test_utils import make_isin, print_section, print_success

REFRESHED = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _profile(
    n: int,
    symbol: str,
    kind: AssetKind = AssetKind.EQUITY,
    name: Optional[str] = None,
    stable_id: Optional[str] = None,
    ) -> FAProfile:
    return FAProfile(
        stable_id=stable_id or make_isin(n),
        kind=kind,
        symbol=symbol,
        name=name or f"{symbol} Corp",
        venue="NASDAQ",
        last_refreshed_at=REFRESHED,
        )


# ============================================================================
# CREATE / GET / DELETE
# ============================================================================

@pytest.mark.asyncio
async def test_create_and_get(store):
    print_section("Create and get")
    record = await store.create(_profile(1, "AAPL", name="Apple Inc."))

    assert record.version == 1
    assert record.created_at is not None and record.created_at.tzinfo is not None

    loaded = await store.get(make_isin(1))
    assert loaded is not None
    assert loaded.symbol == "AAPL"
    assert loaded.name == "Apple Inc."
    assert loaded.kind == AssetKind.EQUITY
    assert loaded.last_refreshed_at == REFRESHED
    print_success("Record round-trips through the store")


@pytest.mark.asyncio
async def test_get_missing_returns_none(store):
    assert await store.get("US9999999999") is None


@pytest.mark.asyncio
async def test_create_duplicate_raises(store):
    await store.create(_profile(1, "AAPL"))
    with pytest.raises(AlreadyExistsError) as exc_info:
        await store.create(_profile(1, "AAPL2"))
    assert exc_info.value.error_code == "ALREADY_EXISTS"
    assert exc_info.value.details["stable_id"] == make_isin(1)


@pytest.mark.asyncio
async def test_delete(store):
    await store.create(_profile(1, "AAPL"))
    assert await store.delete(make_isin(1)) is True
    assert await store.get(make_isin(1)) is None
    assert await store.delete(make_isin(1)) is False


# ============================================================================
# SYMBOL LOOKUPS
# ============================================================================

@pytest.mark.asyncio
async def test_symbol_lookup_is_case_insensitive_and_per_kind(store):
    await store.create(_profile(1, "ETH"))
    await store.create(_profile(0, "ETH", kind=AssetKind.DIGITAL_ASSET, stable_id="ethereum"))

    equities = await store.list_by_symbol("eth", AssetKind.EQUITY)
    assert [r.stable_id for r in equities] == [make_isin(1)]

    coin = await store.get_by_symbol("Eth", AssetKind.DIGITAL_ASSET)
    assert coin is not None and coin.stable_id == "ethereum"

    assert await store.get_by_symbol("BTC", AssetKind.DIGITAL_ASSET) is None


@pytest.mark.asyncio
async def test_unknown_sentinel_never_matches(store):
    await store.create(_profile(1, SYMBOL_UNKNOWN))
    await store.create(_profile(2, SYMBOL_UNKNOWN))

    assert await store.list_by_symbol(SYMBOL_UNKNOWN, AssetKind.EQUITY) == []
    assert await store.get_by_symbol(SYMBOL_UNKNOWN, AssetKind.EQUITY) is None


# ============================================================================
# SEARCH
# ============================================================================

@pytest.mark.asyncio
async def test_search_ordering(store):
    print_section("Search ordering")
    await store.create(_profile(1, "XAB"))     # substring
    await store.create(_profile(2, "ABCD"))    # prefix
    await store.create(_profile(3, "AB"))      # exact
    await store.create(_profile(4, "ABA"))     # prefix, sorts before ABCD
    await store.create(_profile(5, "ZZZ"))     # no match

    results = await store.search_by_symbol("ab", AssetKind.EQUITY)
    assert [r.symbol for r in results] == ["AB", "ABA", "ABCD", "XAB"]
    print_success("exact > prefix > substring, ties by symbol")


@pytest.mark.asyncio
async def test_search_cap(store):
    for i in range(15):
        await store.create(_profile(i + 1, f"AB{chr(65 + i)}"))

    results = await store.search_by_symbol("AB", AssetKind.EQUITY, limit=10)
    assert len(results) == 10
    assert results[0].symbol == "ABA"

    assert await store.search_by_symbol("AB", AssetKind.EQUITY, limit=0) == []


@pytest.mark.asyncio
async def test_search_excludes_unknown_and_other_kind(store):
    await store.create(_profile(1, SYMBOL_UNKNOWN, name="Zero Holdings"))
    await store.create(_profile(0, "OXT", kind=AssetKind.DIGITAL_ASSET, stable_id="orchid-protocol"))
    await store.create(_profile(2, "OXY"))

    results = await store.search_by_symbol("0", AssetKind.EQUITY)
    assert results == []

    results = await store.search_by_symbol("OX", AssetKind.EQUITY)
    assert [r.symbol for r in results] == ["OXY"]


@pytest.mark.asyncio
async def test_search_by_name_ranks_after_symbol(store):
    kind = AssetKind.DIGITAL_ASSET
    await store.create(_profile(0, "WBTC", kind=kind, name="Wrapped Bitcoin", stable_id="wrapped-bitcoin"))
    await store.create(_profile(0, "BTC", kind=kind, name="Bitcoin", stable_id="bitcoin"))

    by_symbol = await store.search_by_symbol("Bitcoin", kind)
    assert by_symbol == []

    with_name = await store.search_by_symbol("Bitcoin", kind, include_name=True)
    assert {r.stable_id for r in with_name} == {"bitcoin", "wrapped-bitcoin"}

    mixed = await store.search_by_symbol("btc", kind, include_name=True)
    assert [r.symbol for r in mixed] == ["BTC", "WBTC"]


@pytest.mark.asyncio
async def test_search_escapes_like_wildcards(store):
    await store.create(_profile(1, "ABC"))
    assert await store.search_by_symbol("%", AssetKind.EQUITY) == []
    assert await store.search_by_symbol("_", AssetKind.EQUITY) == []


# ============================================================================
# UPDATE / CONCURRENCY GUARDS
# ============================================================================

@pytest.mark.asyncio
async def test_update_bumps_version(store):
    record = await store.create(_profile(1, "FB"))
    updated = await store.update(record.model_copy(update={"symbol": "META", "name": "Meta Platforms"}))

    assert updated.version == 2
    loaded = await store.get(record.stable_id)
    assert loaded.symbol == "META"
    assert loaded.name == "Meta Platforms"
    assert loaded.version == 2


@pytest.mark.asyncio
async def test_update_stale_version_conflicts(store):
    record = await store.create(_profile(1, "FB"))
    await store.update(record.model_copy(update={"symbol": "META"}))

    with pytest.raises(ConflictingWriterError) as exc_info:
        await store.update(record.model_copy(update={"symbol": "FBX"}), expected_version=1)
    assert exc_info.value.retryable
    assert exc_info.value.details["current_version"] == 2
    assert (await store.get(record.stable_id)).symbol == "META"


@pytest.mark.asyncio
async def test_update_missing_raises_not_found(store):
    record = await store.create(_profile(1, "FB"))
    await store.delete(record.stable_id)
    with pytest.raises(NotFoundError):
        await store.update(record)


@pytest.mark.asyncio
async def test_update_never_changes_identity(store):
    record = await store.create(_profile(1, "FB"))
    await store.update(record.model_copy(update={"kind": AssetKind.DIGITAL_ASSET}))
    assert (await store.get(record.stable_id)).kind == AssetKind.EQUITY


@pytest.mark.asyncio
async def test_claim_symbol_refused_when_held(store):
    print_section("Symbol claim guard")
    await store.create(_profile(1, "XYZ"))
    other = await store.create(_profile(2, "OLD"))

    with pytest.raises(ConflictingWriterError) as exc_info:
        await store.update(other.model_copy(update={"symbol": "xyz"}), claim_symbol=True)
    assert exc_info.value.details["symbol"] == "xyz"
    assert (await store.get(other.stable_id)).symbol == "OLD"

    # Claiming a symbol nobody else holds, or the record's own symbol, is fine
    other = await store.update(other.model_copy(update={"symbol": "NEW"}), claim_symbol=True)
    await store.update(other.model_copy(update={"name": "Renamed"}), claim_symbol=True)
    print_success("Held symbol refused, free symbol accepted")


@pytest.mark.asyncio
async def test_racing_claims_single_winner(store):
    """Two records claiming the same free symbol at once: exactly one wins."""
    a = await store.create(_profile(1, "AAA"))
    b = await store.create(_profile(2, "BBB"))

    outcomes = await asyncio.gather(
        store.update(a.model_copy(update={"symbol": "WIN"}), claim_symbol=True),
        store.update(b.model_copy(update={"symbol": "WIN"}), claim_symbol=True),
        return_exceptions=True,
        )

    errors = [o for o in outcomes if isinstance(o, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], ConflictingWriterError)
    assert len(await store.list_by_symbol("WIN", AssetKind.EQUITY)) == 1


# ============================================================================
# MARK SYMBOL UNKNOWN
# ============================================================================

@pytest.mark.asyncio
async def test_mark_symbol_unknown(store):
    record = await store.create(_profile(1, "GONE"))
    demoted = await store.mark_symbol_unknown(record.stable_id, expected_version=record.version)

    assert demoted.symbol == SYMBOL_UNKNOWN
    assert demoted.version == 2
    assert demoted.name == record.name
    assert demoted.last_refreshed_at == REFRESHED
    assert await store.get_by_symbol("GONE", AssetKind.EQUITY) is None


@pytest.mark.asyncio
async def test_mark_symbol_unknown_guards(store):
    with pytest.raises(NotFoundError):
        await store.mark_symbol_unknown("US0000000000")

    record = await store.create(_profile(1, "GONE"))
    await store.update(record.model_copy(update={"name": "Moved"}))
    with pytest.raises(ConflictingWriterError):
        await store.mark_symbol_unknown(record.stable_id, expected_version=1)
    assert (await store.get(record.stable_id)).symbol == "GONE"


@pytest.mark.asyncio
async def test_identifier_lock_serializes_same_id(store):
    order = []

    async def worker(tag: str):
        async with store.identifier_lock("bitcoin"):
            order.append(f"{tag}-in")
            await asyncio.sleep(0.01)
            order.append(f"{tag}-out")

    await asyncio.gather(worker("a"), worker("b"))
    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
