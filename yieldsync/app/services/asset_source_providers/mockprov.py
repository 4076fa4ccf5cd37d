"""
Mock provider for testing purposes only.

This provider serves profiles from an in-memory table and should NEVER be used
in production. It's registered in the provider registry for testing the
reconciliation and search engines without external dependencies.

Tests script it directly:
- set_profile() / remove_profile(): what the "external source" currently says
- set_search_results(): fixed answers for a search query
- unavailable / delay: simulate outages and slow calls
- calls: per-operation call counters

WARNING: This provider is for TESTING ONLY. Do not use in production code.
"""
import asyncio
from collections import Counter
from typing import Optional

from yieldsync.app.db.models import AssetKind
from yieldsync.app.schemas.assets import FAProfile
from yieldsync.app.services.asset_source import AssetSourceProvider
from yieldsync.app.services.errors import ProviderUnavailableError
from yieldsync.app.services.provider_registry import register_provider, AssetProviderRegistry


@register_provider(AssetProviderRegistry)
class MockProvider(AssetSourceProvider):
    """
    Mock provider for testing - returns scripted profiles.

    WARNING: FOR TESTING ONLY - DO NOT USE IN PRODUCTION
    """

    def __init__(self, asset_kind: AssetKind = AssetKind.EQUITY):
        self._asset_kind = asset_kind
        self.profiles: dict[str, FAProfile] = {}
        self.search_results: dict[str, list[FAProfile]] = {}
        self.unavailable = False
        self.delay = 0.0
        self.calls: Counter = Counter()

    @property
    def provider_code(self) -> str:
        return "mockprov"

    @property
    def provider_name(self) -> str:
        return "Mock Provider (TESTING ONLY)"

    @property
    def asset_kind(self) -> AssetKind:
        return self._asset_kind

    @property
    def test_cases(self) -> list[dict]:
        return [
            {
                'stable_id': 'US0000000001',
                'symbol': 'MOCK',
                }
            ]

    @property
    def test_search_query(self) -> Optional[str]:
        return "MOCK"

    # ------------------------------------------------------------------
    # Scripting helpers
    # ------------------------------------------------------------------

    def set_profile(
        self,
        stable_id: str,
        symbol: str,
        name: Optional[str] = None,
        venue: Optional[str] = "MOCK",
        sector: Optional[str] = None,
        industry: Optional[str] = None,
        ) -> FAProfile:
        """Declare what the external source reports for stable_id."""
        profile = FAProfile(
            stable_id=stable_id,
            kind=self._asset_kind,
            symbol=symbol,
            name=name or f"{symbol} Inc.",
            venue=venue,
            sector=sector,
            industry=industry,
            )
        self.profiles[stable_id] = profile
        return profile

    def remove_profile(self, stable_id: str) -> None:
        """Make stable_id unknown to the external source (de-indexed)."""
        self.profiles.pop(stable_id, None)

    def set_search_results(self, query: str, profiles: list[FAProfile]) -> None:
        self.search_results[query] = list(profiles)

    async def _call(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.unavailable:
            raise ProviderUnavailableError(
                "Mock provider unavailable",
                details={"provider": self.provider_code, "operation": operation}
                )

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    async def profile_by_stable_id(self, stable_id: str) -> Optional[FAProfile]:
        await self._call("profile_by_stable_id")
        return self.profiles.get(stable_id)

    async def profile_by_symbol(self, symbol: str) -> Optional[FAProfile]:
        await self._call("profile_by_symbol")
        for profile in self.profiles.values():
            if profile.symbol.upper() == symbol.upper():
                return profile
        return None

    async def search(self, query: str) -> list[FAProfile]:
        """Scripted results if set for query, else case-insensitive substring match on symbol/name."""
        await self._call("search")
        if query in self.search_results:
            return list(self.search_results[query])
        needle = query.lower()
        return [
            p for p in self.profiles.values()
            if needle in p.symbol.lower() or needle in (p.name or "").lower()
            ]
