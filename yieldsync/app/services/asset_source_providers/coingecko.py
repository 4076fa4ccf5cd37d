"""
CoinGecko digital-asset profile provider.

Stable identifier is the CoinGecko coin id (e.g. "bitcoin", "ethereum"), which
never changes even when the ticker symbol is reused by another coin.

API Documentation: https://docs.coingecko.com/reference/introduction
"""
# Postpones evaluation of type hints to improve imports and performance. Also avoid circular import issues.
from __future__ import annotations

from typing import Any, Optional

import httpx

from yieldsync.app.db.models import AssetKind
from yieldsync.app.logging_config import get_logger
from yieldsync.app.schemas.assets import FAProfile
from yieldsync.app.services.asset_source import AssetSourceProvider, clean_text, decode_json
from yieldsync.app.services.errors import ProviderUnavailableError
from yieldsync.app.services.provider_registry import register_provider, AssetProviderRegistry

logger = get_logger(__name__, provider="coingecko")

# CoinGecko has no sector taxonomy
DEFAULT_SECTOR = "Decentralized Protocol"


@register_provider(AssetProviderRegistry)
class CoinGeckoProvider(AssetSourceProvider):
    """CoinGecko provider (demo/public API)."""

    BASE_URL = "https://api.coingecko.com"
    DEFAULT_VENUE = "coingecko"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        ):
        self._api_key = api_key
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def provider_code(self) -> str:
        return "coingecko"

    @property
    def provider_name(self) -> str:
        return "CoinGecko"

    @property
    def asset_kind(self) -> AssetKind:
        return AssetKind.DIGITAL_ASSET

    @property
    def test_cases(self) -> list[dict]:
        return [
            {
                'stable_id': 'bitcoin',
                'symbol': 'BTC',
                },
            {
                'stable_id': 'ethereum',
                'symbol': 'ETH',
                },
            ]

    @property
    def test_search_query(self) -> Optional[str]:
        return "bitcoin"

    async def _get_json(self, path: str, params: Optional[dict] = None, allow_not_found: bool = False):
        """GET a CoinGecko endpoint. Returns None on 404 when allow_not_found is set."""
        headers = {"accept": "application/json"}
        if self._api_key:
            headers["x-cg-demo-api-key"] = self._api_key
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, params=params, headers=headers)
                if allow_not_found and response.status_code == 404:
                    return None
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"CoinGecko request failed: {e}", path=path)
            raise ProviderUnavailableError(
                f"CoinGecko API error on {path}: {e}",
                details={"provider": self.provider_code, "path": path}
                ) from e
        return decode_json(response, self.provider_code)

    async def _search_coins(self, query: str) -> list[dict]:
        data = await self._get_json("/api/v3/search", {"query": query})
        coins = data.get("coins") if isinstance(data, dict) else None
        if not isinstance(coins, list):
            raise ProviderUnavailableError(
                "Unexpected CoinGecko search response: missing 'coins'",
                details={"provider": self.provider_code, "query": query}
                )
        return [coin for coin in coins if isinstance(coin, dict)]

    def _coin_to_profile(self, coin: dict[str, Any], venue: Optional[str] = None, industry: Optional[str] = None) -> Optional[FAProfile]:
        coin_id = clean_text(coin.get("id"))
        symbol = clean_text(coin.get("symbol"))
        name = clean_text(coin.get("name"))
        if not coin_id or not symbol or not name:
            return None
        return FAProfile(
            stable_id=coin_id,
            kind=AssetKind.DIGITAL_ASSET,
            symbol=symbol.upper(),
            name=name,
            venue=venue or self.DEFAULT_VENUE,
            sector=DEFAULT_SECTOR,
            industry=industry or DEFAULT_SECTOR,
            )

    async def profile_by_stable_id(self, stable_id: str) -> Optional[FAProfile]:
        params = {
            "localization": "false",
            "tickers": "false",
            "market_data": "false",
            "community_data": "false",
            "developer_data": "false",
            }
        data = await self._get_json(f"/api/v3/coins/{stable_id}", params, allow_not_found=True)
        if data is None:
            logger.info("Coin not found on CoinGecko", coin_id=stable_id)
            return None
        if not isinstance(data, dict):
            raise ProviderUnavailableError(
                "Unexpected CoinGecko coin response format",
                details={"provider": self.provider_code, "coin_id": stable_id}
                )

        categories = [c for c in (data.get("categories") or []) if clean_text(c)]
        profile = self._coin_to_profile(
            data,
            venue=clean_text(data.get("asset_platform_id")),
            industry=clean_text(categories[0]) if categories else None,
            )
        if profile is None:
            # A 200 answer without id/symbol/name is a broken payload, not a "no match"
            raise ProviderUnavailableError(
                "CoinGecko coin payload is missing id, symbol or name",
                details={"provider": self.provider_code, "coin_id": stable_id}
                )
        return profile

    async def profile_by_symbol(self, symbol: str) -> Optional[FAProfile]:
        """Pick the exact-symbol match with the best market cap rank, then fetch its profile."""
        wanted = symbol.upper()
        candidates = [
            coin for coin in await self._search_coins(symbol)
            if (clean_text(coin.get("symbol")) or "").upper() == wanted and clean_text(coin.get("id"))
            ]
        if not candidates:
            return None

        def rank(coin: dict) -> int:
            value = coin.get("market_cap_rank")
            return value if isinstance(value, int) else 10 ** 9

        best = min(candidates, key=rank)
        return await self.profile_by_stable_id(clean_text(best.get("id")))

    async def search(self, query: str) -> list[FAProfile]:
        profiles = []
        for coin in await self._search_coins(query):
            profile = self._coin_to_profile(coin)
            if profile is not None:
                profiles.append(profile)
        return profiles
