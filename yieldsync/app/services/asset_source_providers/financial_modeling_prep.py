"""
Financial Modeling Prep (FMP) equity profile provider.

Resolves listed equities by ISIN or ticker through the FMP "stable" REST API.
When FMP cannot map an ISIN to a ticker, OpenFIGI (if an API key is configured)
is used as a fallback mapping service.

API Documentation: https://site.financialmodelingprep.com/developer/docs
"""
# Postpones evaluation of type hints to improve imports and performance. Also avoid circular import issues.
from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from yieldsync.app.db.models import AssetKind
from yieldsync.app.logging_config import get_logger
from yieldsync.app.schemas.assets import FAProfile
from yieldsync.app.services.asset_source import AssetSourceProvider, clean_text, decode_json
from yieldsync.app.services.errors import ProviderUnavailableError
from yieldsync.app.services.provider_registry import register_provider, AssetProviderRegistry

logger = get_logger(__name__, provider="fmp")


@register_provider(AssetProviderRegistry)
class FinancialModelingPrepProvider(AssetSourceProvider):
    """
    Financial Modeling Prep equity provider.

    Endpoints:
    - /stable/profile?symbol=: company profile (isin, symbol, companyName, exchange, sector, industry)
    - /stable/search-isin?isin=: ISIN -> current ticker
    - /stable/search-symbol?query=: free-text ticker/name search (no ISIN, enriched via profile)

    Fallback:
    - OpenFIGI /v3/mapping (ID_ISIN, US listings) when search-isin has no hit
    """

    BASE_URL = "https://financialmodelingprep.com"
    OPENFIGI_BASE_URL = "https://api.openfigi.com"
    SEARCH_ENRICH_LIMIT = 10  # Max search hits enriched with a profile call

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        openfigi_api_key: Optional[str] = None,
        openfigi_base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        ):
        self._api_key = api_key
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._openfigi_api_key = openfigi_api_key
        self._openfigi_base_url = (openfigi_base_url or self.OPENFIGI_BASE_URL).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def provider_code(self) -> str:
        return "fmp"

    @property
    def provider_name(self) -> str:
        return "Financial Modeling Prep"

    @property
    def asset_kind(self) -> AssetKind:
        return AssetKind.EQUITY

    @property
    def test_cases(self) -> list[dict]:
        return [
            {
                'stable_id': 'US0378331005',  # Apple Inc.
                'symbol': 'AAPL',
                },
            {
                'stable_id': 'US5949181045',  # Microsoft Corp.
                'symbol': 'MSFT',
                },
            ]

    @property
    def test_search_query(self) -> Optional[str]:
        return "AAPL"

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport, follow_redirects=True)

    async def _get_list(self, path: str, params: dict) -> list[dict]:
        """GET an FMP endpoint that answers with a JSON list."""
        params = dict(params)
        if self._api_key:
            params["apikey"] = self._api_key
        url = f"{self._base_url}{path}"
        try:
            async with self._client() as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"FMP request failed: {e}", path=path)
            raise ProviderUnavailableError(
                f"FMP API error on {path}: {e}",
                details={"provider": self.provider_code, "path": path}
                ) from e

        data = decode_json(response, self.provider_code)
        if isinstance(data, dict) and "Error Message" in data:
            # FMP reports key/plan problems with HTTP 200 and an error object
            raise ProviderUnavailableError(
                f"FMP API error on {path}: {data['Error Message']}",
                details={"provider": self.provider_code, "path": path}
                )
        if not isinstance(data, list):
            raise ProviderUnavailableError(
                f"Unexpected FMP response format on {path}: expected a list",
                details={"provider": self.provider_code, "path": path}
                )
        return [item for item in data if isinstance(item, dict)]

    async def _openfigi_ticker(self, isin: str) -> Optional[str]:
        """Map an ISIN to a US ticker through OpenFIGI. None when OpenFIGI has no mapping."""
        url = f"{self._openfigi_base_url}/v3/mapping"
        payload = [{"idType": "ID_ISIN", "idValue": isin, "exchCode": "US"}]
        headers = {"Content-Type": "application/json", "X-OPENFIGI-APIKEY": self._openfigi_api_key}
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"OpenFIGI request failed: {e}", isin=isin)
            raise ProviderUnavailableError(
                f"OpenFIGI API error: {e}",
                details={"provider": self.provider_code, "isin": isin}
                ) from e

        data = decode_json(response, self.provider_code)
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise ProviderUnavailableError(
                "Unexpected OpenFIGI response format",
                details={"provider": self.provider_code, "isin": isin}
                )
        first = data[0]
        if "warning" in first:
            # e.g. "No identifier found."
            return None
        entries = first.get("data") or []
        if not entries or not isinstance(entries[0], dict):
            return None
        return clean_text(entries[0].get("ticker"))

    # ------------------------------------------------------------------
    # Payload conversion
    # ------------------------------------------------------------------

    def _to_profile(self, item: dict[str, Any]) -> Optional[FAProfile]:
        isin = clean_text(item.get("isin"))
        symbol = clean_text(item.get("symbol"))
        if not isin or not symbol:
            return None
        return FAProfile(
            stable_id=isin.upper(),
            kind=AssetKind.EQUITY,
            symbol=symbol.upper(),
            name=clean_text(item.get("companyName")),
            venue=clean_text(item.get("exchange")),
            sector=clean_text(item.get("sector")),
            industry=clean_text(item.get("industry")),
            )

    # ------------------------------------------------------------------
    # Capability
    # ------------------------------------------------------------------

    async def profile_by_symbol(self, symbol: str) -> Optional[FAProfile]:
        items = await self._get_list("/stable/profile", {"symbol": symbol})
        if not items:
            return None
        return self._to_profile(items[0])

    async def profile_by_stable_id(self, stable_id: str) -> Optional[FAProfile]:
        """
        Resolve an ISIN to its profile.

        ISIN -> ticker via FMP search-isin (OpenFIGI fallback), then ticker ->
        profile. The returned stable_id is always the requested ISIN.
        """
        ticker = None
        for item in await self._get_list("/stable/search-isin", {"isin": stable_id}):
            ticker = clean_text(item.get("symbol"))
            if ticker:
                break

        if not ticker and self._openfigi_api_key:
            ticker = await self._openfigi_ticker(stable_id)

        if not ticker:
            logger.info("ISIN not found on FMP", isin=stable_id)
            return None

        profile = await self.profile_by_symbol(ticker)
        if profile is None:
            return None
        if profile.stable_id != stable_id:
            logger.debug(
                "FMP profile ISIN differs from requested ISIN",
                requested=stable_id, returned=profile.stable_id, symbol=ticker
                )
            profile = profile.model_copy(update={"stable_id": stable_id})
        return profile

    async def search(self, query: str) -> list[FAProfile]:
        """Search by ticker/name, then enrich each hit with its profile (concurrently)."""
        items = await self._get_list("/stable/search-symbol", {"query": query})

        symbols: list[str] = []
        for item in items:
            symbol = clean_text(item.get("symbol"))
            if symbol and symbol.upper() not in symbols:
                symbols.append(symbol.upper())
            if len(symbols) >= self.SEARCH_ENRICH_LIMIT:
                break

        profiles = await asyncio.gather(*(self.profile_by_symbol(s) for s in symbols))
        return [p for p in profiles if p is not None]
