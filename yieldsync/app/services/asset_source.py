"""
External asset source capability.

This module provides:
- AssetSourceProvider: Abstract base class for external profile providers (plugins)
- Shared helpers for plugins (JSON decoding, payload access)
- call_provider(): timeout-bounded provider invocation used by the engines

Two families of providers implement the same capability set:
- Equity providers (stable id = ISIN)
- Digital-asset providers (stable id = platform coin id)

Whatever shape the upstream API returns, plugins hand back FAProfile objects
tagged with their `kind`, so the engines never deal with provider payloads.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from yieldsync.app.db.models import AssetKind
from yieldsync.app.logging_config import get_logger
from yieldsync.app.schemas.assets import FAProfile
from yieldsync.app.services.errors import ExternalRequestError, ProviderUnavailableError

logger = get_logger(__name__)


# ============================================================================
# ABSTRACT BASE CLASS
# ============================================================================


class AssetSourceProvider(ABC):
    """
    Abstract base class for external asset profile providers (plugins).

    ARCHITECTURE: Plugin vs Core Responsibilities
    =============================================

    PLUGIN (this class implementations) is responsible for:
    - Fetching RAW data from external sources (REST APIs)
    - Converting payloads to FAProfile (stable_id, symbol, name, venue, sector, industry)
    - Distinguishing "no match" (return None / []) from "could not ask"
      (raise ProviderUnavailableError)

    CORE (AssetReconciliationService, AssetSearchService) is responsible for:
    - Storage of profiles and query throttling
    - Staleness decisions
    - Symbol collision detection and repair
    - Timeouts around every plugin call

    Outcome contract:
    - profile_by_stable_id / profile_by_symbol: FAProfile, or None when the
      provider answered but has no match
    - search: list of FAProfile, possibly empty
    - Any network, HTTP or payload failure: ProviderUnavailableError

    Required implementations:
    - provider_code: Unique identifier for this provider
    - provider_name: Human-readable name
    - asset_kind: AssetKind served by this provider
    - test_cases: Test data for automated testing
    - test_search_query: Search query for tests
    - profile_by_stable_id(), profile_by_symbol(), search()

    Providers auto-register via @register_provider(AssetProviderRegistry) decorator.
    """

    @property
    @abstractmethod
    def provider_code(self) -> str:
        """
        Unique provider identifier used in settings and the registry.

        Examples: 'fmp', 'coingecko'

        Must be:
        - Lowercase alphanumeric with underscores
        - Unique across all registered providers
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Human-readable provider name (e.g. 'Financial Modeling Prep')."""
        pass

    @property
    @abstractmethod
    def asset_kind(self) -> AssetKind:
        """Asset kind this provider is authoritative for."""
        pass

    @property
    @abstractmethod
    def test_cases(self) -> list[dict]:
        """
        Test cases for automated provider testing.

        Each dict contains:
        - stable_id: Identifier expected to resolve
        - symbol: Symbol expected to resolve to the same instrument
        """
        pass

    @property
    @abstractmethod
    def test_search_query(self) -> Optional[str]:
        """Search query expected to return at least one result (None to skip search tests)."""
        pass

    @abstractmethod
    async def profile_by_stable_id(self, stable_id: str) -> Optional[FAProfile]:
        """
        Authoritative profile lookup by durable identifier.

        Args:
            stable_id: ISIN or coin id (already normalized)

        Returns:
            FAProfile whose stable_id equals the requested one, or None

        Raises:
            ProviderUnavailableError: network/HTTP/payload failure
        """
        pass

    @abstractmethod
    async def profile_by_symbol(self, symbol: str) -> Optional[FAProfile]:
        """
        Authoritative lookup by current trading symbol.

        Used to find which instrument currently owns a symbol.

        Returns:
            FAProfile or None

        Raises:
            ProviderUnavailableError: network/HTTP/payload failure
        """
        pass

    @abstractmethod
    async def search(self, query: str) -> list[FAProfile]:
        """
        Free-text discovery.

        Returns:
            List of FAProfile (may be empty)

        Raises:
            ProviderUnavailableError: network/HTTP/payload failure
        """
        pass


# ============================================================================
# PLUGIN HELPERS
# ============================================================================


def decode_json(response: httpx.Response, provider_code: str):
    """
    Decode a JSON response body, converting parse failures to ProviderUnavailableError.

    Args:
        response: httpx response (status already checked by caller)
        provider_code: Provider code for error details

    Returns:
        Decoded JSON (dict or list)
    """
    try:
        return response.json()
    except ValueError as e:
        raise ProviderUnavailableError(
            f"Invalid JSON from {provider_code}: {e}",
            details={"provider": provider_code, "url": str(response.request.url)}
            )


def clean_text(value) -> Optional[str]:
    """Strip a payload string; empty or non-string values become None."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


# ============================================================================
# CORE HELPERS
# ============================================================================


async def call_provider(provider: AssetSourceProvider, operation: str, argument: str, timeout: float):
    """
    Invoke a provider capability bounded by a timeout.

    Timeouts and ProviderUnavailableError are both surfaced as
    ExternalRequestError (retryable); a None/[] answer is returned as-is.

    Args:
        provider: Provider instance
        operation: 'profile_by_stable_id', 'profile_by_symbol' or 'search'
        argument: Identifier, symbol or query
        timeout: Seconds before the call is abandoned

    Returns:
        Whatever the capability returns (FAProfile | None, or list[FAProfile])
    """
    method = getattr(provider, operation)
    details = {"provider": provider.provider_code, "operation": operation, "argument": argument}
    try:
        return await asyncio.wait_for(method(argument), timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"Provider call timed out after {timeout}s", **details)
        raise ExternalRequestError(
            f"{provider.provider_name} did not answer within {timeout}s",
            details=details
            ) from e
    except ExternalRequestError:
        raise
    except ProviderUnavailableError as e:
        logger.warning(f"Provider call failed: {e.message}", **details)
        raise ExternalRequestError(e.message, details={**e.details, **details}) from e
