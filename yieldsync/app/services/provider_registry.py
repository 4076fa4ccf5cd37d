"""
Asset source provider registry.

Provider modules live in asset_source_providers/ and register their class with
@register_provider(AssetProviderRegistry) at import time. The registry records
each class under its provider_code together with the AssetKind it serves, so
the service factory can pick "the configured provider for equities" and refuse
a code that serves another kind.

Discovery is lazy: the first lookup imports every module of the package.
"""
from __future__ import annotations

import importlib
from pathlib import Path
from typing import NamedTuple, Optional, Type

from yieldsync.app.db.models import AssetKind
from yieldsync.app.logging_config import get_logger
from yieldsync.app.services.asset_source import AssetSourceProvider

logger = get_logger(__name__)

PROVIDER_PACKAGE = "yieldsync.app.services.asset_source_providers"


class RegisteredProvider(NamedTuple):
    code: str
    name: str
    kind: AssetKind
    provider_class: Type[AssetSourceProvider]


class AssetProviderRegistry:
    """Asset source providers by code, and by the asset kind they serve."""

    _providers: dict[str, RegisteredProvider] = {}
    _discovery_done = False

    @classmethod
    def register(cls, provider_class: Type[AssetSourceProvider]) -> None:
        """
        Record provider_class under its provider_code and asset_kind.

        Both are instance properties, read from a default-constructed instance:
        providers must be constructible without arguments (keys and URLs default).
        """
        instance = provider_class()
        code = instance.provider_code
        kind = instance.asset_kind
        if not code or not isinstance(code, str):
            raise ValueError(f"{provider_class.__name__} must define a provider_code")
        if not isinstance(kind, AssetKind):
            raise ValueError(f"{provider_class.__name__} must declare the AssetKind it serves")
        if code in cls._providers and cls._providers[code].provider_class is not provider_class:
            logger.warning("Provider code registered twice, keeping the last one", code=code)
        cls._providers[code] = RegisteredProvider(
            code=code,
            name=instance.provider_name or code,
            kind=kind,
            provider_class=provider_class,
            )

    @classmethod
    def get_provider(cls, code: str) -> Optional[Type[AssetSourceProvider]]:
        """Provider class registered as code (None if unknown)."""
        cls.auto_discover()
        entry = cls._providers.get(code)
        return entry.provider_class if entry else None

    @classmethod
    def get_provider_instance(cls, code: str, **kwargs) -> Optional[AssetSourceProvider]:
        """Instantiate the provider registered as code, forwarding kwargs (None if unknown)."""
        provider_class = cls.get_provider(code)
        return provider_class(**kwargs) if provider_class else None

    @classmethod
    def codes_for_kind(cls, kind: AssetKind) -> list[str]:
        """Codes of the providers serving kind, sorted."""
        cls.auto_discover()
        return sorted(code for code, entry in cls._providers.items() if entry.kind == kind)

    @classmethod
    def provider_for_kind(cls, kind: AssetKind, code: str, **kwargs) -> AssetSourceProvider:
        """
        Instantiate provider code as the source for kind.

        Raises:
            ValueError: code is not registered, or serves another asset kind
        """
        available = cls.codes_for_kind(kind)
        if code not in available:
            entry = cls._providers.get(code)
            reason = f"serves {entry.kind.value}" if entry else "is not registered"
            raise ValueError(
                f"Provider '{code}' configured for {kind.value} {reason} "
                f"(available: {', '.join(available) or 'none'})"
                )
        return cls._providers[code].provider_class(**kwargs)

    @classmethod
    def list_providers(cls) -> list[dict[str, str]]:
        """Registered providers as dicts with 'code', 'name' and 'kind' keys."""
        cls.auto_discover()
        return [
            {'code': entry.code, 'name': entry.name, 'kind': entry.kind.value}
            for entry in sorted(cls._providers.values(), key=lambda e: (e.kind.value, e.code))
            ]

    @classmethod
    def auto_discover(cls) -> None:
        """
        Import every module of the provider package to trigger registration.

        Modules are imported by their package path so the registered classes are
        the objects a regular import returns. A module failing to import is
        logged and skipped.
        """
        if cls._discovery_done:
            return
        cls._discovery_done = True
        folder = Path(__file__).parent / PROVIDER_PACKAGE.rsplit(".", 1)[-1]
        for py in sorted(folder.glob('*.py')):
            if py.name == '__init__.py':
                continue
            module_name = f"{PROVIDER_PACKAGE}.{py.stem}"
            try:
                importlib.import_module(module_name)
            except Exception as e:
                logger.error("Error importing provider module", module_name=module_name, error=str(e))


def register_provider(registry_class: Type[AssetProviderRegistry]):
    """
    Class decorator registering an asset source provider.

    Example:
        @register_provider(AssetProviderRegistry)
        class MyAssetProvider(AssetSourceProvider):
            ...
    """

    def decorator(provider_class: Type[AssetSourceProvider]):
        registry_class.register(provider_class)
        return provider_class

    return decorator
