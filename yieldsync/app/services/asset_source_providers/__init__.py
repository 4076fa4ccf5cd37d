"""Asset profile providers (fmp, coingecko, mockprov).

Modules placed here register themselves with @register_provider and are
imported by `provider_registry.AssetProviderRegistry.auto_discover()`.
"""
__all__ = []
