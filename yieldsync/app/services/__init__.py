"""
Services package.
Business logic and external integrations.

Service Layer:
- AssetStore / QueryLogStore: persistence boundary (services/asset_store.py, services/query_log_store.py)
- AssetReconciliationService: onboarding, staleness-driven refresh, symbol collision repair
- AssetSearchService: throttled external search merged with local matches
- build_asset_services: explicit wiring of the above (services/service_factory.py)
"""
from yieldsync.app.services.errors import (
    AssetServiceError,
    NotFoundError,
    NothingFoundExternallyError,
    AlreadyExistsError,
    ExternallyDeindexedError,
    ProviderUnavailableError,
    ExternalRequestError,
    ConflictingWriterError,
    StoreError,
    InvalidQueryError,
    )

__all__ = [
    "AssetServiceError",
    "NotFoundError",
    "NothingFoundExternallyError",
    "AlreadyExistsError",
    "ExternallyDeindexedError",
    "ProviderUnavailableError",
    "ExternalRequestError",
    "ConflictingWriterError",
    "StoreError",
    "InvalidQueryError",
    ]
