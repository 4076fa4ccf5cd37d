"""
Asset service error taxonomy.

Every non-success path of the reconciliation and search engines raises one of
these. Collaborators map them to their own presentation (HTTP status, CLI exit
code); the only contract is that `retryable` tells transient conditions
(provider outage, lost write race) apart from terminal ones.

Hierarchy:
- AssetServiceError
  - NotFoundError
    - NothingFoundExternallyError
  - AlreadyExistsError
  - ExternallyDeindexedError
  - ProviderUnavailableError (retryable)
    - ExternalRequestError (retryable)
  - ConflictingWriterError (retryable)
  - StoreError
  - InvalidQueryError
"""
from typing import Optional


class AssetServiceError(Exception):
    """Base exception for asset service errors."""
    error_code: str = "ASSET_SERVICE_ERROR"
    retryable: bool = False

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}


class NotFoundError(AssetServiceError):
    """No local record and no external match."""
    error_code = "NOT_FOUND"


class NothingFoundExternallyError(NotFoundError):
    """Onboarding an identifier the external source does not know."""
    error_code = "NOTHING_FOUND_EXTERNALLY"


class AlreadyExistsError(AssetServiceError):
    """Onboarding an identifier that is already stored."""
    error_code = "ALREADY_EXISTS"


class ExternallyDeindexedError(AssetServiceError):
    """Record exists locally but the provider no longer has it. Refresh aborted, record untouched."""
    error_code = "EXTERNALLY_DEINDEXED"


class ProviderUnavailableError(AssetServiceError):
    """Network/HTTP/payload failure talking to an external provider."""
    error_code = "PROVIDER_UNAVAILABLE"
    retryable = True


class ExternalRequestError(ProviderUnavailableError):
    """Provider failure (or timeout) surfaced by the engines to their callers."""
    error_code = "EXTERNAL_REQUEST_ERROR"


class ConflictingWriterError(AssetServiceError):
    """Lost a race to update the same record or claim the same symbol."""
    error_code = "CONFLICTING_WRITER"
    retryable = True


class StoreError(AssetServiceError):
    """Persistence-layer failure."""
    error_code = "STORE_ERROR"


class InvalidQueryError(AssetServiceError):
    """Query or identifier reduces to nothing usable after normalization."""
    error_code = "INVALID_QUERY"
