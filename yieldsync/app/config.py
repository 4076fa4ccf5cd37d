"""
Application configuration module.
Loads environment variables and provides application-wide settings.
"""
import os
from pathlib import Path
from typing import Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Get project root (two levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Global flag to indicate test mode (set via --test flag or YIELDSYNC_TEST_MODE env var)
_test_mode = os.environ.get("YIELDSYNC_TEST_MODE", "").lower() in ("1", "true", "yes")


def set_test_mode(enabled: bool = True):
    """
    Enable/disable test mode globally.
    When enabled, DATABASE_URL will automatically use TEST_DATABASE_URL.

    Args:
        enabled: True to enable test mode, False to disable
    """
    global _test_mode
    _test_mode = enabled
    os.environ["YIELDSYNC_TEST_MODE"] = "1" if enabled else "0"


def is_test_mode() -> bool:
    """Check if test mode is enabled."""
    return _test_mode


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables or .env file.
    (Note: Environment variables take precedence over .env file)
    """
    # Database
    DATABASE_URL: str = "sqlite:///./yieldsync/data/sqlite/app.db"
    TEST_DATABASE_URL: str = "sqlite:///./yieldsync/data/sqlite/test_app.db"  # Test database (same dir as app.db)

    PROJECT_NAME: str = "YieldSync"
    VERSION: str = "0.1.0"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"  # "console" (human-readable) or "json"
    LOG_FILE_ENABLED: bool = False
    LOG_DIR: Optional[str] = None  # Default: <project root>/logs

    # External providers (keys are optional: providers degrade to anonymous access)
    FMP_API_KEY: Optional[str] = None
    FMP_BASE_URL: str = "https://financialmodelingprep.com"
    COINGECKO_API_KEY: Optional[str] = None
    COINGECKO_BASE_URL: str = "https://api.coingecko.com"
    OPENFIGI_API_KEY: Optional[str] = None
    OPENFIGI_BASE_URL: str = "https://api.openfigi.com"

    # Provider selection per asset kind (codes registered in AssetProviderRegistry)
    EQUITY_PROVIDER: str = "fmp"
    DIGITAL_ASSET_PROVIDER: str = "coingecko"
    PROVIDER_TIMEOUT_SECONDS: float = 30.0

    # Staleness windows
    ASSET_REFRESH_WINDOW_MINUTES: int = 10080  # One week
    QUERY_REFRESH_WINDOW_MINUTES: int = 1440  # One day

    # Search
    SEARCH_RESULT_CAP: int = 10
    SUPPORTED_STOCK_EXCHANGES: list[str] = ["nasdaq", "nyse", "amex"]

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        case_sensitive=True,
        env_file_encoding='utf-8'
        )


def get_settings() -> Settings:
    """
    Get settings instance.

    In test mode, DATABASE_URL is automatically overridden with TEST_DATABASE_URL.

    Returns:
        Settings: Application settings
    """
    settings = Settings()

    # Override DATABASE_URL if in test mode
    if is_test_mode():
        settings.DATABASE_URL = settings.TEST_DATABASE_URL

    return settings
