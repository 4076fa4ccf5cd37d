"""
Database module exports.
"""
from yieldsync.app.db.base import (
    SQLModel,
    # Enums
    AssetKind,
    # Models
    Asset,
    QueryLog,
    )
from yieldsync.app.db.models import SYMBOL_UNKNOWN
from yieldsync.app.db.session import get_async_engine, get_session_factory, create_schema

__all__ = [
    "SQLModel",
    "SYMBOL_UNKNOWN",
    "get_async_engine",
    "get_session_factory",
    "create_schema",
    # Enums
    "AssetKind",
    # Models
    "Asset",
    "QueryLog",
    ]
