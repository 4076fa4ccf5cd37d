"""
Database base module.
SQLModel base classes and metadata.
Import all models here so Alembic can detect them.
"""
from sqlmodel import SQLModel

# Import all models so Alembic can detect them
from yieldsync.app.db.models import (
    # Enums
    AssetKind,
    # Models
    Asset,
    QueryLog,
    )

__all__ = [
    "SQLModel",
    # Enums
    "AssetKind",
    # Models
    "Asset",
    "QueryLog",
    ]
