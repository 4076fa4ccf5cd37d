"""
Database models for YieldSync.

All models use SQLModel (SQLAlchemy 2.x) with the following conventions:
- Timestamps in UTC (created_at, updated_at, last_refreshed_at)
- Stable identifiers (ISIN, coin id) are the only durable identity of an asset
- Trading symbols are mutable and deliberately NOT unique at schema level
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint, Index, func
from sqlmodel import Field, SQLModel

from yieldsync.app.utils.datetime_utils import utcnow

# Reserved symbol value for "symbol currently unresolved".
SYMBOL_UNKNOWN = "0"


# ============================================================================
# ENUMS
# ============================================================================

class AssetKind(str, Enum):
    """
    Asset kind, selects which external source is authoritative for a record.

    Usage: stored in `assets.kind` and `query_log.kind`. Symbol uniqueness
    (one live owner per symbol) is evaluated per kind: a stock and a coin
    may legitimately share a ticker.

    Values:
    - EQUITY: Listed equity identified by ISIN (e.g. US0378331005)
    - DIGITAL_ASSET: Crypto asset identified by the platform coin id (e.g. bitcoin)
    """
    EQUITY = "EQUITY"
    DIGITAL_ASSET = "DIGITAL_ASSET"


# ============================================================================
# MODELS
# ============================================================================

class Asset(SQLModel, table=True):
    """
    Canonical asset record, reconciled periodically against an external source.

    Identity:
    - stable_id is the primary key and is never reassigned or reused
    - symbol is the current trading symbol; exchanges and platforms reassign
      symbols, so two records may transiently claim the same one while a
      reconciliation is in progress. The "one live owner per symbol and kind"
      rule is restored by the reconciliation engine, not by a constraint.
    - symbol == SYMBOL_UNKNOWN ("0") marks a record whose symbol was demoted
      and could not be re-resolved yet

    Concurrency:
    - version is bumped on every write; writers pass the version they read
      and lose (ConflictingWriterError) when it moved underneath them

    Notes:
    - last_refreshed_at is None for records never reconciled externally
    - descriptive fields (name, venue, sector, industry) are best-effort
    """
    __tablename__ = "assets"

    stable_id: str = Field(primary_key=True)
    kind: AssetKind = Field(nullable=False)
    symbol: str = Field(default=SYMBOL_UNKNOWN, nullable=False)

    name: Optional[str] = Field(default=None)
    venue: Optional[str] = Field(default=None, description="Exchange or chain/platform")
    sector: Optional[str] = Field(default=None)
    industry: Optional[str] = Field(default=None)

    last_refreshed_at: Optional[datetime] = Field(default=None)
    version: int = Field(default=1, nullable=False)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# Symbol lookups compare upper(symbol); the index covers that expression, not the raw column
Index("ix_assets_kind_symbol", Asset.__table__.c.kind, func.upper(Asset.__table__.c.symbol))


class QueryLog(SQLModel, table=True):
    """
    Search throttle log: last time a normalized query was sent to the external source.

    One row per (kind, query). Rows are upserted (INSERT ... ON CONFLICT DO UPDATE),
    never duplicated.
    """
    __tablename__ = "query_log"
    __table_args__ = (
        UniqueConstraint("kind", "query", name="uq_query_log_kind_query"),
        )

    id: Optional[int] = Field(default=None, primary_key=True)
    kind: AssetKind = Field(nullable=False)
    query: str = Field(nullable=False)
    last_requested_at: datetime = Field(default_factory=utcnow)
