"""initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Tables: assets, query_log
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = '001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""
    conn = op.get_bind()

    print("🔧 Starting migration 001_initial...")
    print("=" * 60)

    # Assets table (symbol deliberately NOT unique: collisions are repaired by the reconciliation engine)
    print("📦 Creating table: assets...")
    conn.execute(sa.text("""CREATE TABLE assets
                            (
                                stable_id         VARCHAR     NOT NULL PRIMARY KEY,
                                kind              VARCHAR(13) NOT NULL,
                                symbol            VARCHAR     NOT NULL,
                                name              VARCHAR,
                                venue             VARCHAR,
                                sector            VARCHAR,
                                industry          VARCHAR,
                                last_refreshed_at DATETIME,
                                version           INTEGER     NOT NULL,
                                created_at        DATETIME    NOT NULL,
                                updated_at        DATETIME    NOT NULL
                            )"""))
    print("  ✓ Table created")
    conn.execute(sa.text("CREATE INDEX ix_assets_kind_symbol ON assets (kind, upper(symbol))"))
    print("  ✓ Index created")

    # Query log table (search throttle)
    print("📦 Creating table: query_log...")
    conn.execute(sa.text("""CREATE TABLE query_log
                            (
                                id                INTEGER PRIMARY KEY,
                                kind              VARCHAR(13) NOT NULL,
                                query             VARCHAR     NOT NULL,
                                last_requested_at DATETIME    NOT NULL,
                                CONSTRAINT uq_query_log_kind_query UNIQUE (kind, query)
                            )"""))
    print("  ✓ Table created")

    print("=" * 60)
    print("✅ Migration 001_initial completed")


def downgrade() -> None:
    """Drop all tables."""
    conn = op.get_bind()
    for table in ['query_log', 'assets']:
        conn.execute(sa.text(f"DROP TABLE IF EXISTS {table}"))
