#!/usr/bin/env python3
"""
Database schema validation for YieldSync.

Runs the Alembic migrations on a throwaway SQLite file and verifies:
- All model tables created (plus alembic_version)
- Column sets match the SQLModel metadata
- (kind, query) unique constraint on query_log
- (kind, upper(symbol)) index on assets, used by symbol lookups

Usage:
    pytest yieldsync/test_scripts/test_db/db_schema_validate.py -v
"""
import pytest
from sqlalchemy import create_engine, inspect, text

from yieldsync.app.db.base import SQLModel
from yieldsync.app.db.session import ensure_database_exists


@pytest.fixture(scope="module")
def migrated_db(tmp_path_factory):
    db_path = tmp_path_factory.mktemp("migrations") / "schema.db"
    db_url = f"sqlite:///{db_path}"
    assert ensure_database_exists(db_url) is True
    engine = create_engine(db_url)
    yield db_url, engine
    engine.dispose()


def test_tables_exist(migrated_db):
    """
    Verify all required tables exist.

    Uses SQLModel metadata to discover expected tables from models, so new
    tables are automatically checked.
    """
    _, engine = migrated_db
    actual_tables = set(inspect(engine).get_table_names())
    expected_tables = set(SQLModel.metadata.tables.keys()) | {"alembic_version"}

    missing = expected_tables - actual_tables
    assert not missing, f"Missing tables: {missing}"


def test_columns_match_models(migrated_db):
    _, engine = migrated_db
    inspector = inspect(engine)
    for table_name, table in SQLModel.metadata.tables.items():
        actual = {col["name"] for col in inspector.get_columns(table_name)}
        expected = {col.name for col in table.columns}
        assert actual == expected, f"{table_name}: migration columns {actual} != model columns {expected}"


def test_query_log_unique_constraint(migrated_db):
    _, engine = migrated_db
    constraints = inspect(engine).get_unique_constraints("query_log")
    assert any(sorted(c["column_names"]) == ["kind", "query"] for c in constraints), \
        f"(kind, query) unique constraint missing: {constraints}"


def test_assets_symbol_index(migrated_db):
    """The (kind, upper(symbol)) index is an expression index: read its DDL, the inspector skips those on SQLite."""
    _, engine = migrated_db
    with engine.connect() as conn:
        row = conn.execute(text(
            "SELECT sql FROM sqlite_master WHERE type = 'index' AND name = 'ix_assets_kind_symbol'"
            )).first()
    assert row is not None, "ix_assets_kind_symbol missing"
    ddl = row[0].lower().replace(" ", "")
    assert "(kind,upper(symbol))" in ddl
    assert not ddl.startswith("createunique")


def test_symbol_lookup_uses_index(migrated_db):
    """Case-insensitive symbol lookups (AssetStore.list_by_symbol) are served by the index."""
    _, engine = migrated_db
    with engine.connect() as conn:
        plan = conn.execute(text(
            "EXPLAIN QUERY PLAN SELECT stable_id FROM assets "
            "WHERE assets.kind = 'EQUITY' AND upper(assets.symbol) = 'AAPL'"
            )).fetchall()
    details = " ".join(str(step[-1]) for step in plan)
    assert "ix_assets_kind_symbol" in details, details


def test_second_run_is_noop(migrated_db):
    db_url, _ = migrated_db
    assert ensure_database_exists(db_url) is False


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-s"])
