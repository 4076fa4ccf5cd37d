"""
Database session management.
Handles SQLite connection and session lifecycle with async support.

Engines and session factories are built explicitly and handed to the services
that need them (see services/service_factory.py); nothing here keeps a
module-level engine or pool.
"""
import subprocess
import sys
from pathlib import Path
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from yieldsync.app.config import get_settings, PROJECT_ROOT
from yieldsync.app.db.base import SQLModel
from yieldsync.app.logging_config import get_logger

logger = get_logger(__name__)


def _sqlite_path(db_url: str) -> Optional[Path]:
    """Return the filesystem path of a sqlite:/// URL (None for other backends)."""
    for prefix in ("sqlite+aiosqlite:///", "sqlite:///"):
        if db_url.startswith(prefix):
            db_path_str = db_url[len(prefix):]
            if not db_path_str.startswith("/"):
                # Relative path - resolve from project root
                return PROJECT_ROOT / db_path_str
            return Path(db_path_str)
    return None


def get_async_engine(db_url: Optional[str] = None) -> AsyncEngine:
    """
    Create and configure an async database engine.

    Args:
        db_url: Database URL; defaults to settings.DATABASE_URL (test-mode aware)

    Returns:
        AsyncEngine: SQLAlchemy async engine configured for SQLite with aiosqlite
    """
    if db_url is None:
        db_url = get_settings().DATABASE_URL

    # Ensure database directory exists
    db_path = _sqlite_path(db_url)
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    # Convert sqlite:/// to sqlite+aiosqlite:/// for async
    if db_url.startswith("sqlite:///"):
        db_url = db_url.replace("sqlite:///", "sqlite+aiosqlite:///")

    engine = create_async_engine(
        db_url,
        echo=False,
        # NullPool for SQLite - each connection is independent
        poolclass=NullPool,
        )
    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build a session factory bound to the given engine.

    expire_on_commit=False keeps loaded attributes readable after commit,
    stores convert rows to detached schema objects right after that.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """
    Create all tables from SQLModel metadata.

    Used by tests and throwaway databases; persistent databases go through
    Alembic (ensure_database_exists).
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def ensure_database_exists(db_url: Optional[str] = None) -> bool:
    """
    Ensure database exists and is migrated.
    If database file doesn't exist OR is empty, run migrations automatically.

    This function is used by:
    - asset_cli.py init-db
    - Test scripts that need a migrated database file

    Returns:
        True if migrations were run, False if the database was already initialized
    """
    # Get settings at call time to respect test mode
    if db_url is None:
        db_url = get_settings().DATABASE_URL

    db_path = _sqlite_path(db_url)
    if db_path is None:
        logger.info("Non-SQLite database, skipping file checks", db_url=db_url)
        needs_migration = True
    elif not db_path.exists():
        logger.warning("Database file not found, running migrations", db_path=str(db_path))
        needs_migration = True
    elif db_path.stat().st_size == 0:
        logger.warning("Database file is empty (0 bytes), running migrations", db_path=str(db_path))
        needs_migration = True
    else:
        # Check if database has tables using SQLite directly
        # This is faster than spinning up an async engine
        import sqlite3
        conn = sqlite3.connect(str(db_path))
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT count(*) FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'")
            table_count = cursor.fetchone()[0]
        finally:
            conn.close()

        needs_migration = table_count == 0
        if needs_migration:
            logger.warning("Database has no tables, running migrations", db_path=str(db_path))
        else:
            logger.info(f"Database initialized with {table_count} tables", db_path=str(db_path))

    if not needs_migration:
        return False

    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    alembic_ini = PROJECT_ROOT / "yieldsync" / "alembic.ini"
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "-c", str(alembic_ini), "-x", f"sqlalchemy.url={db_url}", "upgrade", "head"],
        cwd=str(PROJECT_ROOT),
        capture_output=True,
        text=True,
        )
    if result.returncode != 0:
        logger.error("Database migration failed", stderr=result.stderr)
        raise RuntimeError(f"Database migration failed: {result.stderr}")

    logger.info("Database migrations completed successfully", db_url=db_url)
    return True
