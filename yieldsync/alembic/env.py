import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config
from sqlalchemy import pool

# Add the project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from yieldsync.app.config import get_settings
from yieldsync.app.db.base import SQLModel
# Registers assets / query_log on SQLModel.metadata
import yieldsync.app.db.models  # noqa: F401

config = context.config


def _resolve_database_url() -> str:
    """
    URL from `-x sqlalchemy.url=...` (tests, init-db) or from Settings.

    Migrations run on a sync engine: an aiosqlite URL is mapped back to
    the plain sqlite driver.
    """
    db_url = None
    for x_arg in context.get_x_argument():
        if x_arg.startswith('sqlalchemy.url='):
            db_url = x_arg.split('=', 1)[1]
            source = "-x parameter"
            break
    if db_url is None:
        db_url = get_settings().DATABASE_URL
        source = "config"
    print(f"[Alembic env.py] Using DATABASE_URL from {source}: {db_url}")
    return db_url.replace("sqlite+aiosqlite://", "sqlite://", 1)


config.set_main_option("sqlalchemy.url", _resolve_database_url())

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    """Emit SQL for the configured URL without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,  # SQLite ALTER TABLE support
        )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,
            compare_type=True,
            )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
