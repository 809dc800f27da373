import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlmodel import SQLModel

# Project root on sys.path so repolens.* imports work when alembic runs from anywhere
BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))

from repolens.core.config import settings  # noqa: E402
from repolens.core.database import _normalized_database_url  # noqa: E402
from repolens.models import kv  # noqa: E402,F401

config = context.config

# sqlalchemy.url always follows STORE_URL; a Redis store has nothing to migrate
if settings.uses_redis:
    raise SystemExit("STORE_URL points at Redis; migrations only apply to the SQL key-value backend.")
config.set_main_option("sqlalchemy.url", _normalized_database_url(settings.store_url))

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    """Emit SQL without an engine."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
