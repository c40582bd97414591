"""
Alembic environment for the auth schema.

The database URL comes from ``Config.DATABASE_URL`` unless overridden on the
command line with ``alembic -x url=postgresql://... upgrade head``.
"""

from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

import db.models  # noqa: F401  registers every auth table on Base.metadata
from config import Config
from db.engine import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    # Kept out of config.set_main_option: ConfigParser treats % in passwords as interpolation.
    return context.get_x_argument(as_dictionary=True).get("url") or Config.DATABASE_URL


def run_migrations_offline() -> None:
    """Emit migration SQL without a live connection."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = create_engine(_database_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
