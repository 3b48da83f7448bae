import os
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# Alembic Config object — access to alembic.ini values.
config = context.config

# Set up Python logging from alembic.ini.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# ── Point Alembic at our models ───────────────────────────────────────────────
from models import db  # noqa: E402
from database import DEFAULT_DATABASE_URL, normalize_db_url  # noqa: E402

target_metadata = db.metadata

# ── Database URL ──────────────────────────────────────────────────────────────
# Always taken from the environment; alembic.ini never holds credentials.
config.set_main_option(
    'sqlalchemy.url',
    normalize_db_url(os.getenv('DATABASE_URL', DEFAULT_DATABASE_URL)),
)


def run_migrations_offline() -> None:
    """Generate the SQL script without a live database."""
    context.configure(
        url=config.get_main_option('sqlalchemy.url'),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={'paramstyle': 'named'},
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix='sqlalchemy.',
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=True,   # SQLite needs batch mode for ALTERs
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
