"""Migration environment for the task store.

Migrations are plain SQL (no ORM metadata). The database file defaults to
DATABASE_PATH from config and can be overridden per run::

    alembic -x db_path=/tmp/other.db upgrade head
"""
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine

import config as app_config

alembic_config = context.config
if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name, disable_existing_loggers=False)


def database_url() -> str:
    db_path = context.get_x_argument(as_dictionary=True).get("db_path", app_config.DATABASE_PATH)
    return f"sqlite:///{db_path}"


def run_offline(url: str) -> None:
    """Emit the migration SQL instead of applying it."""
    context.configure(url=url, target_metadata=None, literal_binds=True)
    with context.begin_transaction():
        context.run_migrations()


def run_online(url: str) -> None:
    engine = create_engine(url)

    with engine.connect() as connection:
        # SQLite cannot ALTER most constraints; batch mode rebuilds tables instead
        context.configure(connection=connection, target_metadata=None, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline(database_url())
else:
    run_online(database_url())
