from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from forumapi.app import _database_url
from forumapi.extensions import db
import forumapi.models  # noqa: F401  registers the forum tables on db.metadata

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Same MYSQL_URL / MYSQL_* lookup as create_app; forumapi.app loads .env on import.
config.set_main_option('sqlalchemy.url', _database_url())

MIGRATION_OPTIONS = {
    'target_metadata': db.metadata,
    'compare_type': True,
    'compare_server_default': True,
}


def run_migrations_offline() -> None:
    """Writes the forum schema changes as SQL instead of applying them."""
    context.configure(
        url=config.get_main_option('sqlalchemy.url'),
        literal_binds=True,
        dialect_opts={'paramstyle': 'named'},
        **MIGRATION_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix='sqlalchemy.',
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(connection=connection, **MIGRATION_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
