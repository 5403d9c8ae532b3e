import asyncio
from logging.config import fileConfig

from sqlalchemy.engine import Connection

from alembic import context

# Import our application config and models
from libs.common.config import get_settings
from libs.db.base import Base
from libs.db.config import build_engine

# Import all models here so they are registered with Base.metadata
import services.store_service.models  # noqa: F401

settings = get_settings()

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Override sqlalchemy.url with our settings
url = settings.DATABASE_URL.replace("%", "%%")
config.set_main_option("sqlalchemy.url", url)


def include_object(object, name, type_, reflected, compare_to):
    """Keep tables owned by the auth provider out of autogenerate."""
    if type_ == "table" and object.info.get("skip_autogenerate", False):
        return False
    return True


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    The store revision inspects the live database, so offline mode can only
    emit the version bookkeeping.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_object=include_object,
        transaction_per_migration=False,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    """Run migrations in 'online' mode through the async engine.

    SQLite foreign keys stay off so batch table rebuilds do not cascade.
    """
    connectable = build_engine(settings.DATABASE_URL, sqlite_foreign_keys=False)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
