import asyncio
from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from storyhub.models import Base, DATABASE_URL

config = context.config

# target metadata for autogenerate
target_metadata = Base.metadata

MIGRATION_OPTIONS = {
    'target_metadata': target_metadata,
    'compare_type': True,
    # SQLite can only ALTER through table copies
    'render_as_batch': DATABASE_URL.startswith('sqlite'),
}


def run_migrations_offline():
    """Emit the migration SQL to stdout instead of running it."""
    context.configure(url=DATABASE_URL, literal_binds=True, **MIGRATION_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


def apply_migrations(connection):
    context.configure(connection=connection, **MIGRATION_OPTIONS)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online():
    engine: AsyncEngine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(apply_migrations)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
