"""
Async PostgreSQL connection pool module for the prediction document store.

Prediction records are stored as rows of the ``predictions`` table whose
document-shaped fields (request, workflow payload, outputs, error) live in
JSONB columns. All connections flow through this module, which owns a single
asyncpg pool for the process.

Key Components:
- Global connection pool singleton (_pool)
- init_db(): Create the pool and the schema at application startup
- get_db_pool(): Get the pool instance (initializes if needed)
- close_db(): Gracefully close the pool at application shutdown

Connection Pool Configuration:
- min_size: 1
- max_size: 10
- command_timeout: 60 seconds

Usage:
    # At application startup (in FastAPI lifespan)
    await init_db()

    # In services or endpoints
    pool = await get_db_pool()
    async with pool.acquire() as conn:
        rows = await conn.fetch(LIST_PREDICTIONS_FOR_USER, uid, 100)

    # At application shutdown
    await close_db()
"""

import logging
from typing import Optional

import asyncpg
from asyncpg import Pool

from tenderdesk.core.config import get_settings
from tenderdesk.sql.prediction_queries import CREATE_PREDICTIONS_SCHEMA


logger = logging.getLogger(__name__)


# =============================================================================
# Global Pool Singleton
# =============================================================================

# None until init_db() is called
_pool: Optional[Pool] = None


# =============================================================================
# Pool Lifecycle Functions
# =============================================================================

async def init_db() -> Pool:
    """
    Initialize the database connection pool and make sure the schema exists.

    Idempotent: if the pool is already initialized the existing pool is
    returned.

    Returns:
        Pool: The asyncpg connection pool instance.

    Raises:
        asyncpg.PostgresError: If connection to the database fails.
        OSError: If the database host is unreachable.
    """
    global _pool

    if _pool is None:
        settings = get_settings()

        _pool = await asyncpg.create_pool(
            dsn=settings.database_url,
            min_size=1,
            max_size=10,
            command_timeout=60,
        )

        async with _pool.acquire() as conn:
            await conn.execute(CREATE_PREDICTIONS_SCHEMA)
        logger.info("predictions schema ensured")

    return _pool


async def get_db_pool() -> Pool:
    """
    Get the database connection pool, initializing it lazily if needed.

    Returns:
        Pool: The asyncpg connection pool instance.
    """
    global _pool

    if _pool is None:
        await init_db()

    assert _pool is not None, "Pool should be initialized after init_db()"

    return _pool


async def close_db() -> None:
    """
    Close the database connection pool gracefully.

    Idempotent; after closing, the next get_db_pool() creates a new pool.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        _pool = None
