"""Process-wide asyncpg pool shared by the server stores."""

import asyncio
import logging
from typing import Optional

import asyncpg

from DSC_Storage.dsc_server import config
from DSC_Storage.dsc_shared.errors import ConnectionPoolError

logger = logging.getLogger(__name__)

pool: Optional[asyncpg.Pool] = None


async def create_pool(
    dsn: Optional[str] = None,
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
) -> asyncpg.Pool:
    """Open the shared pool on first call and return it on every later one."""
    global pool
    if pool is not None:
        return pool

    min_size = config.PG_POOL_MIN_SIZE if min_size is None else min_size
    max_size = config.PG_POOL_MAX_SIZE if max_size is None else max_size
    try:
        pool = await asyncpg.create_pool(
            dsn=dsn or config.PG_DSN,
            min_size=min_size,
            max_size=max_size,
            command_timeout=config.PG_COMMAND_TIMEOUT,
        )
    except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as e:
        raise ConnectionPoolError(f"Failed to create pool: {e}")

    logger.info("PostgreSQL pool ready (min=%d, max=%d)", min_size, max_size)
    return pool


def get_pool() -> asyncpg.Pool:
    if pool is None:
        raise ConnectionPoolError("Pool not initialized. Call create_pool() first.")
    return pool


async def close_pool() -> None:
    global pool
    if pool is None:
        return
    try:
        await asyncio.wait_for(pool.close(), timeout=config.PG_CLOSE_TIMEOUT)
    except asyncio.TimeoutError:
        logger.warning("Pool did not close within %.1fs; terminating", config.PG_CLOSE_TIMEOUT)
        pool.terminate()
    finally:
        pool = None


async def health_check() -> bool:
    if pool is None:
        return False
    try:
        return await pool.fetchval("SELECT 1") == 1
    except (asyncpg.PostgresError, OSError) as e:
        logger.warning("PostgreSQL health check failed: %s", e)
        return False
