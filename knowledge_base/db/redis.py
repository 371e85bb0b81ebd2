"""
Redis Connection Module

Redis is the broker between the API and the ARQ worker:
1. An upload saves the file and the document record
2. A process_document job is pushed to Redis
3. The API responds; a worker picks the job up and runs the pipeline

When Redis is down the document service runs the job in-process
instead, so Redis is required only for scaling out.
"""

import logging
from typing import Optional

from redis.asyncio import Redis, ConnectionPool
from arq.connections import RedisSettings, ArqRedis, create_pool

from knowledge_base.core.config import settings

logger = logging.getLogger(__name__)

# ============================================================
# Redis Connection Pool (health checks)
# ============================================================

_redis_pool: Optional[ConnectionPool] = None


def get_redis_pool() -> ConnectionPool:
    """Get or create the Redis connection pool."""
    global _redis_pool

    if _redis_pool is None:
        _redis_pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=10,
            decode_responses=False,
        )
        logger.info(f"Redis connection pool created: {settings.REDIS_URL}")

    return _redis_pool


async def close_redis_pool():
    """Close Redis connection pool during app shutdown."""
    global _redis_pool

    if _redis_pool is not None:
        await _redis_pool.disconnect()
        _redis_pool = None
        logger.info("Redis connection pool closed")


# ============================================================
# ARQ Redis Settings (for task queue)
# ============================================================

def get_arq_redis_settings() -> RedisSettings:
    """
    Get Redis settings for the ARQ task queue.

    Returns:
        RedisSettings parsed from REDIS_URL
        (redis://[[username]:[password]@]host[:port][/db-number])
    """
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    # Fail fast so uploads fall back to inline processing quickly
    redis_settings.conn_timeout = 2
    redis_settings.conn_retries = 1
    redis_settings.conn_retry_delay = 1
    return redis_settings


# ============================================================
# ARQ Connection Pool (for enqueueing tasks)
# ============================================================

_arq_pool: Optional[ArqRedis] = None


async def get_arq_pool() -> ArqRedis:
    """
    Get or create the ARQ Redis pool for enqueueing tasks.

    Usage:
        pool = await get_arq_pool()
        await pool.enqueue_job('process_document', document_id=doc_id)
    """
    global _arq_pool

    if _arq_pool is None:
        _arq_pool = await create_pool(get_arq_redis_settings())
        logger.info("ARQ Redis pool created")

    return _arq_pool


async def close_arq_pool():
    """Close ARQ Redis pool during shutdown."""
    global _arq_pool

    if _arq_pool is not None:
        await _arq_pool.close()
        _arq_pool = None
        logger.info("ARQ Redis pool closed")


# ============================================================
# Health Check
# ============================================================

async def check_redis_connection() -> bool:
    """
    Check if Redis is reachable.

    Returns:
        True if Redis responds to PING, False otherwise
    """
    try:
        redis = Redis(connection_pool=get_redis_pool())
        return bool(await redis.ping())
    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return False
