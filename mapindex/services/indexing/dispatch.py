from __future__ import annotations

import asyncio
import logging
from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings

from mapindex.core.config import get_settings
from mapindex.domain.events import parse_event


logger = logging.getLogger(__name__)

INDEX_JOB_NAME = "index_map_event"

_pool_by_loop: tuple[asyncio.AbstractEventLoop, ArqRedis] | None = None
_pool_lock = asyncio.Lock()


def _queue_key(queue_name: str) -> str:
    # arq keeps queued jobs in a sorted set named after the queue.
    return f"arq:queue:{queue_name}"


async def get_redis_pool() -> ArqRedis:
    # Pools are bound to the loop that created them.
    global _pool_by_loop
    loop = asyncio.get_running_loop()
    cached = _pool_by_loop
    if cached is not None and cached[0] is loop:
        return cached[1]
    async with _pool_lock:
        if _pool_by_loop is None or _pool_by_loop[0] is not loop:
            settings = get_settings()
            pool = await create_pool(
                RedisSettings.from_dsn(settings.redis_url),
                default_queue_name=settings.index_queue_name,
            )
            _pool_by_loop = (loop, pool)
        return _pool_by_loop[1]


async def enqueue_map_event(payload: dict[str, Any], *, job_id: str | None = None) -> str | None:
    """Validate ``payload`` and hand it to the index worker queue.

    Returns the arq job id, or None when a job with ``job_id`` already exists.
    """
    event = parse_event(payload)
    redis = await get_redis_pool()
    job = await redis.enqueue_job(
        INDEX_JOB_NAME,
        event.model_dump(by_alias=True),
        _job_id=job_id,
    )
    if job is None:
        logger.info("index_job_duplicate job=%s map=%s", job_id, event.map_key)
        return None
    logger.info("index_job_enqueued job=%s kind=%s map=%s", job.job_id, event.kind, event.map_key)
    return job.job_id


async def get_queue_depth() -> int:
    settings = get_settings()
    redis = await get_redis_pool()
    return int(await redis.zcard(_queue_key(settings.index_queue_name)))
