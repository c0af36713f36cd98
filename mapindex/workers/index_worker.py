from __future__ import annotations

import logging

from arq.connections import RedisSettings

from mapindex.core.config import get_settings
from mapindex.core.log_config import configure_logging
from mapindex.depot.cache import DepotCache
from mapindex.depot.transcode import AssetTranscoder
from mapindex.domain.events import parse_event
from mapindex.headers.decoder import ExternalHeaderDecoder
from mapindex.headers.resolver import HeaderResolver
from mapindex.persistence.db import SessionLocal
from mapindex.services.indexing.indexer import VersionedIndexer


logger = logging.getLogger(__name__)


async def index_map_event(ctx, payload: dict) -> bool:
    # Validate in the worker so malformed payloads fail the job, not the pool.
    event = parse_event(payload)
    indexer: VersionedIndexer = ctx["indexer"]
    logger.debug("index_job_received job=%s kind=%s map=%s", ctx.get("job_id"), event.kind, event.map_key)
    return await indexer.add(event)


async def _startup(ctx) -> None:
    # Build the indexer stack once per worker process.
    configure_logging()
    settings = get_settings()
    depot = DepotCache(settings=settings)
    resolver = HeaderResolver(depot, ExternalHeaderDecoder(settings.header_decoder_command))
    indexer = VersionedIndexer(
        SessionLocal,
        resolver,
        settings=settings,
        transcoder=AssetTranscoder(depot, settings=settings),
    )
    await indexer.load()
    ctx["depot"] = depot
    ctx["indexer"] = indexer


async def _shutdown(ctx) -> None:
    # Drain queued events before releasing the HTTP client.
    indexer = ctx.get("indexer")
    if indexer is not None:
        await indexer.close()
    depot = ctx.get("depot")
    if depot is not None:
        await depot.close()


class WorkerSettings:
    # Keep worker configuration as class attributes for arq CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.index_queue_name
    max_jobs = settings.index_max_concurrency * 4
    functions = [index_map_event]
    on_startup = _startup
    on_shutdown = _shutdown
