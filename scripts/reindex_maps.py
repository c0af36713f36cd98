from __future__ import annotations

import argparse
import asyncio
import logging

from mapindex.core.config import get_settings
from mapindex.core.log_config import configure_logging
from mapindex.depot.cache import DepotCache
from mapindex.headers.decoder import ExternalHeaderDecoder
from mapindex.headers.resolver import HeaderResolver
from mapindex.persistence.db import SessionLocal
from mapindex.persistence.repos.maps import list_map_keys
from mapindex.services.indexing.indexer import VersionedIndexer
from mapindex.services.telemetry import snapshot


logger = logging.getLogger(__name__)


async def _reindex(region_id: int | None, map_id: int | None, offset_id: int | None, force: bool) -> None:
    # Re-project stored maps from their newest recorded revision.
    settings = get_settings()
    depot = DepotCache(settings=settings)
    resolver = HeaderResolver(depot, ExternalHeaderDecoder(settings.header_decoder_command))
    indexer = VersionedIndexer(SessionLocal, resolver, settings=settings)
    try:
        await indexer.load()
        async with SessionLocal() as session:
            keys = await list_map_keys(session, region_id=region_id, map_id=map_id, offset_id=offset_id)
        logger.info("reindex_start maps=%d force=%s", len(keys), force)
        updated = 0
        for index, (key_region, key_map) in enumerate(keys, start=1):
            if await indexer.reindex_map(key_region, key_map, force=force):
                updated += 1
            if index % 100 == 0:
                logger.info("reindex_progress done=%d total=%d updated=%d", index, len(keys), updated)
        print(f"maps_total={len(keys)}")
        print(f"maps_updated={updated}")
        print(f"telemetry={snapshot()['counters']}")
    finally:
        await indexer.close()
        await depot.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Reindex stored maps from their revision history")
    parser.add_argument("--region", type=int, default=None, help="region id (1=US, 2=EU, 3=KR, 5=CN)")
    parser.add_argument("--map-id", type=int, default=None)
    parser.add_argument("--offset", type=int, default=None, help="resume from this internal map id")
    parser.add_argument("--force", action="store_true", help="re-project even when already current")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()
    configure_logging(args.log_level)
    asyncio.run(_reindex(args.region, args.map_id, args.offset, args.force))


if __name__ == "__main__":
    main()
