from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from mapindex.core.log_config import configure_logging
from mapindex.services.indexing.dispatch import enqueue_map_event, get_queue_depth


async def _enqueue(paths: list[Path], job_id: str | None) -> None:
    # Each file holds one event object or a list of them.
    for path in paths:
        raw = json.loads(path.read_text(encoding="utf-8"))
        payloads = raw if isinstance(raw, list) else [raw]
        for index, payload in enumerate(payloads):
            item_job_id = f"{job_id}-{index}" if job_id and len(payloads) > 1 else job_id
            enqueued = await enqueue_map_event(payload, job_id=item_job_id)
            print(f"{path.name}[{index}] job_id={enqueued}")
    print(f"queue_depth={await get_queue_depth()}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Enqueue map events for the index worker")
    parser.add_argument("files", nargs="+", type=Path)
    parser.add_argument("--job-id", default=None, help="deduplication id for the enqueued job")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()
    configure_logging(args.log_level)
    asyncio.run(_enqueue(args.files, args.job_id))


if __name__ == "__main__":
    main()
