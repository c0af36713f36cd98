from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path

from mapindex.core.log_config import configure_logging
from mapindex.domain.models import MapCategory
from mapindex.persistence.db import SessionLocal, init_models


async def _init(categories_path: Path | None) -> None:
    # Create tables, then upsert the category catalogue when one is given.
    await init_models()
    if categories_path is None:
        return
    rows = json.loads(categories_path.read_text(encoding="utf-8"))
    async with SessionLocal() as session:
        for row in rows:
            await session.merge(
                MapCategory(
                    id=int(row["id"]),
                    code=str(row["code"]),
                    name=row.get("name"),
                    description=row.get("description"),
                    is_melee=bool(row.get("isMelee", row.get("is_melee", False))),
                )
            )
        await session.commit()
    print(f"categories_loaded={len(rows)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the mapindex schema and seed map categories")
    parser.add_argument("--categories", type=Path, default=None, help="JSON list of map categories")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()
    configure_logging(args.log_level)
    asyncio.run(_init(args.categories))


if __name__ == "__main__":
    main()
