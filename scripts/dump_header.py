from __future__ import annotations

import argparse
import asyncio
import json

from mapindex.core.config import get_settings
from mapindex.core.log_config import configure_logging
from mapindex.depot.cache import DepotCache
from mapindex.headers.decoder import ExternalHeaderDecoder
from mapindex.headers.resolver import HeaderResolver


async def _dump(region: str, header_hash: str, localize: bool) -> None:
    # Print the decoded header, optionally with its main string table.
    settings = get_settings()
    depot = DepotCache(settings=settings)
    try:
        resolver = HeaderResolver(depot, ExternalHeaderDecoder(settings.header_decoder_command))
        document = await resolver.get_map_header(region, header_hash)
        output = {"header": document.model_dump(by_alias=True, exclude_none=True)}
        if localize:
            entry = document.main_locale_table(settings.default_locale)
            if entry is not None and entry.string_table:
                table = await resolver.get_map_localization(region, entry.string_table[0].hash)
                output["localization"] = {"locale": table.locale, "strings": table.strings}
        print(json.dumps(output, indent=2, ensure_ascii=False))
    finally:
        await depot.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Fetch and decode a map header from the depot")
    parser.add_argument("region", choices=["us", "eu", "kr", "cn"])
    parser.add_argument("header_hash")
    parser.add_argument("--localize", action="store_true", help="include the main locale string table")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()
    configure_logging(args.log_level)
    asyncio.run(_dump(args.region, args.header_hash, args.localize))


if __name__ == "__main__":
    main()
