from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from mapindex.core.errors import AssetNotFoundError, DepotFetchError, MalformedAssetError
from mapindex.depot.cache import DepotCache
from mapindex.domain.game import region_code
from mapindex.domain.models import MapHeader
from mapindex.headers.decoder import HeaderDecoder
from mapindex.headers.documents import HeaderDocument, LocalizationTable
from mapindex.headers.localization import parse_localization


logger = logging.getLogger(__name__)

HEADER_EXT = "s2mh"
LOCALE_EXT = "s2ml"
# Origins answering these for an archive probe are treated as "size unknown".
ARCHIVE_PROBE_TOLERATED_STATUSES = frozenset({503})


class HeaderResolver:
    def __init__(self, depot: DepotCache, decoder: HeaderDecoder) -> None:
        self.depot = depot
        self.decoder = decoder

    async def get_map_header(self, region: str, header_hash: str) -> HeaderDocument:
        path = await self.depot.get_or_fetch(region, f"{header_hash}.{HEADER_EXT}")
        raw = await self.decoder.decode(path)
        try:
            return HeaderDocument.model_validate(raw)
        except ValidationError as exc:
            raise MalformedAssetError(header_hash, f"unexpected header layout: {exc.error_count()} errors") from exc

    async def get_map_localization(self, region: str, table_hash: str) -> LocalizationTable:
        path = await self.depot.get_or_fetch(region, f"{table_hash}.{LOCALE_EXT}")
        data = await asyncio.to_thread(path.read_bytes)
        return parse_localization(data, asset_hash=table_hash)

    async def populate_revision(self, header: MapHeader) -> HeaderDocument:
        """Decode the revision's header asset and back-fill depot metadata on ``header``."""
        region = region_code(header.region_id)
        logger.debug("resolving_header map=%s hash=%s", header.link_ver, header.header_hash)
        document = await self.get_map_header(region, header.header_hash)

        if header.uploaded_at is None:
            head = await self.depot.retrieve_head(region, f"{header.header_hash}.{HEADER_EXT}")
            header.uploaded_at = head.last_modified
        if header.archive_size is None:
            header.archive_size = await self._probe_archive_size(region, document, header)
        header.archive_hash = document.archive_handle.hash
        return document

    async def _probe_archive_size(self, region: str, document: HeaderDocument, header: MapHeader) -> int | None:
        archive = document.archive_handle
        try:
            head = await self.depot.retrieve_head(region, archive.filename)
        except AssetNotFoundError:
            logger.info("archive_missing map=%s archive=%s", header.link_ver, archive.filename)
            return None
        except DepotFetchError as exc:
            if exc.status_code in ARCHIVE_PROBE_TOLERATED_STATUSES:
                logger.info("archive_size_unavailable map=%s status=%s", header.link_ver, exc.status_code)
                return None
            raise
        # A missing length usually means the origin holds a broken archive.
        return head.content_length
