from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from uuid import uuid4

import httpx

from mapindex.core.config import Settings, get_settings
from mapindex.core.errors import AssetNotFoundError, DepotFetchError
from mapindex.depot.storage import HashShardStore
from mapindex.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

NOT_FOUND_STATUSES = frozenset({404, 410})
DOWNLOAD_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class DepotHead:
    status_code: int
    content_length: int | None
    last_modified: datetime | None


def _parse_content_length(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_last_modified(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _raise_for_status(filename: str, status_code: int) -> None:
    if 200 <= status_code < 300:
        return
    if status_code in NOT_FOUND_STATUSES:
        raise AssetNotFoundError(filename, status_code)
    raise DepotFetchError(filename, status_code)


class DepotCache:
    """Local cache of immutable depot assets keyed by content hash.

    Presence of a file under its shard path implies it is complete: bodies are
    streamed into a temporary file and renamed into place.
    """

    def __init__(
        self,
        root: str | Path | None = None,
        *,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.store = HashShardStore(root or self._settings.depot_cache_dir)
        self._hosts = self._settings.depot_region_hosts()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self._settings.depot_timeout_ms / 1000.0,
            transport=transport,
            follow_redirects=True,
        )
        self._inflight: dict[str, asyncio.Future[Path]] = {}

    def depot_url(self, region: str, filename: str = "") -> str:
        code = region.lower()
        host = self._hosts.get(code, self._settings.depot_default_host)
        return f"http://{code}.{host}:{self._settings.depot_port}/{filename}"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_or_fetch(self, region: str, filename: str) -> Path:
        target = self.store.path_for(filename)
        # No await between the existence check and the in-flight lookup, so a
        # finished download is always observed by one of the two.
        if target.exists():
            increment_counter("depot_cache_hits_total")
            return target
        pending = self._inflight.get(filename)
        if pending is None:
            pending = asyncio.ensure_future(self._download(region, filename, target))
            self._inflight[filename] = pending
            pending.add_done_callback(lambda _fut: self._inflight.pop(filename, None))
        return await asyncio.shield(pending)

    async def _download(self, region: str, filename: str, target: Path) -> Path:
        url = self.depot_url(region, filename)
        tmp_dir = self.store.root / ".tmp"
        await asyncio.to_thread(tmp_dir.mkdir, parents=True, exist_ok=True)
        tmp_path = tmp_dir / f"{filename}.{uuid4().hex[:8]}"
        logger.debug("depot_download_start url=%s", url)
        try:
            async with self._client.stream("GET", url) as response:
                _raise_for_status(filename, response.status_code)
                handle = await asyncio.to_thread(tmp_path.open, "wb")
                try:
                    async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                        await asyncio.to_thread(handle.write, chunk)
                finally:
                    await asyncio.to_thread(handle.close)
            await self.store.ensure_path_for(filename)
            await asyncio.to_thread(os.replace, tmp_path, target)
        except httpx.HTTPError as exc:
            increment_counter("depot_download_failures_total")
            raise DepotFetchError(filename, None, f"transfer of {filename!r} failed: {exc}") from exc
        except DepotFetchError:
            increment_counter("depot_download_failures_total")
            raise
        finally:
            await asyncio.to_thread(tmp_path.unlink, missing_ok=True)
        increment_counter("depot_downloads_total")
        logger.debug("depot_download_done url=%s path=%s", url, target)
        return target

    async def retrieve_head(self, region: str, filename: str) -> DepotHead:
        # Metadata-only probe; nothing is written to the cache.
        url = self.depot_url(region, filename)
        try:
            response = await self._client.head(url)
        except httpx.HTTPError as exc:
            raise DepotFetchError(filename, None, f"probe of {filename!r} failed: {exc}") from exc
        _raise_for_status(filename, response.status_code)
        return DepotHead(
            status_code=response.status_code,
            content_length=_parse_content_length(response.headers.get("content-length")),
            last_modified=_parse_last_modified(response.headers.get("last-modified")),
        )

    async def read_text(self, region: str, filename: str) -> str:
        target = self.store.path_for(filename)
        if target.exists():
            return await asyncio.to_thread(target.read_text, encoding="utf-8")
        try:
            response = await self._client.get(self.depot_url(region, filename))
        except httpx.HTTPError as exc:
            raise DepotFetchError(filename, None, f"transfer of {filename!r} failed: {exc}") from exc
        _raise_for_status(filename, response.status_code)
        return response.text
