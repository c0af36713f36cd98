from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mapindex.core.config import Settings, get_settings
from mapindex.core.errors import (
    LockContentionError,
    MapIndexError,
    RevisionConflictError,
)
from mapindex.depot.transcode import AssetTranscoder
from mapindex.domain.events import (
    MapDiscoverEvent,
    MapEvent,
    MapRevisionEvent,
    MapUnavailableEvent,
    MapVersionInfo,
)
from mapindex.domain.game import region_code
from mapindex.domain.models import Map, MapHeader
from mapindex.domain.versions import is_not_older
from mapindex.headers.documents import DepotFileHandle, HeaderDocument
from mapindex.headers.resolver import HeaderResolver
from mapindex.persistence.repos import maps as maps_repo
from mapindex.persistence.repos import profiles as profiles_repo
from mapindex.persistence.repos import tracking as tracking_repo
from mapindex.persistence.repos.categories import CategorySnapshot, load_category_snapshot
from mapindex.services.indexing.projection import (
    ProjectionSource,
    project_map_fields,
    select_main_locale,
)
from mapindex.services.indexing.queue import PriorityTaskPool
from mapindex.services.resilience import (
    header_retry_policy,
    is_store_contention,
    is_transient_fetch_error,
    retry_async,
    store_retry_policy,
)
from mapindex.services.telemetry import increment_counter, record_event


logger = logging.getLogger(__name__)

# Discover events carry the map's first snapshot and must not starve behind revisions.
PRIORITY_DISCOVER = 10
PRIORITY_UNAVAILABLE = 7
PRIORITY_REVISION = 5


def event_priority(event: MapEvent) -> int:
    if isinstance(event, MapDiscoverEvent):
        return PRIORITY_DISCOVER
    if isinstance(event, MapUnavailableEvent):
        return PRIORITY_UNAVAILABLE
    return PRIORITY_REVISION


@dataclass
class PreparedRevision:
    header: MapHeader
    # Set only when the header was decoded while preparing the revision.
    document: HeaderDocument | None
    is_new: bool


class VersionedIndexer:
    """Applies map events to the store while keeping each map's current version monotonic."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: HeaderResolver,
        *,
        settings: Settings | None = None,
        categories: CategorySnapshot | None = None,
        transcoder: AssetTranscoder | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._session_factory = session_factory
        self.resolver = resolver
        self.categories = categories
        self.transcoder = transcoder
        self._pool = PriorityTaskPool(self._settings.index_max_concurrency, name="index")
        self._header_policy = header_retry_policy(self._settings)
        self._store_policy = store_retry_policy(self._settings)

    async def load(self) -> None:
        # Categories are read once; a restart picks up edits.
        if self.categories is None:
            async with self._session_factory() as session:
                self.categories = await load_category_snapshot(session)
        logger.info(
            "indexer_loaded categories=%d concurrency=%d",
            len(self.categories),
            self._pool.concurrency,
        )

    async def close(self) -> None:
        logger.info("indexer_stopping queued=%d in_flight=%d", self._pool.qsize(), self._pool.pending)
        await self._pool.close()
        logger.info("indexer_stopped")

    async def add(self, event: MapEvent) -> bool:
        """Queue ``event`` and wait for it to be processed.

        Returns False when processing failed; the failure has been logged.
        Exhausted lock contention and other store errors are raised instead.
        """
        future = self._pool.submit(lambda: self.process_event(event), priority=event_priority(event))
        return await future

    async def process_event(self, event: MapEvent) -> bool:
        # Asset and decoder failures are contained per event; store failures propagate.
        if self.categories is None:
            await self.load()
        started = time.monotonic()
        success = False
        try:
            if isinstance(event, MapDiscoverEvent):
                await self.process_map_discover(event)
            elif isinstance(event, MapRevisionEvent):
                await self.process_map_revision(event)
            elif isinstance(event, MapUnavailableEvent):
                await self.process_map_unavailable(event)
            else:
                raise TypeError(f"unsupported map event {type(event).__name__}")
            success = True
        except (LockContentionError, DBAPIError):
            logger.exception("map_event_store_failed kind=%s map=%s", event.kind, event.map_key)
            raise
        except Exception:  # noqa: BLE001 - event failures are reported, never propagated
            logger.exception("map_event_failed kind=%s map=%s", event.kind, event.map_key)
        finally:
            latency_ms = (time.monotonic() - started) * 1000.0
            record_event(kind=event.kind, latency_ms=latency_ms, success=success)
        return success

    async def _resolve(self, func: Callable[[], Awaitable[Any]], what: str) -> Any:
        def _on_retry(exc: Exception, attempt: int) -> None:
            logger.warning("header_resolve_failed %s attempt=%d error=%s", what, attempt, exc)

        return await retry_async(
            func,
            policy=self._header_policy,
            retryable=is_transient_fetch_error,
            on_retry=_on_retry,
        )

    async def _with_store_retry(self, func: Callable[[], Awaitable[Any]], map_key: str) -> Any:
        def _on_retry(exc: Exception, attempt: int) -> None:
            logger.info("store_contention map=%s attempt=%d error=%s", map_key, attempt, type(exc).__name__)

        try:
            return await retry_async(
                func,
                policy=self._store_policy,
                retryable=is_store_contention,
                on_retry=_on_retry,
            )
        except (RevisionConflictError, DBAPIError) as exc:
            if is_store_contention(exc):
                raise LockContentionError(f"store contention persisted for map={map_key}") from exc
            raise

    async def prepare_revision(self, region_id: int, map_id: int, info: MapVersionInfo) -> PreparedRevision:
        version = info.version
        async with self._session_factory() as session:
            existing = await maps_repo.get_revision(session, region_id, map_id, version.major, version.minor)
        if existing is not None:
            return PreparedRevision(header=existing, document=None, is_new=False)

        header = MapHeader(
            region_id=region_id,
            map_id=map_id,
            major_version=version.major,
            minor_version=version.minor,
            header_hash=info.header_hash,
            is_private=info.is_private,
            is_extension_mod=info.is_extension_mod,
            archive_size=None,
            uploaded_at=None,
        )
        document = await self._resolve(lambda: self.resolver.populate_revision(header), header.link_ver)
        logger.info(
            "header_processed map=%s name=%s uploaded_at=%s",
            header.link_ver,
            document.filename,
            header.uploaded_at.isoformat() if header.uploaded_at else None,
        )
        return PreparedRevision(header=header, document=document, is_new=True)

    async def _projection_source(self, prepared: PreparedRevision) -> ProjectionSource:
        header = prepared.header
        region = region_code(header.region_id)
        document = prepared.document
        if document is None:
            document = await self._resolve(
                lambda: self.resolver.get_map_header(region, header.header_hash), header.link_ver
            )
            prepared.document = document
        locale = select_main_locale(document, self._settings.default_locale, header_hash=header.header_hash)
        table_hash = locale.string_table[0].hash
        localization = await self._resolve(
            lambda: self.resolver.get_map_localization(region, table_hash), header.link_ver
        )
        return ProjectionSource(document=document, locale=locale, localization=localization)

    async def _source_if_newer(
        self, prepared: PreparedRevision, *, require_map: bool, strict: bool = False
    ) -> ProjectionSource | None:
        # Read-only peek so depot I/O stays outside the write transaction.
        header = prepared.header
        async with self._session_factory() as session:
            map_row = await maps_repo.get_map(session, header.region_id, header.map_id)
        if map_row is None:
            if require_map:
                return None
        else:
            current = map_row.current_version.version
            if not is_not_older(header.version, current) or (strict and header.version == current):
                return None
        return await self._projection_source(prepared)

    async def _attach(self, session: AsyncSession, prepared: PreparedRevision) -> MapHeader:
        if prepared.is_new:
            session.add(prepared.header)
            return prepared.header
        return await session.merge(prepared.header)

    async def _refresh_tracking(
        self,
        session: AsyncSession,
        region_id: int,
        map_id: int,
        seen_at: datetime,
        *,
        create: bool = True,
        force: bool = False,
    ) -> None:
        tracking = await tracking_repo.get_tracking(session, region_id, map_id)
        if tracking is None:
            if create:
                session.add(tracking_repo.new_tracking(region_id, map_id, seen_at))
            return
        tracking_repo.mark_available(tracking, seen_at, force=force)

    async def process_map_discover(self, event: MapDiscoverEvent) -> None:
        logger.info("map_discover map=%s author=%s", event.map_key, event.author.name)

        async def _attempt() -> DepotFileHandle | None:
            initial = await self.prepare_revision(event.region_id, event.map_id, event.initial_revision)
            if event.initial_revision.map_version == event.latest_revision.map_version:
                latest = initial
            else:
                latest = await self.prepare_revision(event.region_id, event.map_id, event.latest_revision)
            source = await self._source_if_newer(latest, require_map=False)
            return await self._write_discover(event, initial, latest, source)

        icon = await self._with_store_retry(_attempt, event.map_key)
        await self._transcode_icon(event.region_id, icon)

    async def _write_discover(
        self,
        event: MapDiscoverEvent,
        initial: PreparedRevision,
        latest: PreparedRevision,
        source: ProjectionSource | None,
    ) -> DepotFileHandle | None:
        # Revisions, profile, map, variants and tracking commit together or not at all.
        seen_at = event.queried_at_dt
        projected_icon: DepotFileHandle | None = None
        async with self._session_factory() as session:
            try:
                initial_header = await self._attach(session, initial)
                latest_header = initial_header if latest is initial else await self._attach(session, latest)

                map_row = await maps_repo.get_map(session, event.region_id, event.map_id, for_update=True)
                is_new_map = map_row is None
                if map_row is None:
                    map_row = Map(region_id=event.region_id, map_id=event.map_id)

                variants = None
                current = map_row.current_version
                if current is None or is_not_older(latest_header.version, current.version):
                    if source is None:
                        raise RevisionConflictError(f"map {event.map_key} appeared while resolving revisions")
                    variants = project_map_fields(map_row, latest_header, source, self.categories)
                    projected_icon = source.document.icon
                if map_row.initial_version is None:
                    map_row.initial_version = initial_header
                    map_row.published_at = initial_header.uploaded_at
                if map_row.author is None:
                    map_row.author = await profiles_repo.get_or_build_profile(session, event.author, seen_at)
                if is_new_map:
                    session.add(map_row)
                if variants is not None:
                    await maps_repo.replace_variants(session, map_row, variants)
                await self._refresh_tracking(session, event.region_id, event.map_id, seen_at)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise RevisionConflictError(f"concurrent insert for map {event.map_key}") from exc
        logger.info(
            "map_discovered map=%s initial=%s current=%s",
            event.map_key,
            initial.header.version,
            map_row.current_version.version if map_row.current_version else None,
        )
        return projected_icon

    async def process_map_revision(self, event: MapRevisionEvent) -> None:
        prepared = await self.prepare_revision(event.region_id, event.map_id, event)
        if prepared.is_new:
            logger.info("map_revision map=%s version=%s", event.map_key, prepared.header.version)
            inserted = await self._with_store_retry(
                lambda: maps_repo.insert_revision_ignore_duplicate(self._session_factory, prepared.header),
                event.map_key,
            )
            if not inserted:
                increment_counter("revision_duplicates_total")
                logger.info("map_revision_duplicate map=%s version=%s", event.map_key, prepared.header.version)
                return
        else:
            logger.debug("map_revision_known map=%s version=%s", event.map_key, prepared.header.version)

        async def _attempt() -> DepotFileHandle | None:
            # A recorded revision may still be ahead of the map when an earlier delivery failed mid-way.
            source = await self._source_if_newer(prepared, require_map=True, strict=not prepared.is_new)
            if source is None and not prepared.is_new:
                return None
            return await self._write_revision(event, prepared.header, source)

        icon = await self._with_store_retry(_attempt, event.map_key)
        await self._transcode_icon(event.region_id, icon)

    async def _write_revision(
        self,
        event: MapRevisionEvent,
        header: MapHeader,
        source: ProjectionSource | None,
    ) -> DepotFileHandle | None:
        seen_at = event.queried_at_dt
        projected_icon: DepotFileHandle | None = None
        async with self._session_factory() as session:
            try:
                header = await session.merge(header)
                map_row = await maps_repo.get_map(session, event.region_id, event.map_id, for_update=True)
                if map_row is None:
                    # Maps are created by discover events only.
                    await self._refresh_tracking(
                        session, event.region_id, event.map_id, seen_at, create=False, force=True
                    )
                elif is_not_older(header.version, map_row.current_version.version):
                    if source is None:
                        raise RevisionConflictError(f"map {event.map_key} appeared while resolving revision")
                    variants = project_map_fields(map_row, header, source, self.categories)
                    await maps_repo.replace_variants(session, map_row, variants)
                    await self._refresh_tracking(session, event.region_id, event.map_id, seen_at, force=True)
                    projected_icon = source.document.icon
                    logger.info("map_current_advanced map=%s version=%s", event.map_key, header.version)
                else:
                    logger.info(
                        "map_revision_historic map=%s version=%s current=%s",
                        event.map_key,
                        header.version,
                        map_row.current_version.version,
                    )
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise RevisionConflictError(f"concurrent insert for map {event.map_key}") from exc
        return projected_icon

    async def process_map_unavailable(self, event: MapUnavailableEvent) -> None:
        reported_at = event.queried_at_dt

        async def _attempt() -> bool:
            async with self._session_factory() as session:
                try:
                    tracking = await tracking_repo.get_tracking(session, event.region_id, event.map_id)
                    if tracking is None:
                        tracking = tracking_repo.new_tracking(event.region_id, event.map_id)
                        session.add(tracking)
                    changed = tracking_repo.mark_unavailable(tracking, reported_at)
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    raise RevisionConflictError(f"concurrent tracking insert for map {event.map_key}") from exc
            if changed:
                logger.info(
                    "map_unavailable map=%s counter=%d",
                    event.map_key,
                    tracking.unavailability_counter,
                )
            else:
                logger.debug("map_unavailable_ignored map=%s", event.map_key)
            return changed

        await self._with_store_retry(_attempt, event.map_key)

    async def reindex_map(self, region_id: int, map_id: int, *, force: bool = False) -> bool:
        """Re-project a stored map from its newest recorded revision.

        Without ``force`` the projection is only rewritten when a newer revision
        than the current one is on record.
        """
        if self.categories is None:
            await self.load()
        map_key = f"{region_id}/{map_id}"
        async with self._session_factory() as session:
            map_row = await maps_repo.get_map(session, region_id, map_id)
            revisions = await maps_repo.list_revisions(session, region_id, map_id)
        if map_row is None or not revisions:
            logger.warning("reindex_skipped map=%s reason=not_indexed", map_key)
            return False
        newest = revisions[0]
        if not force and newest.version == map_row.current_version.version:
            return False

        prepared = PreparedRevision(header=newest, document=None, is_new=False)

        async def _attempt() -> DepotFileHandle | None:
            source = await self._projection_source(prepared)
            async with self._session_factory() as session:
                header = await session.merge(newest)
                current_map = await maps_repo.get_map(session, region_id, map_id, for_update=True)
                if current_map is None or not is_not_older(header.version, current_map.current_version.version):
                    return None
                variants = project_map_fields(current_map, header, source, self.categories)
                await maps_repo.replace_variants(session, current_map, variants)
                await session.commit()
            return source.document.icon

        icon = await self._with_store_retry(_attempt, map_key)
        logger.info("map_reindexed map=%s version=%s", map_key, newest.version)
        await self._transcode_icon(region_id, icon)
        return True

    async def _transcode_icon(self, region_id: int, icon: DepotFileHandle | None) -> None:
        # Icons are a convenience copy; a failure here never fails the event.
        if self.transcoder is None or icon is None:
            return
        try:
            await self.transcoder.transcode_asset(region_code(region_id), icon.filename)
        except (MapIndexError, OSError) as exc:
            increment_counter("icon_transcode_failures_total")
            logger.warning("icon_transcode_failed asset=%s error=%s", icon.filename, exc)
