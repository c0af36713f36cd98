from __future__ import annotations

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mapindex.domain.models import Map, MapHeader, MapVariant


async def get_map(
    session: AsyncSession, region_id: int, map_id: int, *, for_update: bool = False
) -> Map | None:
    if for_update:
        # A no-op UPDATE takes the row write lock on every backend, sqlite included,
        # so the read below sees the last committed projection.
        await session.execute(
            update(Map)
            .where(Map.region_id == region_id, Map.map_id == map_id)
            .values(map_id=Map.map_id)
            .execution_options(synchronize_session=False)
        )
    result = await session.execute(
        select(Map).where(Map.region_id == region_id, Map.map_id == map_id)
    )
    return result.unique().scalar_one_or_none()


async def get_revision(
    session: AsyncSession,
    region_id: int,
    map_id: int,
    major_version: int,
    minor_version: int,
) -> MapHeader | None:
    # Natural-key lookup backed by the unique (region, map, major, minor) constraint.
    result = await session.execute(
        select(MapHeader).where(
            MapHeader.region_id == region_id,
            MapHeader.map_id == map_id,
            MapHeader.major_version == major_version,
            MapHeader.minor_version == minor_version,
        )
    )
    return result.scalar_one_or_none()


async def list_revisions(session: AsyncSession, region_id: int, map_id: int) -> list[MapHeader]:
    # Newest first, matching the version ordering used by the indexer.
    result = await session.execute(
        select(MapHeader)
        .where(MapHeader.region_id == region_id, MapHeader.map_id == map_id)
        .order_by(MapHeader.major_version.desc(), MapHeader.minor_version.desc())
    )
    return list(result.scalars().all())


async def list_map_keys(
    session: AsyncSession,
    *,
    region_id: int | None = None,
    map_id: int | None = None,
    offset_id: int | None = None,
) -> list[tuple[int, int]]:
    stmt = select(Map.region_id, Map.map_id).order_by(Map.id)
    if region_id is not None:
        stmt = stmt.where(Map.region_id == region_id)
    if map_id is not None:
        stmt = stmt.where(Map.map_id == map_id)
    if offset_id is not None:
        stmt = stmt.where(Map.id >= offset_id)
    result = await session.execute(stmt)
    return [(int(row[0]), int(row[1])) for row in result.all()]


async def list_variants(session: AsyncSession, map_pk: int) -> list[MapVariant]:
    result = await session.execute(
        select(MapVariant).where(MapVariant.map_id == map_pk).order_by(MapVariant.variant_index)
    )
    return list(result.scalars().all())


async def replace_variants(session: AsyncSession, map_row: Map, variants: list[MapVariant]) -> None:
    # Delete before insert so the (map, index) unique key never collides mid-flush.
    if map_row.id is not None:
        await session.execute(delete(MapVariant).where(MapVariant.map_id == map_row.id))
    else:
        await session.flush()
    for variant in variants:
        variant.map_id = map_row.id
    session.add_all(variants)


async def insert_revision_ignore_duplicate(
    session_factory: async_sessionmaker[AsyncSession], header: MapHeader
) -> bool:
    """Insert ``header`` in its own transaction.

    Returns False when another writer already recorded the same version; the
    unique constraint is the arbiter, so no lookup is trusted here.
    """
    async with session_factory() as session:
        session.add(header)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            return False
    return True
