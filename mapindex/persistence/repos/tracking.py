from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mapindex.domain.models import MapTracking


# Repeated unavailability reports only count once per window.
UNAVAILABILITY_REPORT_WINDOW = timedelta(hours=24)


async def get_tracking(session: AsyncSession, region_id: int, map_id: int) -> MapTracking | None:
    result = await session.execute(
        select(MapTracking).where(MapTracking.region_id == region_id, MapTracking.map_id == map_id)
    )
    return result.scalar_one_or_none()


def new_tracking(region_id: int, map_id: int, checked_at: datetime | None = None) -> MapTracking:
    return MapTracking(
        region_id=region_id,
        map_id=map_id,
        last_checked_at=checked_at,
        last_seen_available_at=checked_at,
        first_seen_unavailable_at=None,
        unavailability_counter=0,
    )


def mark_available(tracking: MapTracking, checked_at: datetime, *, force: bool = False) -> bool:
    """Record a successful availability check.

    ``last_checked_at`` never moves backwards; ``force`` lets a check at the
    same instant still clear a pending unavailability streak.
    """
    newer = tracking.last_checked_at is None or checked_at > tracking.last_checked_at
    if not newer and not (force and tracking.unavailability_counter > 0):
        return False
    if newer:
        tracking.last_checked_at = checked_at
        tracking.last_seen_available_at = checked_at
    tracking.first_seen_unavailable_at = None
    tracking.unavailability_counter = 0
    return True


def mark_unavailable(tracking: MapTracking, reported_at: datetime) -> bool:
    # Stale reports and reports inside the current streak window are ignored.
    last_checked = tracking.last_checked_at
    if last_checked is not None and last_checked > reported_at:
        return False
    if (
        tracking.unavailability_counter > 0
        and last_checked is not None
        and reported_at - last_checked < UNAVAILABILITY_REPORT_WINDOW
    ):
        return False
    tracking.last_checked_at = reported_at
    if tracking.first_seen_unavailable_at is None:
        tracking.first_seen_unavailable_at = reported_at
    tracking.unavailability_counter += 1
    return True
