from __future__ import annotations

from datetime import datetime, timezone

import pytest

from mapindex.domain.events import parse_event
from mapindex.persistence.repos import tracking as tracking_repo
from mapindex.tests.utils.fakes import discover_payload, unavailable_payload


T0 = 1_700_000_000
HOUR = 3600


def _dt(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


async def _tracking(session_factory, map_id: int):
    async with session_factory() as session:
        return await tracking_repo.get_tracking(session, 1, map_id)


@pytest.mark.asyncio
async def test_unavailable_reports_follow_streak_rules(indexer, publisher, session_factory) -> None:
    only = publisher.publish(400, 1, 0)
    await indexer.add(parse_event(discover_payload(400, only, only, queried_at=T0)))

    await indexer.add(parse_event(unavailable_payload(400, queried_at=T0 + HOUR)))
    tracking = await _tracking(session_factory, 400)
    assert tracking.unavailability_counter == 1
    assert tracking.first_seen_unavailable_at == _dt(T0 + HOUR)

    # Inside the 24h window and stale reports leave the streak as is.
    await indexer.add(parse_event(unavailable_payload(400, queried_at=T0 + 5 * HOUR)))
    await indexer.add(parse_event(unavailable_payload(400, queried_at=T0 - HOUR)))
    tracking = await _tracking(session_factory, 400)
    assert tracking.unavailability_counter == 1
    assert tracking.last_checked_at == _dt(T0 + HOUR)

    await indexer.add(parse_event(unavailable_payload(400, queried_at=T0 + 30 * HOUR)))
    tracking = await _tracking(session_factory, 400)
    assert tracking.unavailability_counter == 2
    assert tracking.first_seen_unavailable_at == _dt(T0 + HOUR)


@pytest.mark.asyncio
async def test_later_discover_resets_counter(indexer, publisher, session_factory) -> None:
    only = publisher.publish(401, 1, 0)
    await indexer.add(parse_event(discover_payload(401, only, only, queried_at=T0)))
    await indexer.add(parse_event(unavailable_payload(401, queried_at=T0 + HOUR)))

    await indexer.add(parse_event(discover_payload(401, only, only, queried_at=T0 + 2 * HOUR)))

    tracking = await _tracking(session_factory, 401)
    assert tracking.unavailability_counter == 0
    assert tracking.first_seen_unavailable_at is None
    assert tracking.last_seen_available_at == _dt(T0 + 2 * HOUR)


@pytest.mark.asyncio
async def test_older_discover_does_not_rewind_tracking(indexer, publisher, session_factory) -> None:
    only = publisher.publish(402, 1, 0)
    await indexer.add(parse_event(discover_payload(402, only, only, queried_at=T0 + HOUR)))

    await indexer.add(parse_event(discover_payload(402, only, only, queried_at=T0)))

    tracking = await _tracking(session_factory, 402)
    assert tracking.last_checked_at == _dt(T0 + HOUR)


@pytest.mark.asyncio
async def test_unavailable_report_for_untracked_map_starts_tracking(indexer, session_factory) -> None:
    assert await indexer.add(parse_event(unavailable_payload(403, queried_at=T0)))

    tracking = await _tracking(session_factory, 403)
    assert tracking.unavailability_counter == 1
    assert tracking.last_checked_at == _dt(T0)
    assert tracking.last_seen_available_at is None
