from __future__ import annotations

import sqlite3

import pytest
from sqlalchemy.exc import OperationalError

from mapindex.persistence.repos import maps as maps_repo
from mapindex.services import telemetry
from mapindex.services.indexing import dispatch
from mapindex.tests.utils.fakes import discover_payload, revision_payload, unavailable_payload
from mapindex.workers import index_worker


class _FakeJob:
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id


class _FakeRedis:
    def __init__(self) -> None:
        self.jobs: list[tuple[str, dict, str | None]] = []
        self.depth_keys: list[str] = []

    async def enqueue_job(self, function: str, payload: dict, _job_id: str | None = None):
        if _job_id is not None and any(job_id == _job_id for _, _, job_id in self.jobs):
            return None
        self.jobs.append((function, payload, _job_id))
        return _FakeJob(_job_id or f"job-{len(self.jobs)}")

    async def zcard(self, key: str) -> int:
        self.depth_keys.append(key)
        return len(self.jobs)


@pytest.mark.asyncio
async def test_index_map_event_runs_through_indexer(indexer, publisher, session_factory) -> None:
    only = publisher.publish(600, 1, 0)
    ctx = {"indexer": indexer, "job_id": "job-1"}

    assert await index_worker.index_map_event(ctx, discover_payload(600, only, only)) is True
    assert await index_worker.index_map_event(ctx, unavailable_payload(600, queried_at=1_800_000_000)) is True


@pytest.mark.asyncio
async def test_index_map_event_rejects_unknown_kind(indexer) -> None:
    with pytest.raises(ValueError):
        await index_worker.index_map_event({"indexer": indexer}, {"kind": "map_renamed"})


@pytest.mark.asyncio
async def test_shutdown_drains_indexer_and_closes_depot(indexer, depot) -> None:
    ctx = {"indexer": indexer, "depot": depot}
    await index_worker._shutdown(ctx)
    assert indexer._pool.closed


@pytest.mark.asyncio
async def test_enqueue_map_event_validates_and_dedupes(monkeypatch) -> None:
    fake = _FakeRedis()

    async def _pool():
        return fake

    monkeypatch.setattr(dispatch, "get_redis_pool", _pool)
    payload = unavailable_payload(700)

    assert await dispatch.enqueue_map_event(payload, job_id="u-700") == "u-700"
    assert await dispatch.enqueue_map_event(payload, job_id="u-700") is None
    function, sent, _ = fake.jobs[0]
    assert function == "index_map_event"
    assert sent["kind"] == "map_unavailable"
    assert sent["mapId"] == 700
    with pytest.raises(ValueError):
        await dispatch.enqueue_map_event({"kind": "bogus"})


@pytest.mark.asyncio
async def test_queue_depth_counts_waiting_jobs(monkeypatch) -> None:
    fake = _FakeRedis()

    async def _pool():
        return fake

    monkeypatch.setattr(dispatch, "get_redis_pool", _pool)
    await dispatch.enqueue_map_event(unavailable_payload(701))
    await dispatch.enqueue_map_event(unavailable_payload(702))

    assert await dispatch.get_queue_depth() == 2
    assert fake.depth_keys == ["arq:queue:mapindex"]


@pytest.mark.asyncio
async def test_index_map_event_surfaces_store_failures(indexer, publisher, monkeypatch) -> None:
    initial = publisher.publish(601, 1, 0)
    await index_worker.index_map_event({"indexer": indexer}, discover_payload(601, initial, initial))
    newer = publisher.publish(601, 1, 1)

    async def _broken_insert(session_factory, header):
        raise OperationalError("INSERT INTO map_headers", {}, sqlite3.OperationalError("disk I/O error"))

    monkeypatch.setattr(maps_repo, "insert_revision_ignore_duplicate", _broken_insert)

    with pytest.raises(OperationalError):
        await index_worker.index_map_event({"indexer": indexer}, revision_payload(601, newer))
    assert telemetry.counter("events_failed_total.map_revision") == 1
