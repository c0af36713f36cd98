from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from mapindex.core.errors import AssetNotFoundError, DepotFetchError, HeaderDecoderError, RevisionConflictError
from mapindex.persistence.db import is_lock_contention
from mapindex.services import telemetry
from mapindex.services.resilience import (
    RetryPolicy,
    is_store_contention,
    is_transient_fetch_error,
    retry_async,
    store_retry_policy,
)


class _DeadlockError(Exception):
    sqlstate = "40P01"


@pytest.mark.asyncio
async def test_retry_async_retries_transient() -> None:
    calls = {"count": 0}
    attempts: list[int] = []

    async def flaky() -> str:
        calls["count"] += 1
        if calls["count"] < 3:
            raise DepotFetchError("x.s2mh", 502)
        return "ok"

    result = await retry_async(
        flaky,
        policy=RetryPolicy(name="test", max_attempts=3, backoff_ms=1),
        retryable=is_transient_fetch_error,
        on_retry=lambda exc, attempt: attempts.append(attempt),
    )
    assert result == "ok"
    assert calls["count"] == 3
    assert attempts == [1, 2]
    assert telemetry.counter("retries_total.test") == 2


@pytest.mark.asyncio
async def test_retry_async_does_not_retry_not_found() -> None:
    calls = {"count": 0}

    async def missing() -> None:
        calls["count"] += 1
        raise AssetNotFoundError("x.s2mh", 404)

    with pytest.raises(AssetNotFoundError):
        await retry_async(
            missing,
            policy=RetryPolicy(name="test", max_attempts=5, backoff_ms=1),
            retryable=is_transient_fetch_error,
        )
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_retry_async_surfaces_last_error_after_budget() -> None:
    calls = {"count": 0}

    async def crashing() -> None:
        calls["count"] += 1
        raise HeaderDecoderError("crash")

    with pytest.raises(HeaderDecoderError):
        await retry_async(
            crashing,
            policy=RetryPolicy(name="test", max_attempts=3, backoff_ms=1, exponential=False),
            retryable=is_transient_fetch_error,
        )
    assert calls["count"] == 3


def test_store_policy_uses_fixed_delay(settings) -> None:
    policy = store_retry_policy(settings)
    assert policy.exponential is False
    assert policy.max_attempts == settings.store_max_attempts
    assert policy.backoff_ms == settings.store_retry_delay_ms


def test_lock_contention_classification() -> None:
    deadlock = OperationalError("UPDATE maps", {}, _DeadlockError("deadlock detected"))
    locked = OperationalError("INSERT", {}, Exception("database is locked"))
    other = OperationalError("SELECT", {}, Exception("no such table: maps"))
    duplicate = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    assert is_lock_contention(deadlock)
    assert is_lock_contention(locked)
    assert not is_lock_contention(other)
    assert not is_lock_contention(duplicate)
    assert is_store_contention(RevisionConflictError("dup"))
    assert not is_store_contention(ValueError("nope"))
