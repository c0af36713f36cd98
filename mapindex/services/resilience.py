from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from mapindex.core.config import Settings, get_settings
from mapindex.core.errors import (
    AssetNotFoundError,
    DepotFetchError,
    HeaderDecoderError,
    RevisionConflictError,
)
from mapindex.persistence.db import is_lock_contention
from mapindex.services.telemetry import increment_counter


logger = logging.getLogger(__name__)


TransientException = (TimeoutError, OSError)


@dataclass(frozen=True)
class RetryPolicy:
    name: str
    max_attempts: int
    backoff_ms: int
    # Exponential jittered backoff when True, fixed delay otherwise.
    exponential: bool = True


def is_transient_fetch_error(exc: Exception) -> bool:
    # Not-found is permanent; every other depot or decoder fault may clear up.
    if isinstance(exc, AssetNotFoundError):
        return False
    if isinstance(exc, (DepotFetchError, HeaderDecoderError)):
        return True
    return isinstance(exc, TransientException)


def is_store_contention(exc: Exception) -> bool:
    return isinstance(exc, RevisionConflictError) or is_lock_contention(exc)


def header_retry_policy(settings: Settings | None = None) -> RetryPolicy:
    settings = settings or get_settings()
    return RetryPolicy(
        name="header",
        max_attempts=settings.header_max_attempts,
        backoff_ms=settings.header_retry_backoff_ms,
    )


def store_retry_policy(settings: Settings | None = None) -> RetryPolicy:
    settings = settings or get_settings()
    return RetryPolicy(
        name="store",
        max_attempts=settings.store_max_attempts,
        backoff_ms=settings.store_retry_delay_ms,
        exponential=False,
    )


def _delay_s(policy: RetryPolicy, attempt: int) -> float:
    if not policy.exponential:
        return policy.backoff_ms / 1000.0
    jitter = random.uniform(0.5, 1.5)
    return (policy.backoff_ms / 1000.0) * (2 ** (attempt - 1)) * jitter


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    *,
    policy: RetryPolicy,
    retryable: Callable[[Exception], bool],
    on_retry: Callable[[Exception, int], None] | None = None,
) -> Any:
    """Run ``func`` until it succeeds, fails non-retryably, or exhausts ``policy``.

    The last exception propagates unchanged once the budget is spent.
    """
    attempt = 1
    while True:
        try:
            return await func()
        except Exception as exc:  # noqa: BLE001 - caller decides what is retryable
            if attempt >= max(policy.max_attempts, 1) or not retryable(exc):
                raise
            increment_counter(f"retries_total.{policy.name}")
            if on_retry is not None:
                on_retry(exc, attempt)
            else:
                logger.warning("retrying policy=%s attempt=%d error=%s", policy.name, attempt, exc)
            await asyncio.sleep(_delay_s(policy, attempt))
            attempt += 1
