from __future__ import annotations

from typing import Any

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from mapindex.core.config import get_settings
from mapindex.domain.models import Base


# SQLSTATEs for deadlock_detected and serialization_failure, plus the MySQL deadlock code.
LOCK_CONTENTION_CODES = frozenset({"40P01", "40001", "1213"})


def build_engine(database_url: str) -> AsyncEngine:
    # Size bounded pools for server databases; sqlite uses its own pool class.
    settings = get_settings()
    engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        engine_kwargs["pool_size"] = max(1, int(settings.db_pool_size))
        engine_kwargs["max_overflow"] = max(0, int(settings.db_max_overflow))
        engine_kwargs["pool_timeout"] = 30
        engine_kwargs["pool_recycle"] = 1800
    return create_async_engine(database_url, **engine_kwargs)


engine = build_engine(get_settings().database_url)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def init_models(target: AsyncEngine | None = None) -> None:
    # Create missing tables directly; production deployments run alembic instead.
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _error_code(exc: DBAPIError) -> str | None:
    orig = exc.orig
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int):
        return str(args[0])
    return None


def is_lock_contention(exc: BaseException) -> bool:
    # Deadlocks and serialization failures resolve on retry; other store errors do not.
    if not isinstance(exc, DBAPIError) or isinstance(exc, IntegrityError):
        return False
    if _error_code(exc) in LOCK_CONTENTION_CODES:
        return True
    return isinstance(exc, OperationalError) and "database is locked" in str(exc.orig).lower()

