from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from mapindex.core.config import get_settings
from mapindex.depot.cache import DepotCache
from mapindex.domain.models import MapCategory
from mapindex.headers.resolver import HeaderResolver
from mapindex.persistence.db import build_engine, init_models
from mapindex.persistence.repos.categories import load_category_snapshot
from mapindex.services import telemetry
from mapindex.services.indexing.indexer import VersionedIndexer
from mapindex.tests.utils.fakes import (
    ARCADE_CATEGORY_ID,
    MELEE_CATEGORY_ID,
    DepotStub,
    FakeDecoder,
    MapPublisher,
    make_settings,
)


@pytest.fixture(autouse=True)
def reset_process_state() -> None:
    # Settings and telemetry are process-wide; isolate them per test.
    get_settings.cache_clear()
    telemetry.reset()
    yield
    telemetry.reset()
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
async def db_engine(settings):
    engine = build_engine(settings.database_url)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def categories(session_factory):
    async with session_factory() as session:
        session.add_all(
            [
                MapCategory(id=MELEE_CATEGORY_ID, code="Melee", name="Melee", is_melee=True),
                MapCategory(id=ARCADE_CATEGORY_ID, code="Other", name="Other", is_melee=False),
            ]
        )
        await session.commit()
        return await load_category_snapshot(session)


@pytest.fixture
def depot_stub() -> DepotStub:
    return DepotStub()


@pytest.fixture
def decoder() -> FakeDecoder:
    return FakeDecoder()


@pytest.fixture
def publisher(depot_stub, decoder) -> MapPublisher:
    return MapPublisher(depot_stub, decoder)


@pytest.fixture
async def depot(settings, depot_stub):
    cache = DepotCache(settings=settings, transport=depot_stub.transport)
    yield cache
    await cache.close()


@pytest.fixture
def resolver(depot, decoder) -> HeaderResolver:
    return HeaderResolver(depot, decoder)


@pytest.fixture
async def indexer(session_factory, resolver, settings, categories):
    instance = VersionedIndexer(session_factory, resolver, settings=settings, categories=categories)
    yield instance
    await instance.close()
