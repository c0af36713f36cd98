from __future__ import annotations

from datetime import datetime, timezone

import pytest

from mapindex.core.errors import DepotFetchError, MalformedAssetError
from mapindex.domain.models import MapHeader
from mapindex.tests.utils.fakes import asset_hash


def _header_row(info: dict) -> MapHeader:
    return MapHeader(
        region_id=1,
        map_id=77,
        major_version=info["mapVersion"] >> 16,
        minor_version=info["mapVersion"] & 0xFFFF,
        header_hash=info["headerHash"],
        is_private=False,
        is_extension_mod=False,
        archive_size=None,
        uploaded_at=None,
    )


@pytest.mark.asyncio
async def test_populate_revision_backfills_depot_metadata(resolver, publisher) -> None:
    info = publisher.publish(77, 1, 0, uploaded="Mon, 02 Jan 2023 12:00:00 GMT", archive_size=4096)
    header = _header_row(info)

    document = await resolver.populate_revision(header)

    assert header.uploaded_at == datetime(2023, 1, 2, 12, 0, tzinfo=timezone.utc)
    assert header.archive_size == 4096
    assert header.archive_hash == asset_hash("archive", 77, 1, 0)
    assert document.archive_handle.hash == header.archive_hash
    assert document.working_set.locale_table[0].locale == "enUS"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [404, 503])
async def test_archive_probe_tolerates_missing_or_unavailable(resolver, publisher, depot_stub, status) -> None:
    info = publisher.publish(77, 1, 1)
    depot_stub.head_statuses[f"{asset_hash('archive', 77, 1, 1)}.s2ma"] = status
    header = _header_row(info)

    await resolver.populate_revision(header)

    assert header.archive_size is None
    assert header.archive_hash == asset_hash("archive", 77, 1, 1)


@pytest.mark.asyncio
async def test_archive_without_length_stores_null_size(resolver, publisher, depot_stub) -> None:
    info = publisher.publish(77, 1, 2)
    depot_stub.omit_length.add(f"{asset_hash('archive', 77, 1, 2)}.s2ma")
    header = _header_row(info)

    await resolver.populate_revision(header)

    assert header.archive_size is None


@pytest.mark.asyncio
async def test_archive_probe_server_error_propagates(resolver, publisher, depot_stub) -> None:
    info = publisher.publish(77, 1, 3)
    depot_stub.head_statuses[f"{asset_hash('archive', 77, 1, 3)}.s2ma"] = 500
    header = _header_row(info)

    with pytest.raises(DepotFetchError) as excinfo:
        await resolver.populate_revision(header)
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_unexpected_header_layout_is_malformed(resolver, publisher, decoder) -> None:
    info = publisher.publish(77, 2, 0)
    decoder.headers[info["headerHash"]] = {"filename": "broken"}

    with pytest.raises(MalformedAssetError) as excinfo:
        await resolver.get_map_header("us", info["headerHash"])
    assert excinfo.value.asset_hash == info["headerHash"]


@pytest.mark.asyncio
async def test_get_map_localization_parses_cached_table(resolver, publisher) -> None:
    publisher.publish(77, 3, 0, name="Nexus Wars")
    table = await resolver.get_map_localization("us", asset_hash("locale", 77, 3, 0, "enUS"))
    assert table.locale == "enUS"
    assert table.strings[1] == "Nexus Wars v3.0"
