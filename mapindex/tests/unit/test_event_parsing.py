from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from mapindex.domain.events import MapDiscoverEvent, MapRevisionEvent, MapUnavailableEvent, parse_event
from mapindex.tests.utils.fakes import discover_payload, revision_payload, unavailable_payload


REVISION = {"mapVersion": 0x00010002, "headerHash": "ab" * 32, "isPrivate": True, "isExtensionMod": False}


def test_parse_discover_event_from_camel_case() -> None:
    event = parse_event(discover_payload(55, REVISION, REVISION, queried_at=1_700_000_000))
    assert isinstance(event, MapDiscoverEvent)
    assert event.map_key == "1/55"
    assert event.latest_revision.version == (1, 2)
    assert event.latest_revision.is_private is True
    assert event.author.discriminator == 1234
    assert event.queried_at_dt == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)


def test_parse_revision_and_unavailable_events() -> None:
    revision = parse_event(revision_payload(55, REVISION, region_id=2))
    unavailable = parse_event(unavailable_payload(55))
    assert isinstance(revision, MapRevisionEvent)
    assert revision.version == (1, 2)
    assert revision.region_id == 2
    assert isinstance(unavailable, MapUnavailableEvent)


def test_snake_case_payloads_are_accepted() -> None:
    event = parse_event({"kind": "map_unavailable", "region_id": 3, "map_id": 8, "queried_at": 10})
    assert event.map_key == "3/8"


def test_dumped_events_parse_back() -> None:
    event = parse_event(revision_payload(55, REVISION))
    assert parse_event(event.model_dump(by_alias=True)) == event


def test_unknown_kind_and_bad_versions_are_rejected() -> None:
    with pytest.raises(ValueError):
        parse_event({"kind": "map_deleted", "regionId": 1, "mapId": 1, "queriedAt": 1})
    with pytest.raises(ValidationError):
        parse_event(revision_payload(55, {**REVISION, "mapVersion": 1 << 32}))
