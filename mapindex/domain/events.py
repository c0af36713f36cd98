from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mapindex.domain.versions import MapVersion


class EventModel(BaseModel):
    # Transport payloads arrive camelCased; snake_case is accepted for CLI input.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthorInfo(EventModel):
    region_id: int
    realm_id: int
    profile_id: int
    name: str | None = None
    discriminator: int = 0


class MapVersionInfo(EventModel):
    map_version: int = Field(ge=0, le=0xFFFFFFFF)
    header_hash: str
    is_private: bool = False
    is_extension_mod: bool = False

    @property
    def version(self) -> MapVersion:
        return MapVersion.unpack(self.map_version)


class _MapEvent(EventModel):
    region_id: int
    map_id: int
    queried_at: int

    @property
    def queried_at_dt(self) -> datetime:
        return datetime.fromtimestamp(self.queried_at, tz=timezone.utc)

    @property
    def map_key(self) -> str:
        return f"{self.region_id}/{self.map_id}"


class MapDiscoverEvent(_MapEvent):
    kind: Literal["map_discover"] = "map_discover"
    author: AuthorInfo
    initial_revision: MapVersionInfo
    latest_revision: MapVersionInfo


class MapRevisionEvent(_MapEvent, MapVersionInfo):
    kind: Literal["map_revision"] = "map_revision"


class MapUnavailableEvent(_MapEvent):
    kind: Literal["map_unavailable"] = "map_unavailable"


MapEvent = Union[MapDiscoverEvent, MapRevisionEvent, MapUnavailableEvent]

_EVENT_TYPES: dict[str, type[EventModel]] = {
    "map_discover": MapDiscoverEvent,
    "map_revision": MapRevisionEvent,
    "map_unavailable": MapUnavailableEvent,
}


def parse_event(payload: dict[str, Any]) -> MapEvent:
    # Dispatch on the explicit kind tag so malformed payloads fail validation early.
    kind = payload.get("kind")
    model = _EVENT_TYPES.get(str(kind))
    if model is None:
        raise ValueError(f"unknown map event kind: {kind!r}")
    return model.model_validate(payload)  # type: ignore[return-value]
