"""Structured form of a decoded map header and its locale string tables."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class HeaderModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class DepotFileHandle(HeaderModel):
    type: str
    server: str = ""
    hash: str

    @property
    def filename(self) -> str:
        return f"{self.hash}.{self.type}"


class ExternalString(HeaderModel):
    # Reference into a locale string table; resolved against LocalizationTable.
    table: int = 0
    index: int
    color: int | None = None


class LocaleTableEntry(HeaderModel):
    locale: str
    string_table: list[DepotFileHandle]


class MapLink(HeaderModel):
    id: int
    version: int


class MapSize(HeaderModel):
    horizontal: int
    vertical: int


class AttributeRef(HeaderModel):
    namespace: int
    id: int


class AttributeValue(HeaderModel):
    index: int


class AttributeDefault(HeaderModel):
    attribute: AttributeRef
    value: AttributeValue | int | list[int] | None = None


class Variant(HeaderModel):
    category_id: int
    mode_id: int = 0
    mode_name: ExternalString | None = None
    attribute_defaults: list[AttributeDefault] = []
    max_team_size: int | None = None
    max_human_players: int | None = None


class WorkingSet(HeaderModel):
    name: ExternalString | None = None
    description: ExternalString | None = None
    thumbnail: DepotFileHandle | None = None
    big_map: DepotFileHandle | None = None
    max_players: int | None = None
    locale_table: list[LocaleTableEntry] = []


class ArcadeInfo(HeaderModel):
    map_icon: DepotFileHandle | None = None
    website: ExternalString | None = None


class HeaderDocument(HeaderModel):
    """Decoded ``.s2mh`` header of one map revision."""

    header: MapLink | None = None
    filename: str | None = None
    archive_handle: DepotFileHandle
    map_namespace: int | None = None
    working_set: WorkingSet
    arcade_info: ArcadeInfo | None = None
    map_size: MapSize | None = None
    default_variant_index: int = 0
    variants: list[Variant] = []
    dependencies: list[MapLink] = []

    def main_locale_table(self, preferred: str) -> LocaleTableEntry | None:
        # Preferred locale when published, otherwise the first table listed.
        tables = self.working_set.locale_table
        for entry in tables:
            if entry.locale == preferred:
                return entry
        return tables[0] if tables else None

    @property
    def default_variant(self) -> Variant | None:
        if not self.variants:
            return None
        if 0 <= self.default_variant_index < len(self.variants):
            return self.variants[self.default_variant_index]
        return self.variants[0]

    @property
    def icon(self) -> DepotFileHandle | None:
        if self.arcade_info is not None and self.arcade_info.map_icon is not None:
            return self.arcade_info.map_icon
        return self.working_set.thumbnail or self.working_set.big_map


@dataclass(frozen=True)
class LocalizationTable:
    locale: str
    strings: dict[int, str] = field(default_factory=dict)

    def resolve(self, ref: ExternalString | None) -> str | None:
        if ref is None:
            return None
        return self.strings.get(ref.index)
