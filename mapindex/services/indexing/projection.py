from __future__ import annotations

from dataclasses import dataclass

from mapindex.core.errors import MalformedAssetError
from mapindex.domain.game import MapType
from mapindex.domain.models import Map, MapHeader, MapVariant
from mapindex.headers.attributes import lobby_delay
from mapindex.headers.documents import HeaderDocument, LocaleTableEntry, LocalizationTable
from mapindex.persistence.repos.categories import CategoryInfo, CategorySnapshot


# Only playable maps expose lobby variants.
VARIANT_MAP_TYPES = frozenset({MapType.MELEE_MAP, MapType.ARCADE_MAP})


@dataclass(frozen=True)
class ProjectionSource:
    """Everything fetched from the depot that a map projection needs."""

    document: HeaderDocument
    locale: LocaleTableEntry
    localization: LocalizationTable

    @property
    def locale_hash(self) -> str:
        return self.locale.string_table[0].hash


def select_main_locale(document: HeaderDocument, preferred: str, *, header_hash: str) -> LocaleTableEntry:
    entry = document.main_locale_table(preferred)
    if entry is None or not entry.string_table:
        raise MalformedAssetError(header_hash, "header has no locale string tables")
    return entry


def classify_map(document: HeaderDocument, header: MapHeader, category: CategoryInfo) -> MapType:
    # Map size marks a playable map; otherwise the mod flag decides.
    if document.map_size is not None:
        return MapType.MELEE_MAP if category.is_melee else MapType.ARCADE_MAP
    if header.is_extension_mod:
        return MapType.EXTENSION_MOD
    return MapType.DEPENDENCY_MOD


def build_variants(document: HeaderDocument, localization: LocalizationTable) -> list[MapVariant]:
    return [
        MapVariant(
            variant_index=index,
            name=localization.resolve(variant.mode_name) or "",
            lobby_delay=lobby_delay(variant),
        )
        for index, variant in enumerate(document.variants)
    ]


def project_map_fields(
    map_row: Map,
    header: MapHeader,
    source: ProjectionSource,
    categories: CategorySnapshot,
) -> list[MapVariant]:
    """Copy the revision's presentation fields onto ``map_row``.

    Points ``current_version`` at ``header`` and returns the variant rows that
    replace the map's stored variants (empty for mods).
    """
    document = source.document
    localization = source.localization
    default_variant = document.default_variant
    if default_variant is None:
        raise MalformedAssetError(header.header_hash, "header declares no variants")
    category = categories.get(default_variant.category_id)
    map_type = classify_map(document, header, category)
    icon = document.icon

    map_row.type = map_type.value
    map_row.name = localization.resolve(document.working_set.name) or ""
    map_row.description = localization.resolve(document.working_set.description)
    map_row.website = localization.resolve(document.arcade_info.website) if document.arcade_info else None
    map_row.main_category_id = category.id
    map_row.max_players = document.working_set.max_players
    map_row.icon_hash = icon.hash if icon is not None else None
    map_row.main_locale = source.locale.locale
    map_row.main_locale_hash = source.locale_hash
    map_row.updated_at = header.uploaded_at
    map_row.current_version = header

    if map_type not in VARIANT_MAP_TYPES:
        return []
    return build_variants(document, localization)
