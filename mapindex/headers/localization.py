from __future__ import annotations

from lxml import etree

from mapindex.core.errors import MalformedAssetError
from mapindex.headers.documents import LocalizationTable


def _parser() -> etree.XMLParser:
    # Depot assets are untrusted input: no entity expansion, no network fetches.
    return etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)


def parse_localization(data: bytes, *, asset_hash: str) -> LocalizationTable:
    """Parse an ``.s2ml`` string table.

    The document is ``<Locale region="enUS"><e id="1">text</e>...</Locale>``;
    inline markup inside an entry is flattened to its text.
    """
    try:
        root = etree.fromstring(data, parser=_parser())
    except etree.XMLSyntaxError as exc:
        raise MalformedAssetError(asset_hash, f"invalid locale xml: {exc}") from exc
    if root.tag != "Locale":
        raise MalformedAssetError(asset_hash, f"unexpected root element {root.tag!r}")
    locale = root.get("region")
    if not locale:
        raise MalformedAssetError(asset_hash, "locale table has no region")

    strings: dict[int, str] = {}
    for entry in root.iterfind("e"):
        raw_id = entry.get("id")
        try:
            string_id = int(raw_id) if raw_id is not None else None
        except ValueError:
            string_id = None
        if string_id is None:
            raise MalformedAssetError(asset_hash, f"locale entry with invalid id {raw_id!r}")
        strings[string_id] = "".join(entry.itertext())
    return LocalizationTable(locale=locale, strings=strings)
