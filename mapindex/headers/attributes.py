from __future__ import annotations

from mapindex.headers.documents import AttributeValue, Variant


# Namespace of engine-defined lobby attributes.
SYSTEM_ATTRIBUTE_NAMESPACE = 999
LOBBY_DELAY_ATTRIBUTE_ID = 3006
# Seconds, indexed by the attribute value's enum index.
LOBBY_DELAY_VALUES = (3, 5, 7, 10, 15, 20, 25, 30)
DEFAULT_LOBBY_DELAY = 10


def lobby_delay(variant: Variant) -> int:
    for default in variant.attribute_defaults:
        ref = default.attribute
        if ref.namespace != SYSTEM_ATTRIBUTE_NAMESPACE or ref.id != LOBBY_DELAY_ATTRIBUTE_ID:
            continue
        if isinstance(default.value, AttributeValue) and 0 <= default.value.index < len(LOBBY_DELAY_VALUES):
            return LOBBY_DELAY_VALUES[default.value.index]
    return DEFAULT_LOBBY_DELAY
