"""Packed map version helpers.

A map version travels as a single unsigned 32-bit integer: the high 16 bits
carry the major version, the low 16 bits the minor version.
"""

from __future__ import annotations

from typing import NamedTuple


class MapVersion(NamedTuple):
    major: int
    minor: int

    @classmethod
    def unpack(cls, packed: int) -> "MapVersion":
        major, minor = decode_map_version(packed)
        return cls(major, minor)

    def pack(self) -> int:
        return encode_map_version(self.major, self.minor)

    def __str__(self) -> str:
        return f"v{self.major}.{self.minor}"


def encode_map_version(major: int, minor: int) -> int:
    return ((major & 0xFFFF) << 16) | (minor & 0xFFFF)


def decode_map_version(version: int) -> tuple[int, int]:
    return (version >> 16) & 0xFFFF, version & 0xFFFF


def is_not_older(candidate: tuple[int, int], current: tuple[int, int]) -> bool:
    """Return True when ``candidate`` should replace ``current``.

    Equal versions count as not older so a re-delivered event re-applies its
    projection.
    """
    if candidate[0] > current[0]:
        return True
    return candidate[0] == current[0] and candidate[1] >= current[1]
