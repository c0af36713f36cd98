from __future__ import annotations

import itertools

import pytest

from mapindex.domain.versions import MapVersion, decode_map_version, encode_map_version, is_not_older


def test_packed_version_layout() -> None:
    assert encode_map_version(1, 0) == 0x00010000
    assert encode_map_version(1, 2) == 0x00010002
    assert decode_map_version(0x00030007) == (3, 7)
    assert MapVersion.unpack(0xFFFF0001) == MapVersion(0xFFFF, 1)
    assert str(MapVersion.unpack(0x00010002)) == "v1.2"


@pytest.mark.parametrize("candidate,current", list(itertools.product([(0, 0), (1, 0), (1, 2), (2, 1)], repeat=2)))
def test_is_not_older_matches_ordering_rule(candidate, current) -> None:
    expected = candidate[0] > current[0] or (candidate[0] == current[0] and candidate[1] >= current[1])
    assert is_not_older(candidate, current) is expected


def test_is_not_older_is_reflexive() -> None:
    for version in (MapVersion(0, 0), MapVersion(1, 5), MapVersion(65535, 65535)):
        assert is_not_older(version, version)


def test_minor_does_not_outrank_major() -> None:
    assert not is_not_older(MapVersion(1, 900), MapVersion(2, 0))
    assert is_not_older(MapVersion(2, 0), MapVersion(1, 900))
