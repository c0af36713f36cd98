from __future__ import annotations

import pytest

from mapindex.depot.storage import HashShardStore


def test_path_for_shards_by_first_four_characters(tmp_path) -> None:
    store = HashShardStore(tmp_path)
    assert store.path_for("abcd1234.ext") == tmp_path / "ab" / "cd" / "abcd1234.ext"


def test_path_for_short_stem_stays_at_root(tmp_path) -> None:
    store = HashShardStore(tmp_path)
    assert store.path_for("ab.ext") == tmp_path / "ab.ext"
    assert store.path_for("abc") == tmp_path / "abc"


def test_path_for_uses_last_suffix_only(tmp_path) -> None:
    store = HashShardStore(tmp_path)
    assert store.path_for("abcdef.tar.gz") == tmp_path / "ab" / "cd" / "abcdef.tar.gz"


@pytest.mark.asyncio
async def test_ensure_path_for_creates_parents_idempotently(tmp_path) -> None:
    store = HashShardStore(tmp_path / "cache")
    first = await store.ensure_path_for("0123abcd.s2mh")
    second = await store.ensure_path_for("0123abcd.s2mh")
    assert first == second
    assert first.parent.is_dir()
    assert not first.exists()
