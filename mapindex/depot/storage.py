from __future__ import annotations

import asyncio
from pathlib import Path


class HashShardStore:
    """Maps content-addressed filenames onto a two-level sharded directory tree.

    ``abcd1234.s2mh`` lives at ``root/ab/cd/abcd1234.s2mh``. Stems shorter than
    four characters are stored directly under the root.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, name: str) -> Path:
        filename = Path(name).name
        suffix = Path(filename).suffix
        stem = filename[: len(filename) - len(suffix)] if suffix else filename
        if len(stem) < 4:
            return self.root / f"{stem}{suffix}"
        return self.root / stem[0:2] / stem[2:4] / f"{stem}{suffix}"

    async def ensure_path_for(self, name: str) -> Path:
        path = self.path_for(name)
        await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
        return path
