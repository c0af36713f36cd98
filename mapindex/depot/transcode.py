from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from uuid import uuid4

from PIL import Image, UnidentifiedImageError

from mapindex.core.config import Settings, get_settings
from mapindex.core.errors import MalformedAssetError
from mapindex.depot.cache import DepotCache
from mapindex.depot.storage import HashShardStore


logger = logging.getLogger(__name__)

# Headerless formats Pillow cannot sniff by magic bytes; depot images default to TGA.
FALLBACK_FORMATS = ("TGA", "DDS")


def sniff_format(src: Path) -> str:
    """Return the Pillow format name of ``src``."""
    try:
        with Image.open(src) as image:
            return str(image.format)
    except UnidentifiedImageError:
        logger.warning("image_identify_failed path=%s fallback=%s", src, ",".join(FALLBACK_FORMATS))
    try:
        with Image.open(src, formats=list(FALLBACK_FORMATS)) as image:
            return str(image.format)
    except UnidentifiedImageError as exc:
        raise MalformedAssetError(src.stem, "unrecognized image format") from exc


def convert_image(src: Path, dst: Path, *, fmt: str = "PNG") -> str:
    # Write through a temp file so readers never observe a partial image.
    source_format = sniff_format(src)
    dst.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = dst.with_name(f".{dst.name}.{uuid4().hex[:8]}")
    try:
        with Image.open(src, formats=[source_format]) as image:
            if fmt.upper() in {"JPEG", "JPG"} and image.mode not in {"RGB", "L"}:
                image = image.convert("RGB")
            elif image.mode not in {"RGB", "RGBA", "L", "LA", "P"}:
                image = image.convert("RGBA")
            image.save(tmp_path, format=fmt.upper())
        os.replace(tmp_path, dst)
    except OSError as exc:
        raise MalformedAssetError(src.stem, f"conversion from {source_format} failed: {exc}") from exc
    finally:
        if tmp_path.exists():
            tmp_path.unlink()
    return source_format


class AssetTranscoder:
    """Fetches image assets through the depot cache and stores normalized copies."""

    def __init__(
        self,
        depot: DepotCache,
        root: str | Path | None = None,
        *,
        settings: Settings | None = None,
        fmt: str = "png",
    ) -> None:
        settings = settings or get_settings()
        self.depot = depot
        self.store = HashShardStore(root or settings.depot_image_dir)
        self.fmt = fmt.lower()

    def output_path(self, filename: str) -> Path:
        stem = Path(filename).stem
        return self.store.path_for(f"{stem}.{self.fmt}")

    async def transcode_asset(self, region: str, filename: str) -> Path:
        dst = self.output_path(filename)
        if dst.exists():
            return dst
        src = await self.depot.get_or_fetch(region, filename)
        source_format = await asyncio.to_thread(convert_image, src, dst, fmt=self.fmt)
        logger.info("image_transcoded asset=%s from=%s to=%s", filename, source_format, self.fmt)
        return dst
