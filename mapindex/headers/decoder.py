from __future__ import annotations

import asyncio
import json
import logging
import shlex
from pathlib import Path
from typing import Any, Protocol

from mapindex.core.errors import HeaderDecoderError, MalformedAssetError


logger = logging.getLogger(__name__)


class HeaderDecoder(Protocol):
    async def decode(self, path: Path) -> dict[str, Any]: ...


class ExternalHeaderDecoder:
    """Runs the external header decoder, which prints the header as JSON."""

    def __init__(self, command: str) -> None:
        self._argv = shlex.split(command)
        if not self._argv:
            raise ValueError("header decoder command is empty")

    async def decode(self, path: Path) -> dict[str, Any]:
        proc = await asyncio.create_subprocess_exec(
            *self._argv,
            str(path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            logger.error(
                "header_decoder_failed path=%s code=%s stderr=%s",
                path,
                proc.returncode,
                stderr.decode("utf-8", errors="ignore").strip(),
            )
            raise HeaderDecoderError(f"decoder failed on {path} code={proc.returncode}")
        try:
            decoded = json.loads(stdout)
        except json.JSONDecodeError as exc:
            raise MalformedAssetError(path.stem, f"decoder emitted invalid json: {exc}") from exc
        if not isinstance(decoded, dict):
            raise MalformedAssetError(path.stem, "decoder output is not an object")
        return decoded
