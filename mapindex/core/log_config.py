from __future__ import annotations

import logging

from mapindex.core.config import get_settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    # Entry points call this once; library modules only create loggers.
    settings = get_settings()
    logging.basicConfig(level=(level or settings.log_level).upper(), format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
