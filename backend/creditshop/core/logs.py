from __future__ import annotations

import logging

from creditshop.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=(level or settings.LOG_LEVEL or "INFO").upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO, which includes LINE reply tokens.
    logging.getLogger("httpx").setLevel(logging.WARNING)
