from __future__ import annotations

import logging
import os
from typing import Optional, Union

from pythonjsonlogger import jsonlogger

LOG_FORMAT_ENV = "CAMPAIGN_STORE_LOG_FORMAT"
LOG_LEVEL_ENV = "CAMPAIGN_STORE_LOG_LEVEL"

_PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _build_formatter(mode: str) -> logging.Formatter:
    if mode == "plain":
        return logging.Formatter(_PLAIN_FORMAT)
    # store events are shipped as flat JSON; extra={...} keys become top-level fields
    return jsonlogger.JsonFormatter(
        _JSON_FIELDS,
        rename_fields={"levelname": "level", "name": "logger"},
    )


def configure_logging(
        level: Optional[Union[int, str]] = None,
        force_format: Optional[str] = None,
) -> None:
    """
    Point the root logger at stderr for the campaign store.

    Format: force_format ("json" or "plain"), else $CAMPAIGN_STORE_LOG_FORMAT, else json.
    Level: level argument, else $CAMPAIGN_STORE_LOG_LEVEL, else INFO.
    Any handlers already on the root logger are replaced.
    """
    mode = (force_format or os.getenv(LOG_FORMAT_ENV, "json")).lower()
    if mode not in ("json", "plain"):
        raise ValueError(f"Unknown log format '{mode}', expected 'json' or 'plain'")

    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, "INFO").upper()

    handler = logging.StreamHandler()
    handler.setFormatter(_build_formatter(mode))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)
