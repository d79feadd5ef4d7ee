"""Loguru logging for the geocoder.

Two streams share the same sinks:

* human-readable lines for every record, tagged with the resolution
  ``request_id`` (``-`` outside a resolution);
* one compact JSON object per line for records bound with
  ``json_output=True``: geocode attempts, cache hits and misses,
  fallback tiers, backfill progress. These are what dashboards and
  ``jq`` consume.

With a ``log_dir`` both streams are also written to disk:
``facility-geocoder.log`` (rotated daily) and ``geocoding-events.jsonl``.
"""

import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Record

_LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {extra[request_id]:<12} | {name}:{line} | {message}"

_NO_REQUEST = "-"

# Sink plumbing, never part of an event
_INTERNAL_EXTRA = frozenset({"json_output", "_event"})


def _is_event(record: "Record") -> bool:
    return bool(record["extra"].get("json_output", False))


def _event_format(record: "Record") -> str:
    fields = {
        key: value
        for key, value in record["extra"].items()
        if key not in _INTERNAL_EXTRA and not (key == "request_id" and value == _NO_REQUEST)
    }
    event = {
        "ts": record["time"].isoformat(),
        "level": record["level"].name,
        "event": record["message"],
        **fields,
    }
    record["extra"]["_event"] = json.dumps(event, default=str, ensure_ascii=False)
    return "{extra[_event]}\n"


def setup_logging(log_level: str = "INFO", log_dir: str | None = None) -> None:
    """Configure Loguru sinks.

    Args:
        log_level: Minimum log level to emit (case-insensitive).
        log_dir: Optional directory for the log file and the JSONL event file.
    """
    level = log_level.upper()
    logger.remove()
    logger.configure(extra={"request_id": _NO_REQUEST})
    logger.add(sys.stderr, level=level, format=_LOG_FORMAT)
    logger.add(sys.stderr, level=level, format=_event_format, filter=_is_event)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "facility-geocoder.log",
            level=level,
            format=_LOG_FORMAT,
            rotation="24h",
            retention="7 days",
        )
        logger.add(
            log_path / "geocoding-events.jsonl",
            level=level,
            format=_event_format,
            filter=_is_event,
            rotation="100 MB",
            retention="30 days",
        )
