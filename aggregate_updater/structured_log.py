from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any


SERVICE_NAME = "aggregate-updater"

# Cloud Logging severities -> stdlib levels; unknown names log at INFO.
_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "NOTICE": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    "ALERT": logging.CRITICAL,
    "EMERGENCY": logging.CRITICAL,
}

_logger = logging.getLogger("aggregate_updater")
if not _logger.handlers:
    _handler = logging.StreamHandler(stream=sys.stdout)
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _logger.addHandler(_handler)
_logger.setLevel(str(os.getenv("LOG_LEVEL") or "INFO").upper())
_logger.propagate = False


def format_record(event_type: str, severity: str, fields: dict[str, Any]) -> str:
    """
    One compact JSON object. Caller fields never override the envelope keys,
    and values that are not JSON-native are rendered with str().
    """
    record: dict[str, Any] = dict(fields)
    record.update(
        {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": severity,
            "service": SERVICE_NAME,
            "env": os.getenv("ENV") or "unknown",
            "event_type": str(event_type),
        }
    )
    return json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=str)


def log(event_type: str, *, severity: str = "INFO", **fields: Any) -> None:
    """Emit one JSON line on stdout for `event_type`."""
    sev = str(severity).upper()
    level = _LEVELS.get(sev, logging.INFO)
    if not _logger.isEnabledFor(level):
        return
    try:
        line = format_record(event_type, sev, fields)
    except (TypeError, ValueError) as e:
        # circular or otherwise unserializable fields: keep the event, drop the payload
        line = format_record(event_type, sev, {"log_error": f"{type(e).__name__}: {e}"})
    _logger.log(level, line)
