"""Log output for the worker and the CLI.

Context travels as ``extra={"gym_member_id": ..., "gym_job_id": ...}``.
The JSON format emits those keys as fields; the text format appends them as
``key=value`` pairs so member and job ids stay greppable either way.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

LOG_FORMATS = ("json", "text")
_EXTRA_PREFIX = "gym_"


def _context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value for key, value in vars(record).items() if key.startswith(_EXTRA_PREFIX)
    }


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        pairs = " ".join(f"{key[len(_EXTRA_PREFIX):]}={value}" for key, value in context.items())
        head, sep, rest = line.partition("\n")
        return f"{head} [{pairs}]{sep}{rest}"


def setup_logging(log_format: str, level: int = logging.INFO) -> None:
    """Send all logging to stderr in ``log_format`` ("json" or "text")."""
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format {log_format!r}, expected one of {LOG_FORMATS}")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if log_format == "json" else TextFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
