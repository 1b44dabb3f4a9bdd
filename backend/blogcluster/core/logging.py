import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict

SERVICE_NAME = "blogcluster_backend"

# Keys callers may pass through `extra=`. Only ids, statuses and counters;
# webhook secrets and payload bodies stay out of the logs.
STRUCTURED_FIELDS = (
    "job_id",
    "request_id",
    "user_id",
    "step",
    "status",
    "status_code",
    "saved",
)

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with the job/user ids lifted to top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": getattr(record, "service", SERVICE_NAME),
        }
        entry.update(
            (field, getattr(record, field))
            for field in STRUCTURED_FIELDS
            if hasattr(record, field)
        )
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)

        # Enum statuses and datetimes fall back to str()
        return json.dumps(entry, default=str)


def configure_logging(level: int | str = logging.INFO) -> None:
    """
    Route the root logger to stdout as JSON.

    `create_app` calls this for every app it builds (tests build many), so
    only the first call installs the handler.
    """
    global _configured
    if _configured:
        return

    if isinstance(level, str):
        level = level.upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    _configured = True
