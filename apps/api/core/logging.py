"""
Structured logging for the API and the loop worker.

JSON lines in production, plain text locally. Run-scoped log calls pass
`extra=run_fields(run_id, ...)` so every line about a run carries its id.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict
from core.config import settings

SERVICE_NAME = "territory-capture"


def run_fields(run_id: str, **fields: Any) -> Dict[str, Dict[str, Any]]:
    """`extra=` payload for a log line about one run."""
    return {"extra_fields": {"run_id": run_id, **fields}}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; `extra_fields` are merged at top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "environment": settings.ENVIRONMENT,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        # Cell lists and datetimes end up in extra_fields
        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines with the run id appended when present."""

    def __init__(self):
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        run_id = getattr(record, "extra_fields", {}).get("run_id")
        return f"{line} [run={run_id}]" if run_id else line


def setup_logging() -> logging.Logger:
    """
    Configure the root logger once per process.

    Called by main.py on API startup and by the worker entry point.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = TextFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return root_logger
