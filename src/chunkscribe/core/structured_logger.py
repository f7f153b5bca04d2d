"""
Structured logging utilities for the API process and the queue worker
"""

import json
import logging
import sys
from datetime import datetime
from typing import Optional

from .config import LoggingSettings

# Pipeline context passed through `extra=` and lifted into the JSON record
CONTEXT_FIELDS = ("session_id", "seq", "segment_index", "stage", "request_id", "duration_ms")

AZURE_SDK_LOGGERS = (
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.storage.queue",
    "azure.storage.blob",
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": record.process,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_obj[field] = value

        # Add exception info if present
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        # Add extra fields if present
        if hasattr(record, "extra_data"):
            log_obj.update(record.extra_data)

        return json.dumps(log_obj, ensure_ascii=False, default=str)


def configure_logging(settings: Optional[LoggingSettings] = None) -> None:
    """Install a single stdout handler on the root logger.

    Called once per process (API startup, worker startup). Safe to call again;
    the previous handlers are replaced.
    """
    settings = settings or LoggingSettings()

    handler = logging.StreamHandler(sys.stdout)
    if settings.format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, settings.level, logging.INFO))

    # Reduce Azure SDK HTTP logging verbosity
    sdk_level = getattr(logging, settings.azure_sdk_level, logging.WARNING)
    for name in AZURE_SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)
