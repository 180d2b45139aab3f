import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional, Union

SERVICE_NAME = "review_import_service"

# Passed through `extra=` by the import pipeline
STRUCTURED_FIELDS = ("job_id", "operator_id", "platform", "task_id", "step")

# Third-party loggers that log every request / heartbeat at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "celery.worker.strategy")

_LOGGING_CONFIGURED = False


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line, shared by the API and the Celery worker.
    Job context travels in the STRUCTURED_FIELDS attributes of the record.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": getattr(record, "service", SERVICE_NAME),
        }
        payload.update(
            {name: getattr(record, name) for name in STRUCTURED_FIELDS if hasattr(record, name)}
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        # enums and datetimes in extras
        return json.dumps(payload, default=str)


def configure_logging(level: Optional[Union[int, str]] = None) -> None:
    """
    Route the root logger to stdout as JSON. Only the first call has an effect.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    if level is None:
        from .config import get_settings

        level = get_settings().LOG_LEVEL
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _LOGGING_CONFIGURED = True
