import json
import logging
from logging.config import dictConfig

from objstore.common.config import get_settings

STORAGE_LOGGER = "storage"
# botocore logs every request and retry at DEBUG
BOTOCORE_LEVEL = "WARNING"


def setup_logging(level: str | None = None) -> None:
    """Configure JSON console logging at ``level`` or the ``LOG_LEVEL`` setting."""
    resolved = (level or get_settings().LOG_LEVEL).upper()
    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": JsonFormatter,
                },
                "plain": {
                    "format": "%(levelname)s %(name)s: %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                },
                "botocore_console": {
                    "class": "logging.StreamHandler",
                    "formatter": "plain",
                },
            },
            "root": {
                "level": resolved,
                "handlers": ["console"],
            },
            "loggers": {
                STORAGE_LOGGER: {"level": resolved},
                "botocore": {
                    "handlers": ["botocore_console"],
                    "level": BOTOCORE_LEVEL,
                    "propagate": False,
                },
            },
        }
    )


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if hasattr(record, "extra") and isinstance(record.extra, dict):
            payload.update(record.extra)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)
