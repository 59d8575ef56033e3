"""Logging configuration for the assistant API."""
import logging
import logging.config
from typing import Optional

from juris_assistant.config import settings


def configure_logging(level: Optional[str] = None) -> None:
    """Install the console logging configuration."""
    level = (level or settings.LOG_LEVEL).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "level": level,
                },
            },
            "root": {
                "handlers": ["console"],
                "level": level,
            },
            "loggers": {
                "juris_assistant": {
                    "handlers": ["console"],
                    "level": level,
                    "propagate": False,
                },
                # OpenAI/httpx log every request at INFO
                "httpx": {"level": "WARNING"},
            },
        }
    )
