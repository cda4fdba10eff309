import logging.config

from casewatch.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Route application and uvicorn logs through one console handler."""
    log_level = (level or settings.LOG_LEVEL).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": LOG_FORMAT}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                }
            },
            "loggers": {
                "casewatch": {"handlers": ["console"], "level": log_level, "propagate": False},
                "uvicorn.error": {"level": log_level},
            },
            "root": {"handlers": ["console"], "level": "WARNING"},
        }
    )
