import logging.config

from app import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Configure the `todo.*` loggers.

    `todo.database` gets executed statements at DEBUG, `todo.repository`
    gets mutations and authentication outcomes, `todo.error` gets failed
    statements before they are re-raised.
    """
    level = level or config.LOG_LEVEL
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": LOG_FORMAT,
                    "datefmt": "%d-%b-%y %H:%M:%S",
                },
            },
            "handlers": {
                "default": {
                    "formatter": "default",
                    "class": "logging.StreamHandler",
                    "level": "DEBUG",
                },
            },
            "loggers": {
                "todo": {"handlers": ["default"], "level": level},
                "todo.error": {"level": "ERROR"},
            },
        },
    )
