import logging.config

from crewsync.core.config import settings


def configure_logging(level: str | None = None) -> None:
    """Konfiguriert das Root-Logging einmalig beim Start."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": (level or settings.LOG_LEVEL).upper(),
            },
            # SQL-Echo nur über DEBUG steuern, nicht über LOG_LEVEL
            "loggers": {
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
