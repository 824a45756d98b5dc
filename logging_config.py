import logging.config
import sys


def configure_logging(level: str = "INFO") -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "verbose": {
                    "format": "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "verbose",
                    "stream": sys.stdout,
                },
            },
            "root": {"handlers": ["console"], "level": level.upper()},
            "loggers": {
                # pymongo is chatty at INFO (heartbeats, server selection)
                "pymongo": {"level": "WARNING"},
                "uvicorn.access": {"level": "WARNING"},
            },
        }
    )
