import logging
import logging.config
import os
import sys

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE")

_handlers = ["console", "file"] if LOG_FILE else ["console"]

# third-party loggers and the level they are held at
QUIET_LOGGERS = {
    "fastapi": "INFO",
    "uvicorn.access": "WARNING",
    "httpx": "WARNING",
    "xrpl": "WARNING",
}

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)-6s %(name)8s:%(lineno)d %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": sys.stdout,
        },
    },
    "loggers": {
        "ledger_submit": {"level": LOG_LEVEL, "handlers": _handlers, "propagate": False},
        **{name: {"level": level, "handlers": _handlers, "propagate": False} for name, level in QUIET_LOGGERS.items()},
    },
    "root": {
        "level": "WARNING",
        "handlers": _handlers,
    },
}

if LOG_FILE:
    LOGGING_CONFIG["handlers"]["file"] = {
        "class": "logging.FileHandler",
        "formatter": "default",
        "filename": LOG_FILE,
        "mode": "a",
    }


def setup_logging():
    logging.config.dictConfig(LOGGING_CONFIG)
    os.environ.setdefault("PYTHONUNBUFFERED", "1")
