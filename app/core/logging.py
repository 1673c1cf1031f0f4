import logging
import logging.config
from pathlib import Path
from typing import Any, Dict

from app.core.config import settings

# Purchase state changes and refund warnings go to their own file for reconciliation.
LEDGER_LOGGERS = ("app.services.access", "app.services.checkout", "app.services.payment", "app.services.account")

ROTATION = {"maxBytes": 10485760, "backupCount": 5}


def build_logging_config(log_dir: str = settings.LOG_DIR, level: str = settings.LOG_LEVEL) -> Dict[str, Any]:
    def rotating(filename: str, handler_level: str) -> Dict[str, Any]:
        return {
            "class": "logging.handlers.RotatingFileHandler",
            "level": handler_level,
            "formatter": "detailed",
            "filename": f"{log_dir}/{filename}",
            **ROTATION,
        }

    loggers: Dict[str, Any] = {
        "app": {
            "level": level,
            "handlers": ["console", "file", "error_file"],
            "propagate": False
        },
        "app.requests": {
            "level": level,
            "handlers": ["console", "file"],
            "propagate": False
        },
        "stripe": {
            "level": "WARNING",
            "handlers": ["console", "error_file"],
            "propagate": False
        },
        "uvicorn.access": {
            "level": "WARNING",
            "handlers": ["console"],
            "propagate": False
        },
    }
    for name in LEDGER_LOGGERS:
        loggers[name] = {
            "level": "INFO",
            "handlers": ["console", "file", "error_file", "ledger_file"],
            "propagate": False
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed",
                "stream": "ext://sys.stdout"
            },
            "file": rotating("app.log", level),
            "error_file": rotating("error.log", "ERROR"),
            "ledger_file": rotating("ledger.log", "INFO"),
        },
        "root": {
            "level": level,
            "handlers": ["console", "file", "error_file"]
        },
        "loggers": loggers,
    }


def configure_logging():
    Path(settings.LOG_DIR).mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config())
