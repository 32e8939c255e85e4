import logging
import logging.config
from pathlib import Path
from typing import Optional
from app.core.config import settings

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        },
        "detailed": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] %(message)s"
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "INFO",
            "formatter": "default",
            "stream": "ext://sys.stdout"
        }
    },
    "root": {
        "level": "INFO",
        "handlers": ["console"]
    },
    "loggers": {
        "app": {
            "level": "INFO",
            "handlers": ["console"],
            "propagate": False
        },
        "app.middleware.logging": {
            "level": "INFO",
            "handlers": ["console"],
            "propagate": False
        },
        "uvicorn.access": {
            "level": "WARNING",
            "handlers": ["console"],
            "propagate": False
        }
    }
}

FILE_HANDLERS = {
    "file": {
        "class": "logging.handlers.RotatingFileHandler",
        "level": "INFO",
        "formatter": "detailed",
        "filename": "app.log",
        "maxBytes": 10485760,
        "backupCount": 5
    },
    "error_file": {
        "class": "logging.handlers.RotatingFileHandler",
        "level": "ERROR",
        "formatter": "detailed",
        "filename": "error.log",
        "maxBytes": 10485760,
        "backupCount": 5
    }
}


def build_logging_config(level: str = "INFO", log_dir: Optional[str] = None) -> dict:
    config = {
        **LOGGING_CONFIG,
        "handlers": dict(LOGGING_CONFIG["handlers"]),
        "root": dict(LOGGING_CONFIG["root"]),
        "loggers": {name: dict(cfg) for name, cfg in LOGGING_CONFIG["loggers"].items()},
    }
    config["root"]["level"] = level
    config["loggers"]["app"]["level"] = level

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        for name, handler in FILE_HANDLERS.items():
            config["handlers"][name] = {**handler, "filename": str(log_path / handler["filename"])}
        config["root"]["handlers"] = ["console", "file", "error_file"]
        config["loggers"]["app"]["handlers"] = ["console", "file", "error_file"]
        config["loggers"]["app.middleware.logging"]["handlers"] = ["console", "file"]

    return config


def configure_logging():
    logging.config.dictConfig(build_logging_config(settings.LOG_LEVEL, settings.LOG_DIR))
