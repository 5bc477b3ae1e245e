from pathlib import Path
import logging
import logging.config
from typing import Optional

from live_poll.core.config import Settings, settings as default_settings


def _rotating(filename: Path, level: str) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "default",
        "level": level,
        "filename": str(filename),
        "maxBytes": 5 * 1024 * 1024,
        "backupCount": 3,
        "encoding": "utf-8",
    }


def configure_logging(config: Optional[Settings] = None):
    config = config or default_settings
    log_level = config.log_level.upper()
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": log_level,
                },
                "file": _rotating(log_dir / "app.log", log_level),
                "engine_file": _rotating(log_dir / "engine.log", log_level),
                "api_file": _rotating(log_dir / "api.log", log_level),
            },
            "root": {
                "level": log_level,
                "handlers": ["console", "file"],
            },
            "loggers": {
                # Session, poll and timer lifecycle
                "engine": {
                    "level": log_level,
                    "handlers": ["console", "engine_file"],
                    "propagate": False,
                },
                # REST and websocket surface
                "api": {
                    "level": log_level,
                    "handlers": ["console", "api_file"],
                    "propagate": False,
                },
            },
        }
    )
