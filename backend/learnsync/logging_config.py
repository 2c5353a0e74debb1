import logging
import os
from logging.config import dictConfig
from typing import Optional

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_level(name: str, default: str) -> str:
    return os.getenv(name, default).upper()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure process logging for the sync client and the profile server.

    ``LEARNSYNC_LOG_LEVEL`` sets the root level, ``LEARNSYNC_SYNC_LOG_LEVEL`` the
    sync orchestrator and remote store, and ``LEARNSYNC_TELEMETRY=0`` keeps only
    failed-sync telemetry lines.
    """
    root_level = (level or _env_level("LEARNSYNC_LOG_LEVEL", "INFO")).upper()
    sync_level = _env_level("LEARNSYNC_SYNC_LOG_LEVEL", root_level)
    telemetry_level = "INFO" if os.getenv("LEARNSYNC_TELEMETRY", "1") == "1" else "WARNING"
    http_level = "DEBUG" if os.getenv("LEARNSYNC_DEBUG_HTTP", "0") == "1" else "WARNING"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": DEFAULT_LOG_FORMAT,
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "learnsync.sync": {"level": sync_level},
                "learnsync.stores": {"level": sync_level},
                "learnsync.telemetry": {"level": telemetry_level},
                # httpx logs every request at INFO; profile syncs would flood the log.
                "httpx": {"level": http_level},
            },
            "root": {
                "handlers": ["default"],
                "level": root_level,
            },
        }
    )
    logging.getLogger(__name__).debug(
        "Logging configured (root=%s, sync=%s, telemetry=%s)", root_level, sync_level, telemetry_level
    )
