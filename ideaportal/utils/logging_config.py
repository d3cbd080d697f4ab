import logging
import logging.config
import os
from pathlib import Path
from typing import Iterable

LOG_FILES = ("app.log", "error.log", "audit.log")


def _prune_backups(log_dir: Path, base_name: str, backup_count: int) -> None:
    if backup_count < 1:
        return
    candidates: Iterable[Path] = sorted(
        log_dir.glob(f"{base_name}.*"),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    for stale in list(candidates)[backup_count:]:
        try:
            stale.unlink()
        except OSError:
            continue


def _rotating(filename: Path, level: str, max_bytes: int, backup_count: int, formatter="default"):
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": formatter,
        "filename": str(filename),
        "maxBytes": max_bytes,
        "backupCount": backup_count,
        "level": level,
        "encoding": "utf8",
    }


def _logger(handlers, level="INFO"):
    return {"handlers": handlers, "level": level, "propagate": False}


def setup_logging():
    """
    Configures logging for the portal.

    Everything goes to the console and a rotating 'app.log'; errors also land
    in 'error.log'. Staff actions recorded by the audit middleware get their
    own 'audit.log'. Files live under IDEAPORTAL_LOG_DIR (default 'logs');
    LOG_MAX_BYTES / LOG_BACKUP_COUNT size the rotation and LOG_LEVEL sets
    the level of the ideaportal loggers.
    """
    log_dir = Path(os.getenv("IDEAPORTAL_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    max_bytes = int(os.getenv("LOG_MAX_BYTES", str(5 * 1024 * 1024)))
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", "3"))
    app_level = os.getenv("LOG_LEVEL", "INFO").upper()
    for name in LOG_FILES:
        _prune_backups(log_dir, name, backup_count)

    everything = ["console", "file_app", "file_error"]
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                },
                "audit": {
                    "format": "%(asctime)s AUDIT %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": "INFO",
                },
                "file_app": _rotating(log_dir / "app.log", "INFO", max_bytes, backup_count),
                "file_error": _rotating(log_dir / "error.log", "ERROR", max_bytes, backup_count),
                "file_audit": _rotating(
                    log_dir / "audit.log", "INFO", max_bytes, backup_count, formatter="audit"
                ),
            },
            "loggers": {
                "": {"handlers": everything, "level": "INFO"},
                "uvicorn": _logger(["console", "file_app"]),
                "uvicorn.access": _logger(["console", "file_app"]),
                "uvicorn.error": _logger(["console", "file_error"]),
                "audit": _logger(["console", "file_audit"]),
                "ideaportal": _logger(everything, app_level),
                "ideaportal.auth": _logger(everything, app_level),
            },
        }
    )
    logging.getLogger("ideaportal").info(f"Logging configured; files under {log_dir}")
