from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

_DEFAULT_DATABASE_URL = "sqlite:///./ideaportal.db"
_DEFAULT_SQLITE = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "busy_timeout_ms": 30000,
    "write_retries": 5,
    "retry_backoff_ms": 200,
}
_DEFAULT_DATABASE_POOL = {
    "pool_size": 20,
    "max_overflow": 40,
    "pool_timeout_seconds": 15,
    "pool_recycle_seconds": 1800,
}
_DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES = 24 * 60
_DEFAULT_UPLOADS = {
    "directory": "uploads",
    "max_file_size_mb": 15,
}
_DEFAULT_PAGINATION = {
    "default_limit": 50,
    "max_limit": 100,
}
_DEFAULT_NOTIFICATIONS = {
    "default_limit": 10,
}
_TRUTHY = {"1", "true", "yes", "on"}


def load_config() -> Dict[str, Any]:
    """Load the application config from YAML, returning an empty mapping on error."""
    try:
        with _CONFIG_PATH.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
            if isinstance(data, dict):
                return data
            logging.warning(
                "Config file %s is not a mapping; using defaults.", _CONFIG_PATH
            )
            return {}
    except FileNotFoundError:
        logging.warning(
            "Configuration file %s not found; using defaults.", _CONFIG_PATH
        )
        return {}
    except (OSError, yaml.YAMLError) as exc:
        logging.error("Failed to load configuration from %s: %s", _CONFIG_PATH, exc)
        return {}


def _coerce_positive_int(value: Any, fallback: int) -> int:
    try:
        candidate = int(value)
        return candidate if candidate > 0 else fallback
    except (TypeError, ValueError):
        return fallback


def _coerce_bool(value: Any, fallback: bool) -> bool:
    if value is None:
        return fallback
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def get_database_settings() -> Dict[str, Any]:
    """
    Return the database URL together with SQLite pragmas and pool sizing.

    IDEAPORTAL_DATABASE_URL wins over database_url in config.yaml.
    """
    config = load_config()
    url = _clean_str(os.getenv("IDEAPORTAL_DATABASE_URL")) or _clean_str(
        config.get("database_url")
    )

    sqlite_section = config.get("sqlite") or {}
    sqlite_settings = {
        "journal_mode": str(
            sqlite_section.get("journal_mode") or _DEFAULT_SQLITE["journal_mode"]
        ),
        "synchronous": str(
            sqlite_section.get("synchronous") or _DEFAULT_SQLITE["synchronous"]
        ),
    }
    for key in ("busy_timeout_ms", "write_retries", "retry_backoff_ms"):
        sqlite_settings[key] = _coerce_positive_int(
            sqlite_section.get(key), _DEFAULT_SQLITE[key]
        )

    pool_section = config.get("database_pool") or {}
    pool_settings = {
        key: _coerce_positive_int(pool_section.get(key), default)
        for key, default in _DEFAULT_DATABASE_POOL.items()
    }

    return {
        "url": url or _DEFAULT_DATABASE_URL,
        "sqlite": sqlite_settings,
        "pool": pool_settings,
    }


def get_secure_cookies_enabled() -> bool:
    """
    Return whether auth cookies should be marked Secure.

    Priority:
    1) IDEAPORTAL_SECURE_COOKIES env var
    2) config.yaml auth.secure_cookies
    3) default False (local HTTP-friendly)
    """
    env_value = os.getenv("IDEAPORTAL_SECURE_COOKIES")
    if env_value is not None:
        return env_value.strip().lower() in _TRUTHY

    section = load_config().get("auth") or {}
    return _coerce_bool(section.get("secure_cookies"), False)


def get_access_token_expire_minutes() -> int:
    """Session lifetime in minutes: env var, then auth.access_token_expire_minutes, then one day."""
    env_value = os.getenv("IDEAPORTAL_ACCESS_TOKEN_EXPIRE_MINUTES")
    if env_value is not None:
        return _coerce_positive_int(env_value, _DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES)

    section = load_config().get("auth") or {}
    return _coerce_positive_int(
        section.get("access_token_expire_minutes"),
        _DEFAULT_ACCESS_TOKEN_EXPIRE_MINUTES,
    )


def get_upload_settings() -> Dict[str, Any]:
    """Return the upload directory and the per-file size limit in bytes."""
    section = load_config().get("uploads") or {}
    directory = (
        _clean_str(os.getenv("IDEAPORTAL_UPLOAD_DIR"))
        or _clean_str(section.get("directory"))
        or _DEFAULT_UPLOADS["directory"]
    )
    max_mb = _coerce_positive_int(
        section.get("max_file_size_mb"), _DEFAULT_UPLOADS["max_file_size_mb"]
    )
    return {
        "directory": Path(directory),
        "max_file_size_mb": max_mb,
        "max_file_size_bytes": max_mb * 1024 * 1024,
    }


def get_pagination_settings() -> Dict[str, int]:
    section = load_config().get("pagination") or {}
    default_limit = _coerce_positive_int(
        section.get("default_limit"), _DEFAULT_PAGINATION["default_limit"]
    )
    max_limit = _coerce_positive_int(
        section.get("max_limit"), _DEFAULT_PAGINATION["max_limit"]
    )
    return {
        "default_limit": min(default_limit, max_limit),
        "max_limit": max_limit,
    }


def get_notification_settings() -> Dict[str, int]:
    section = load_config().get("notifications") or {}
    return {
        "default_limit": _coerce_positive_int(
            section.get("default_limit"), _DEFAULT_NOTIFICATIONS["default_limit"]
        )
    }


def get_bootstrap_admin_settings() -> Optional[Dict[str, str]]:
    """
    Return the admin account to seed at startup, or None when not configured.

    Both a username and a password are required; environment variables
    IDEAPORTAL_ADMIN_USERNAME / IDEAPORTAL_ADMIN_PASSWORD override the
    bootstrap_admin section of config.yaml.
    """
    section = load_config().get("bootstrap_admin") or {}
    username = _clean_str(os.getenv("IDEAPORTAL_ADMIN_USERNAME")) or _clean_str(
        section.get("username")
    )
    password = _clean_str(os.getenv("IDEAPORTAL_ADMIN_PASSWORD")) or _clean_str(
        section.get("password")
    )
    if not username or not password:
        return None
    display_name = _clean_str(section.get("display_name")) or "Administrator"
    return {
        "username": username,
        "password": password,
        "display_name": display_name,
    }
