import logging
import sqlite3
import threading
import time
from datetime import datetime, UTC
from pathlib import Path
import uuid

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ideaportal.config.loader import get_database_settings

logger = logging.getLogger("ideaportal.database")


def utcnow() -> datetime:
    """Timestamp default shared by all models."""
    return datetime.now(UTC)


def _ensure_sqlite_directory(database_url: str) -> None:
    if not database_url.startswith("sqlite"):
        return
    db_url = make_url(database_url)
    if not db_url.database or db_url.database == ":memory:":
        return
    db_path = Path(db_url.database)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)


_settings = get_database_settings()
DATABASE_URL = _settings["url"]
_IS_SQLITE = DATABASE_URL.startswith("sqlite")
_sqlite_settings = _settings["sqlite"]
_pool_settings = _settings["pool"]

_ensure_sqlite_directory(DATABASE_URL)

connect_args = {}
if _IS_SQLITE:
    connect_args["check_same_thread"] = False
    connect_args["timeout"] = max(1, _sqlite_settings["busy_timeout_ms"] / 1000)

engine_kwargs = {"pool_pre_ping": True}
# In-memory SQLite uses a single-connection pool that takes no sizing options.
if ":memory:" not in DATABASE_URL:
    engine_kwargs.update(
        pool_size=_pool_settings["pool_size"],
        max_overflow=_pool_settings["max_overflow"],
        pool_timeout=_pool_settings["pool_timeout_seconds"],
        pool_recycle=_pool_settings["pool_recycle_seconds"],
        pool_use_lifo=True,
    )

engine = create_engine(DATABASE_URL, connect_args=connect_args, **engine_kwargs)


if _IS_SQLITE:
    _SQLITE_WRITE_LOCK = threading.RLock()

    @event.listens_for(Engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
        if not isinstance(dbapi_connection, sqlite3.Connection):
            return
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA journal_mode={_sqlite_settings['journal_mode']}")
        cursor.execute(f"PRAGMA synchronous={_sqlite_settings['synchronous']}")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={_sqlite_settings['busy_timeout_ms']}")
        cursor.close()

    def _is_sqlite_locked_error(exc: OperationalError) -> bool:
        message = str(exc).lower()
        return "database is locked" in message or "database table is locked" in message

    class QueuedSession(Session):
        """Serialises commits within the process and retries briefly on lock contention."""

        def commit(self) -> None:
            retries = max(1, _sqlite_settings["write_retries"])
            backoff = max(1, _sqlite_settings["retry_backoff_ms"]) / 1000
            with _SQLITE_WRITE_LOCK:
                for attempt in range(1, retries + 1):
                    try:
                        return super().commit()
                    except OperationalError as exc:
                        if not _is_sqlite_locked_error(exc):
                            raise
                        super().rollback()
                        if attempt >= retries:
                            raise
                        logger.warning(
                            f"SQLite locked on commit (attempt {attempt}/{retries}); retrying."
                        )
                        time.sleep(backoff * attempt)

        def flush(self, objects=None) -> None:
            with _SQLITE_WRITE_LOCK:
                return super().flush(objects)


SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=QueuedSession if _IS_SQLITE else Session,
)

Base = declarative_base()

# Columns added to ideas after the first release; older SQLite files get them on startup.
_IDEA_COLUMN_BACKFILL = {
    "media_urls": "JSON",
    "attachment_url": "VARCHAR",
    "organization_category": "VARCHAR",
    "admin_notes": "TEXT",
    "reviewer_id": "INTEGER",
    "reviewer_email": "VARCHAR",
    "transformer_id": "INTEGER",
    "transformer_email": "VARCHAR",
    "implementer_id": "INTEGER",
    "implementer_email": "VARCHAR",
}


def ensure_sqlite_schema(engine_to_check) -> None:
    if not str(engine_to_check.url).startswith("sqlite"):
        return
    with engine_to_check.connect() as connection:
        result = connection.execute(text("PRAGMA table_info(ideas)"))
        columns = {row[1] for row in result.fetchall()}
        if not columns:
            return
        for name, column_type in _IDEA_COLUMN_BACKFILL.items():
            if name in columns:
                continue
            logger.info(f"Adding missing ideas.{name} column.")
            connection.execute(
                text(f"ALTER TABLE ideas ADD COLUMN {name} {column_type}")  # noqa: S608
            )
        connection.commit()


def get_db():
    req_id = uuid.uuid4()
    logger.debug(f"[DB_SESSION_START][{req_id}] Creating database session.")
    db = SessionLocal()
    try:
        logger.debug(f"[DB_SESSION_YIELD][{req_id}] Yielding database session.")
        yield db
    finally:
        logger.debug(f"[DB_SESSION_END][{req_id}] Closing database session.")
        db.close()
