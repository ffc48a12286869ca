"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from mentorship.core.config import settings

logger = logging.getLogger(__name__)

# SQLite writers serialize on the database file; the busy timeout lets a
# second booker wait for the first commit instead of failing with "database is locked".
_SQLITE_CONNECT_ARGS: dict[str, Any] = {
    "check_same_thread": False,
    "timeout": 30,
}


def _build_engine_kwargs(db_url: str) -> dict[str, Any]:
    """Engine options for the configured dialect."""
    if db_url.startswith("sqlite"):
        return {"connect_args": dict(_SQLITE_CONNECT_ARGS), "echo": settings.db_echo}

    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "echo": settings.db_echo,
        "connect_args": {"application_name": "mentorship_scheduler"},
    }


def build_engine(db_url: str) -> Engine:
    """Create an engine for ``db_url`` with the service's pool and connect options."""
    built = create_engine(db_url, **_build_engine_kwargs(db_url))

    @event.listens_for(built, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    if built.dialect.name == "sqlite":
        _use_immediate_transactions(built)

    return built


def _use_immediate_transactions(built: Engine) -> None:
    """
    Open every SQLite transaction with BEGIN IMMEDIATE.

    A transaction holds the database write lock from its first statement, so
    a booking's availability check and insert commit as one unit.
    """

    @event.listens_for(built, "connect")
    def disable_pysqlite_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(built, "begin")
    def begin_immediate(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine: Engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables known to the metadata."""
    import mentorship.models  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Database tables created", extra={"dialect": target.dialect.name})


def get_db_pool_status() -> dict[str, int]:
    """Get current database pool statistics."""
    pool = engine.pool
    size = getattr(pool, "size", None)
    if size is None:
        return {}
    return {
        "size": pool.size(),
        "checked_in": pool.checkedin(),
        "checked_out": pool.checkedout(),
        "overflow": pool.overflow(),
    }


__all__ = [
    "Base",
    "SessionLocal",
    "build_engine",
    "engine",
    "get_db",
    "get_db_pool_status",
    "init_db",
]
