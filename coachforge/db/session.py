from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from coachforge.config.settings import settings
from coachforge.core.errors import CoachForgeError

# Lazy initialization so importing the package never opens a connection
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def enable_sqlite_savepoints(engine: Engine, *, immediate: bool = False) -> None:
    """Let pysqlite honor SAVEPOINT inside SQLAlchemy-managed transactions.

    The driver otherwise defers BEGIN until the first DML statement, so a
    savepoint opened before any write silently becomes the outer transaction.

    Args:
        engine: SQLite engine to configure
        immediate: Start transactions with BEGIN IMMEDIATE so concurrent
            writers queue on the database lock instead of failing on upgrade
    """
    begin_statement = "BEGIN IMMEDIATE" if immediate else "BEGIN"

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql(begin_statement)


def _get_engine() -> Engine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        logger.info(f"Initializing database engine: {settings.database_url}")

        connect_args = {}
        if "sqlite" in settings.database_url.lower():
            connect_args = {"check_same_thread": False}

        _engine = create_engine(
            settings.database_url,
            connect_args=connect_args,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        if "sqlite" in settings.database_url.lower():
            enable_sqlite_savepoints(_engine)
        logger.info("Database engine initialized")
    return _engine


def get_engine() -> Engine:
    """Get or create the database engine (public API)."""
    return _get_engine()


def _get_session_local() -> sessionmaker:
    """Get or create the session factory (lazy initialization)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_get_engine(), expire_on_commit=False)
        logger.info("Database session factory initialized")
    return _SessionLocal


def init_db() -> None:
    """Create all tables for the configured database."""
    from coachforge.db.models import Base

    Base.metadata.create_all(bind=_get_engine())
    logger.info("Database schema created")


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get database session context manager.

    Commits on success. Counter updates are issued as bulk UPDATE statements
    that never mark the session dirty, so the commit is unconditional.

    Domain errors (CoachForgeError) are rolled back and re-raised without
    error logging; anything else is logged as a database error first.
    """
    session = _get_session_local()()
    try:
        yield session
        session.commit()
        logger.debug("Database session committed successfully")
    except CoachForgeError as e:
        logger.debug(f"{type(e).__name__} in session, rolling back")
        session.rollback()
        raise
    except Exception as e:
        logger.error(
            f"Database session error, rolling back: {e}. "
            f"Error type: {type(e).__name__}, session state: "
            f"dirty={len(session.dirty)}, new={len(session.new)}, deleted={len(session.deleted)}"
        )
        session.rollback()
        raise
    finally:
        session.close()
