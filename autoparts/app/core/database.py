from __future__ import annotations

import logging
from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from autoparts.app.core.config import settings
from autoparts.app.core.exceptions import InfrastructureError

logger = logging.getLogger(__name__)


def create_db_engine(url: str, **kwargs) -> Engine:
    """Build an engine for *url*.

    SQLite (used by the test suite) gets the pysqlite transaction recipe so
    BEGIN and SAVEPOINT behave like they do on PostgreSQL.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False, pool_pre_ping=True, **kwargs)

    kwargs.setdefault("connect_args", {"check_same_thread": False})
    if ":memory:" in url or url.rstrip("/").endswith("sqlite"):
        kwargs.setdefault("poolclass", StaticPool)
    sqlite_engine = create_engine(url, echo=False, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _do_connect(dbapi_connection, connection_record) -> None:
        # Let SQLAlchemy emit BEGIN itself
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sqlite_engine, "begin")
    def _do_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine


engine = create_db_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _rollback(db: Session) -> None:
    try:
        db.rollback()
    except Exception:
        logger.exception("Rollback failed after an aborted transaction")


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run a block as one unit of work: commit on success, roll back on error.

    A lost or refused database connection surfaces as ``InfrastructureError``;
    any other exception propagates unchanged. A failure during rollback is
    logged and never replaces the original error.
    """
    try:
        yield db
        db.commit()
    except (OperationalError, InterfaceError) as exc:
        _rollback(db)
        logger.error("Database unavailable: %s", exc.orig or exc)
        raise InfrastructureError("Database unavailable, please retry") from exc
    except BaseException:
        _rollback(db)
        raise
