from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from kitchen_pos.core.config import DATABASE_URL, SQL_ECHO, SQLITE_BUSY_TIMEOUT_SECONDS

Base = declarative_base()


def configure_sqlite_engine(target: Engine) -> Engine:
    """Enable foreign keys and real SAVEPOINT support on pysqlite connections.

    pysqlite defers BEGIN until the first DML statement, which breaks
    ``Session.begin_nested()``. The driver's own transaction handling is
    disabled and SQLAlchemy emits the BEGIN itself.

    SQLite ignores ``SELECT ... FOR UPDATE``, so transactions open with
    ``BEGIN IMMEDIATE``: the write lock is taken up front and concurrent
    writers wait on ``busy_timeout`` instead of failing with "database is
    locked" when they upgrade a shared lock.
    """

    @event.listens_for(target, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(target, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN IMMEDIATE")

    return target


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        built = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
            echo=SQL_ECHO,
        )
        return configure_sqlite_engine(built)
    return create_engine(url, pool_pre_ping=True, echo=SQL_ECHO)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def commit_or_rollback(db: Session):
    """Commit the request's unit of work, or roll it back and re-raise."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
