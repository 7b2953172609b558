"""Database connection and session management."""
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from frontline.config import get_settings

settings = get_settings()

Base = declarative_base()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the event log.

    SQLite connections hand transaction control to SQLAlchemy so that
    SAVEPOINTs (used to absorb dedup races) behave, and enforce foreign keys.
    File databases run in WAL mode: an open read transaction in one session
    must not block commits from the threadpool or the websocket pumps.
    """
    is_sqlite = database_url.startswith("sqlite")
    is_file_db = is_sqlite and database_url not in ("sqlite://", "sqlite:///:memory:")
    # SQLite requires check_same_thread=False for FastAPI
    connect_args = {"check_same_thread": False} if is_sqlite else {}

    engine = create_engine(
        database_url,
        connect_args=connect_args,
        echo=echo,
        pool_pre_ping=not is_sqlite,
    )

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys = ON;")
            if is_file_db:
                cursor.execute("PRAGMA journal_mode = WAL;")
            cursor.close()

        @event.listens_for(engine, "begin")
        def begin_sqlite_transaction(conn) -> None:
            conn.exec_driver_sql("BEGIN")

    return engine


engine = build_engine(settings.database_url, echo=settings.debug)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency that provides a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context(session_factory: sessionmaker | None = None) -> Generator[Session, None, None]:
    """Context manager for database session (for use outside of FastAPI)."""
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
