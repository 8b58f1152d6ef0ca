"""Database connection and session factory.

The engine is built once by init_database() during app startup and kept on
app.state; nothing connects at import time. All naive datetimes loaded from
the database are tagged as UTC to prevent naive-vs-aware comparison errors.
"""

from datetime import timezone

from fastapi import Request
from sqlalchemy import DateTime, TypeDecorator, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


class UTCDateTime(TypeDecorator):
    """DateTime type that ensures UTC timezone on load."""
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Database:
    """Engine + session factory pair with a process-wide lifecycle."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    def session(self) -> Session:
        return self.session_factory()

    def create_tables(self) -> None:
        from .models import Base

        Base.metadata.create_all(bind=self.engine, checkfirst=True)

    def dispose(self) -> None:
        self.engine.dispose()


def init_database(url: str) -> Database:
    """Build the engine for ``url``. Call once at startup."""
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(
            url,
            pool_size=10,
            max_overflow=20,
            pool_pre_ping=True,
            pool_recycle=3600,
            connect_args={"connect_timeout": 10},
        )

        @event.listens_for(engine, "connect")
        def _set_timezone(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("SET timezone = 'UTC'")
            cursor.close()

    return Database(engine)


def get_db(request: Request):
    db = request.app.state.db.session()
    try:
        yield db
    finally:
        db.close()
