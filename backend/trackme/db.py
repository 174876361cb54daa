from datetime import datetime

from sqlalchemy import DateTime, create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from trackme.core.config import settings
from trackme.core.time_utils import ensure_utc

# SQLAlchemy Base class for models to inherit
Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend.

    SQLite has no tz support, so values are normalized to UTC on the way in
    and tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = ensure_utc(value)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        return ensure_utc(value)


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine; SQLite gets thread-shareable connections and FK enforcement."""
    kwargs = {"echo": echo}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if make_url(url).database in (None, "", ":memory:"):
            # one shared connection, otherwise every connection gets its own empty db
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True  # helps avoid stale connections
    eng = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(eng, "connect", _sqlite_pragmas)
    return eng


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Create SQLAlchemy engine (Postgres by default, SQLite for tests/local use)
engine = make_engine(settings.database_url, echo=settings.sql_echo)

# Factory that creates DB sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependency we will use in FastAPI routes
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
