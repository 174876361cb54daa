import os
from datetime import datetime, timedelta, timezone

import pytest

# Use in-memory sqlite for tests; must be set before trackme.db is imported
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from trackme.db import Base, make_engine  # noqa: E402
from trackme.models.location_entry import LocationEntry  # noqa: E402,F401
from trackme.models.tracking_session import TrackingSession  # noqa: E402,F401
from trackme.schemas.location import RawFix  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402


T0 = datetime(2025, 6, 1, 8, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory():
    """Fresh in-memory database per test."""
    engine = make_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


def make_fix(
    seconds: float = 0.0,
    lat: float = 37.7749,
    lon: float = -122.4194,
    accuracy: float = 5.0,
    **kwargs,
) -> RawFix:
    """A plausible fix `seconds` after T0."""
    values = dict(
        latitude=lat,
        longitude=lon,
        altitude=10.0,
        horizontal_accuracy=accuracy,
        vertical_accuracy=3.0,
        course=90.0,
        speed=1.5,
        timestamp=T0 + timedelta(seconds=seconds),
    )
    values.update(kwargs)
    return RawFix(**values)


@pytest.fixture
def fix_factory():
    return make_fix
