from datetime import timedelta
import math
import random

from trackme.core.time_utils import utc_now
from trackme.db import Base, SessionLocal, engine
from trackme.processing.validation import ValidationConfig
from trackme.repositories.sessions import SessionRepository
from trackme.schemas.location import RawFix
from trackme.services.tracking import TrackingService


# Golden Gate Park, roughly
START_LAT = 37.7694
START_LON = -122.4862


def clear_sessions(db) -> None:
    """Delete every stored session so we can reseed cleanly."""
    repo = SessionRepository(db)
    for session in repo.fetch_all_sessions():
        repo.delete_session(session)


def simulated_walk(start, minutes: int = 30, every_s: int = 5):
    """Noisy fixes along a slow loop, a few of them deliberately bad."""
    lat, lon = START_LAT, START_LON
    for i in range(minutes * 60 // every_s):
        heading = math.radians(i * 2 % 360)
        lat += 0.00004 * math.cos(heading)
        lon += 0.00005 * math.sin(heading)
        accuracy = random.choice([5.0, 8.0, 12.0, 15.0, 90.0])
        yield RawFix(
            latitude=lat + random.gauss(0, 0.00002),
            longitude=lon + random.gauss(0, 0.00002),
            altitude=random.uniform(40.0, 60.0),
            horizontal_accuracy=accuracy,
            vertical_accuracy=accuracy,
            course=math.degrees(heading),
            speed=random.uniform(1.0, 1.8),
            timestamp=start + timedelta(seconds=i * every_s),
        )


def seed_demo_sessions(days: int = 3) -> None:
    """Record one walk per day through the real validator."""
    service = TrackingService(SessionLocal, ValidationConfig.high_precision())
    for day in range(days, 0, -1):
        start = utc_now() - timedelta(days=day)
        session = service.start(f"Evening walk {day}", now=start)
        accepted = sum(service.handle_fix(fix).accepted for fix in simulated_walk(start))
        service.stop(now=start + timedelta(minutes=30))
        print(f"Seeded session {session.id} with {accepted} points")


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        clear_sessions(db)
    finally:
        db.close()
    seed_demo_sessions()


if __name__ == "__main__":
    main()
