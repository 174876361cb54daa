"""
Tracking orchestration.

Feeds raw fixes from the sensor into the validator and persists the accepted
ones. One instance drives one recording at a time; fixes must be delivered
sequentially.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from trackme.core.errors import NoActiveSessionError, SessionNotFoundError, TrackMeError
from trackme.core.geo import path_distance_m
from trackme.core.time_utils import ensure_utc, seconds_to_hhmmss, utc_now
from trackme.processing.validation import LocationValidator, ValidationConfig, ValidationResult
from trackme.repositories.locations import LocationRepository
from trackme.repositories.sessions import SessionRepository
from trackme.schemas.location import LocationRead, RawFix
from trackme.schemas.session import SessionRead, SessionSummary


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrackingUpdate:
    result: ValidationResult
    entry: Optional[LocationRead] = None

    @property
    def accepted(self) -> bool:
        return self.result.accepted

    @property
    def next_interval(self) -> float:
        return self.result.next_interval


def build_summary(db: Session, session_id: str, now: Optional[datetime] = None) -> SessionSummary:
    """Elapsed time, distance and point count for a session, read from storage."""
    sessions = SessionRepository(db)
    locations = LocationRepository(db)
    session = sessions.get_session(session_id)
    entries = locations.fetch_locations(session)

    end = session.end_date or ensure_utc(now or utc_now())
    elapsed = max(int((end - session.start_date).total_seconds()), 0)
    distance = path_distance_m((e.latitude, e.longitude) for e in entries)

    return SessionSummary(
        session_id=session.id,
        is_active=session.is_active,
        elapsed_seconds=elapsed,
        elapsed=seconds_to_hhmmss(elapsed),
        distance_m=round(distance, 1),
        point_count=len(entries),
    )


class TrackingService:
    """
    Glue between the sensor, the validator and the repositories.

    Usage:
        service = TrackingService(SessionLocal, ValidationConfig.default())
        service.startup()                  # repair sessions left active
        service.start("Drive to Tahoe")
        update = service.handle_fix(fix)   # per sensor reading
        sensor.interval = update.next_interval
        service.stop()
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: Optional[ValidationConfig] = None,
        smoothing: bool = True,
    ):
        self.session_factory = session_factory
        self.validator = LocationValidator(config, smoothing=smoothing)
        self.current_session_id: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def is_tracking(self) -> bool:
        return self.current_session_id is not None

    def configure(self, config: ValidationConfig) -> None:
        """Swap thresholds; filter state restarts."""
        with self._lock:
            self.validator.config = config
            self.validator.reset()

    def startup(self) -> int:
        """Run once before tracking resumes: close sessions left active."""
        with self.session_factory() as db:
            recovered = SessionRepository(db).recover_orphaned_sessions()
        self.current_session_id = None
        self.validator.reset()
        return recovered

    def start(self, narrative: Optional[str] = None, now: Optional[datetime] = None) -> SessionRead:
        with self._lock:
            with self.session_factory() as db:
                session = SessionRepository(db).create_session(narrative, now or utc_now())
                read = SessionRead.model_validate(session)
            self.validator.reset()
            self.current_session_id = read.id
        logger.info("Tracking started for session %s", read.id)
        return read

    def handle_fix(self, fix: RawFix) -> TrackingUpdate:
        with self._lock:
            if self.current_session_id is None:
                raise NoActiveSessionError()
            with self.session_factory() as db:
                try:
                    session = SessionRepository(db).get_session(self.current_session_id)
                except SessionNotFoundError:
                    # deleted while recording; nothing left to record into
                    logger.warning(
                        "Session %s vanished while tracking", self.current_session_id
                    )
                    self._clear()
                    raise
                result = self.validator.validate(fix)
                if not result.accepted:
                    return TrackingUpdate(result=result)
                try:
                    entry = LocationRepository(db).save_location(result.fix, session)
                except TrackMeError:
                    # the anchor must be a fix that was actually stored
                    self.validator.retract_last()
                    raise
                read = LocationRead.model_validate(entry)
        return TrackingUpdate(result=result, entry=read)

    def stop(self, now: Optional[datetime] = None) -> SessionRead:
        with self._lock:
            if self.current_session_id is None:
                raise NoActiveSessionError()
            session_id = self.current_session_id
            try:
                with self.session_factory() as db:
                    repo = SessionRepository(db)
                    session = repo.end_session(repo.get_session(session_id), now or utc_now())
                    read = SessionRead.model_validate(session)
            except SessionNotFoundError:
                self._clear()
                raise
            self._clear()
        logger.info("Tracking stopped for session %s", read.id)
        return read

    def _clear(self) -> None:
        self.current_session_id = None
        self.validator.reset()

    def status(self) -> dict:
        v = self.validator
        return {
            "is_tracking": self.is_tracking,
            "session_id": self.current_session_id,
            "state": v.state.value,
            "next_interval": v.current_interval,
            "accepted": v.accepted_count,
            "rejected": v.rejected_count,
            "rejections": {r.value: n for r, n in v.rejections.items() if n},
        }

    def summary(self, session_id: Optional[str] = None) -> SessionSummary:
        """Summary for `session_id`, or the current recording."""
        target = session_id or self.current_session_id
        if target is None:
            raise NoActiveSessionError()
        with self.session_factory() as db:
            return build_summary(db, target)
