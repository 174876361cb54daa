import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sqlalchemy import func

from trackme.core.constants import LOCATION_SORT_KEYS
from trackme.core.errors import InvalidFixError
from trackme.core.time_utils import ensure_utc
from trackme.models.location_entry import LocationEntry
from trackme.models.tracking_session import TrackingSession
from trackme.repositories.base import BaseRepository
from trackme.schemas.location import RawFix


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SortDescriptor:
    key: str
    ascending: bool = True

    def __post_init__(self):
        if self.key not in LOCATION_SORT_KEYS:
            raise ValueError(f"Cannot sort locations by {self.key!r}")

    def clause(self):
        column = getattr(LocationEntry, self.key)
        return column.asc() if self.ascending else column.desc()


TIMESTAMP_ASCENDING = (SortDescriptor("timestamp"),)


def _entry_from_fix(fix: RawFix, session_id: Optional[str]) -> LocationEntry:
    """Build an entry, clamping invalid (negative) speed and course to 0."""
    numbers = {
        "latitude": fix.latitude,
        "longitude": fix.longitude,
        "altitude": fix.altitude,
        "horizontal_accuracy": fix.horizontal_accuracy,
        "speed": fix.speed,
        "course": fix.course,
    }
    bad = [name for name, v in numbers.items() if not math.isfinite(v)]
    if bad:
        raise InvalidFixError(f"Non-finite values in fix: {', '.join(bad)}")
    if not -90.0 <= fix.latitude <= 90.0:
        raise InvalidFixError(f"Latitude out of range: {fix.latitude}")
    if not -180.0 <= fix.longitude <= 180.0:
        raise InvalidFixError(f"Longitude out of range: {fix.longitude}")

    return LocationEntry(
        session_id=session_id,
        latitude=fix.latitude,
        longitude=fix.longitude,
        timestamp=ensure_utc(fix.timestamp),
        accuracy=max(fix.horizontal_accuracy, 0.0),
        altitude=fix.altitude,
        speed=fix.speed if fix.speed >= 0 else 0.0,
        course=min(fix.course, 360.0) if fix.course >= 0 else 0.0,
    )


class LocationRepository(BaseRepository):
    """Write-once storage of location entries, scoped by owning session."""

    # --------- Writes --------- #

    def save_location(self, fix: RawFix, session: Optional[TrackingSession]) -> LocationEntry:
        """Persist one fix for `session` (None leaves it orphaned until assigned)."""
        entry = _entry_from_fix(fix, session.id if session is not None else None)
        with self._locked(*self._keys(session)):
            with self._transaction("save location"):
                self.db.add(entry)
        return entry

    def save_locations(
        self, fixes: Iterable[RawFix], session: TrackingSession
    ) -> list[LocationEntry]:
        """Persist many fixes in one transaction: all of them or none."""
        entries = [_entry_from_fix(fix, session.id) for fix in fixes]
        if not entries:
            return []
        with self._locked(session.id):
            with self._transaction("save locations"):
                self.db.add_all(entries)
        logger.info("Saved %d locations for session %s", len(entries), session.id)
        return entries

    def delete_locations(self, session: TrackingSession) -> int:
        """Remove every entry owned by `session`; 0 when there are none."""
        with self._locked(session.id):
            with self._transaction("delete locations"):
                removed = (
                    self.db.query(LocationEntry)
                    .filter(LocationEntry.session_id == session.id)
                    .delete(synchronize_session=False)
                )
        if removed:
            logger.info("Deleted %d locations for session %s", removed, session.id)
        return removed

    def assign_orphaned_locations(self, session: TrackingSession) -> int:
        """Give every unowned entry to `session`. Returns how many were adopted."""
        with self._locked(session.id):
            with self._transaction("assign orphaned locations"):
                adopted = (
                    self.db.query(LocationEntry)
                    .filter(LocationEntry.session_id.is_(None))
                    .update(
                        {LocationEntry.session_id: session.id},
                        synchronize_session=False,
                    )
                )
        if adopted:
            logger.info("Assigned %d orphaned locations to session %s", adopted, session.id)
        return adopted

    # --------- Reads --------- #

    def fetch_locations(
        self,
        session: TrackingSession,
        sort: Sequence[SortDescriptor] = TIMESTAMP_ASCENDING,
        batch_size: Optional[int] = None,
    ) -> list[LocationEntry]:
        """
        Entries owned by `session`, ordered by `sort` (timestamp ascending when
        empty or omitted). `batch_size` only changes how rows are streamed from the
        database, never which rows come back.
        """
        query = (
            self.db.query(LocationEntry)
            .filter(LocationEntry.session_id == session.id)
            .order_by(*[s.clause() for s in (sort or TIMESTAMP_ASCENDING)])
        )
        if batch_size:
            query = query.yield_per(batch_size)
        with self._reading("fetch locations"):
            return list(query)

    def fetch_orphaned_locations(self) -> list[LocationEntry]:
        with self._reading("fetch orphaned locations"):
            return (
                self.db.query(LocationEntry)
                .filter(LocationEntry.session_id.is_(None))
                .order_by(LocationEntry.timestamp)
                .all()
            )

    def location_count(self, session: TrackingSession) -> int:
        with self._reading("count locations"):
            return (
                self.db.query(func.count(LocationEntry.id))
                .filter(LocationEntry.session_id == session.id)
                .scalar()
                or 0
            )

    @staticmethod
    def _keys(session: Optional[TrackingSession]) -> tuple[str, ...]:
        return (session.id,) if session is not None else ()
