import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from trackme.core.errors import (
    SessionAlreadyActiveError,
    SessionNotFoundError,
    StorageError,
)
from trackme.core.time_utils import ensure_utc
from trackme.models.location_entry import LocationEntry
from trackme.models.tracking_session import TrackingSession
from trackme.repositories.base import ACTIVE_FLAG_KEY, BaseRepository, session_locks


logger = logging.getLogger(__name__)


class SessionRepository(BaseRepository):
    """Create, end, list, delete and repair tracking sessions."""

    # --------- Reads --------- #

    def get_session(self, session_id: str) -> TrackingSession:
        with self._reading("fetch session"):
            row = self.db.get(TrackingSession, session_id)
        if row is None:
            raise SessionNotFoundError(session_id)
        return row

    def fetch_sessions(
        self,
        active: Optional[bool] = None,
        narrative_contains: Optional[str] = None,
        started_after: Optional[datetime] = None,
        started_before: Optional[datetime] = None,
        newest_first: bool = True,
    ) -> list[TrackingSession]:
        query = self.db.query(TrackingSession)
        if active is not None:
            query = query.filter(TrackingSession.is_active == active)
        if narrative_contains:
            query = query.filter(TrackingSession.narrative.contains(narrative_contains))
        if started_after is not None:
            query = query.filter(TrackingSession.start_date >= ensure_utc(started_after))
        if started_before is not None:
            query = query.filter(TrackingSession.start_date <= ensure_utc(started_before))
        order = TrackingSession.start_date.desc() if newest_first else TrackingSession.start_date
        with self._reading("fetch sessions"):
            return query.order_by(order).all()

    def fetch_active_sessions(self) -> list[TrackingSession]:
        return self.fetch_sessions(active=True)

    def fetch_all_sessions(self) -> list[TrackingSession]:
        # Most recent first
        return self.fetch_sessions()

    def location_count(self, session: TrackingSession) -> int:
        """Exact count from the store, never from a loaded collection."""
        with self._reading("count locations"):
            return (
                self.db.query(func.count(LocationEntry.id))
                .filter(LocationEntry.session_id == session.id)
                .scalar()
                or 0
            )

    # --------- Writes --------- #

    def create_session(self, narrative: Optional[str], start_date: datetime) -> TrackingSession:
        with self._locked(ACTIVE_FLAG_KEY):
            with self._reading("check active sessions"):
                active = (
                    self.db.query(TrackingSession.id)
                    .filter(TrackingSession.is_active.is_(True))
                    .first()
                )
            if active is not None:
                raise SessionAlreadyActiveError(active[0])

            session = TrackingSession(
                narrative=narrative,
                start_date=ensure_utc(start_date),
                end_date=None,
                is_active=True,
            )
            try:
                with self._transaction("create session"):
                    self.db.add(session)
            except StorageError as e:
                # lost a race against another process: the unique index caught it
                if isinstance(e.cause, IntegrityError):
                    raise SessionAlreadyActiveError() from e
                raise
        logger.info("Created session %s", session.id)
        return session

    def end_session(self, session: TrackingSession, end_date: datetime) -> TrackingSession:
        """Set end date and clear the active flag once; later calls are no-ops."""
        with self._locked(ACTIVE_FLAG_KEY, session.id):
            with self._transaction("end session"):
                row = self._load_for_update(session.id)
                if not row.is_active and row.end_date is not None:
                    return row
                row.end_date = ensure_utc(end_date)
                row.is_active = False
        logger.info("Ended session %s", row.id)
        return row

    def delete_session(self, session: TrackingSession) -> None:
        """Delete the session's entries and then the session, atomically."""
        session_id = session.id
        with self._locked(ACTIVE_FLAG_KEY, session_id):
            with self._transaction("delete session"):
                row = self._load_for_update(session_id)
                removed = (
                    self.db.query(LocationEntry)
                    .filter(LocationEntry.session_id == session_id)
                    .delete(synchronize_session=False)
                )
                self.db.delete(row)
        session_locks.discard(session_id)
        logger.info("Deleted session %s and %d locations", session_id, removed)

    def recover_orphaned_sessions(self) -> int:
        """
        Close sessions left active by an abnormal termination.

        End date is the last recorded entry's timestamp, or the start date
        when the session has no entries. Safe to call repeatedly.
        """
        with self._locked(ACTIVE_FLAG_KEY):
            with self._transaction("recover orphaned sessions"):
                orphaned = (
                    self.db.query(TrackingSession)
                    .filter(TrackingSession.is_active.is_(True))
                    .with_for_update()
                    .all()
                )
                for row in orphaned:
                    last_ts = (
                        self.db.query(func.max(LocationEntry.timestamp))
                        .filter(LocationEntry.session_id == row.id)
                        .scalar()
                    )
                    end = row.start_date
                    if last_ts is not None:
                        # func.max bypasses the column type on some backends
                        if isinstance(last_ts, str):
                            last_ts = datetime.fromisoformat(last_ts)
                        last_ts = ensure_utc(last_ts)
                        end = max(end, last_ts)
                    row.end_date = end
                    row.is_active = False
        if orphaned:
            logger.info("Recovered %d orphaned active session(s)", len(orphaned))
        return len(orphaned)

    def _load_for_update(self, session_id: str) -> TrackingSession:
        row = (
            self.db.query(TrackingSession)
            .filter(TrackingSession.id == session_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if row is None:
            raise SessionNotFoundError(session_id)
        return row
