import uuid

from sqlalchemy import Column, Float, ForeignKey, String, event, inspect, select
from sqlalchemy.orm import relationship

from trackme.core.errors import DataInconsistencyError
from trackme.db import Base, UTCDateTime


class LocationEntry(Base):
    __tablename__ = "location_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Nullable: an entry saved before assignment is an orphan until reconciled
    session_id = Column(
        String(36),
        ForeignKey("tracking_sessions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    latitude = Column(Float, nullable=False)    # -90..90
    longitude = Column(Float, nullable=False)   # -180..180
    timestamp = Column(UTCDateTime, nullable=False, index=True)
    accuracy = Column(Float, nullable=False, default=0.0)   # horizontal, meters
    altitude = Column(Float, nullable=False, default=0.0)   # meters, signed
    speed = Column(Float, nullable=False, default=0.0)      # m/s, clamped >= 0
    course = Column(Float, nullable=False, default=0.0)     # degrees, clamped >= 0

    session = relationship("TrackingSession", back_populates="locations")

    def __repr__(self) -> str:
        return f"<LocationEntry {self.id} {self.latitude:.6f},{self.longitude:.6f}>"


IMMUTABLE_FIELDS = (
    "id",
    "latitude",
    "longitude",
    "timestamp",
    "accuracy",
    "altitude",
    "speed",
    "course",
)


@event.listens_for(LocationEntry, "before_update")
def _refuse_entry_mutation(mapper, connection, target):
    """Entries are write-once; only an orphan may be given an owner."""
    state = inspect(target)
    for name in IMMUTABLE_FIELDS:
        if state.attrs[name].history.has_changes():
            raise DataInconsistencyError(
                f"LocationEntry.{name} is immutable once persisted"
            )
    if not state.attrs.session_id.history.has_changes():
        return
    # the old value may be expired, so ask the row itself
    table = LocationEntry.__table__
    previous = connection.execute(
        select(table.c.session_id).where(table.c.id == target.id)
    ).scalar()
    if previous is not None:
        raise DataInconsistencyError("LocationEntry ownership is immutable once assigned")
