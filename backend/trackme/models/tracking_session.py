import uuid

from sqlalchemy import Boolean, Column, Index, String, text
from sqlalchemy.orm import relationship

from trackme.db import Base, UTCDateTime


def _new_id() -> str:
    return str(uuid.uuid4())


class TrackingSession(Base):
    __tablename__ = "tracking_sessions"

    id = Column(String(36), primary_key=True, default=_new_id)

    narrative = Column(String, nullable=True)

    start_date = Column(UTCDateTime, nullable=False, index=True)
    # Null while the session is recording
    end_date = Column(UTCDateTime, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Deletes go through the repository (children first, then the session),
    # so no ORM cascade here. Entries are read through LocationRepository;
    # touching this collection directly is an error.
    locations = relationship(
        "LocationEntry",
        back_populates="session",
        passive_deletes=True,
        lazy="raise",
    )

    __table_args__ = (
        # At most one active session at a time
        Index(
            "uq_tracking_sessions_single_active",
            "is_active",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    def __repr__(self) -> str:
        return f"<TrackingSession {self.id} active={self.is_active}>"
