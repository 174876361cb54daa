from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SessionCreate(BaseModel):
    """Schema for starting a new recording session."""

    narrative: Optional[str] = None
    start_date: Optional[datetime] = None  # defaults to now


class SessionEnd(BaseModel):
    end_date: Optional[datetime] = None  # defaults to now


class SessionRead(BaseModel):
    """Schema returned when reading a session."""

    id: str
    narrative: Optional[str] = None
    start_date: datetime
    end_date: Optional[datetime] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class SessionSummary(BaseModel):
    """Coarse summary forwarded to a paired companion device."""

    session_id: str
    is_active: bool
    elapsed_seconds: int
    elapsed: str        # "HH:MM:SS"
    distance_m: float
    point_count: int


class RecoveryResult(BaseModel):
    recovered: int
