from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict


class RawFix(BaseModel):
    """One reading as delivered by the positioning sensor.

    Values are taken as-is; range and finiteness checks belong to the
    validator (rejections) and the repository (hard failures). Negative
    speed/course/accuracy are the sensor's "invalid" sentinels.
    """

    latitude: float
    longitude: float
    altitude: float = 0.0
    horizontal_accuracy: float = 0.0
    vertical_accuracy: float = -1.0
    course: float = -1.0
    speed: float = -1.0
    timestamp: datetime

    model_config = ConfigDict(frozen=True)


class LocationRead(BaseModel):
    id: str
    session_id: Optional[str] = None
    latitude: float
    longitude: float
    timestamp: datetime
    accuracy: float
    altitude: float
    speed: float
    course: float

    model_config = ConfigDict(from_attributes=True)


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


class LocationBatch(BaseModel):
    fixes: list[RawFix]


class CoordinateRead(BaseModel):
    latitude: float
    longitude: float


class RegionRead(BaseModel):
    center: CoordinateRead
    latitude_delta: float
    longitude_delta: float
    segments: list[list[CoordinateRead]]
