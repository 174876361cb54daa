from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from trackme.core.config import settings
from trackme.db import SessionLocal
from trackme.processing.validation import RejectionReason, TrackingMode
from trackme.schemas.location import LocationRead, RawFix
from trackme.schemas.session import SessionCreate, SessionEnd, SessionRead, SessionSummary
from trackme.services.tracking import TrackingService

router = APIRouter(prefix="/tracking", tags=["tracking"])

# One recorder per process, like the single sensor it listens to
tracker = TrackingService(
    SessionLocal,
    TrackingMode(settings.tracking_mode).validation_config,
    smoothing=settings.enable_smoothing,
)


class FixDecision(BaseModel):
    accepted: bool
    reason: Optional[RejectionReason] = None
    next_interval: float
    entry: Optional[LocationRead] = None


class ModeUpdate(BaseModel):
    mode: TrackingMode


@router.post("/start", response_model=SessionRead)
def start_tracking(payload: SessionCreate):
    return tracker.start(payload.narrative, payload.start_date)


@router.post("/fix", response_model=FixDecision)
def submit_fix(fix: RawFix):
    update = tracker.handle_fix(fix)
    return FixDecision(
        accepted=update.accepted,
        reason=update.result.reason,
        next_interval=update.next_interval,
        entry=update.entry,
    )


@router.post("/stop", response_model=SessionRead)
def stop_tracking(payload: Optional[SessionEnd] = None):
    return tracker.stop(payload.end_date if payload else None)


@router.get("/status")
def tracking_status():
    return tracker.status()


@router.get("/summary", response_model=SessionSummary)
def tracking_summary():
    return tracker.summary()


@router.put("/mode")
def set_mode(payload: ModeUpdate):
    tracker.configure(payload.mode.validation_config)
    return {"mode": payload.mode.value}
