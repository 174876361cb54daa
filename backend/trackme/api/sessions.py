from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from trackme.core.config import settings
from trackme.core.geo import compute_region, split_segments_across_antimeridian
from trackme.core.time_utils import utc_now
from trackme.db import get_db
from trackme.repositories.locations import LocationRepository, SortDescriptor
from trackme.repositories.sessions import SessionRepository
from trackme.schemas.location import (
    CoordinateRead,
    LocationBatch,
    LocationRead,
    RegionRead,
    SortOrder,
)
from trackme.schemas.session import (
    RecoveryResult,
    SessionCreate,
    SessionEnd,
    SessionRead,
    SessionSummary,
)
from trackme.services.export import ExportFormat, export_session, generate_filename
from trackme.services.tracking import build_summary

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.post("/", response_model=SessionRead)
def create_session(payload: SessionCreate, db: Session = Depends(get_db)):
    repo = SessionRepository(db)
    return repo.create_session(payload.narrative, payload.start_date or utc_now())


@router.get("/", response_model=list[SessionRead])
def list_sessions(
    active: Optional[bool] = Query(None),
    q: Optional[str] = Query(None, description="narrative contains"),
    db: Session = Depends(get_db),
):
    """
    List sessions, most recent first.

      GET /sessions?active=true
    """
    return SessionRepository(db).fetch_sessions(active=active, narrative_contains=q)


@router.post("/recover", response_model=RecoveryResult)
def recover_sessions(db: Session = Depends(get_db)):
    return RecoveryResult(recovered=SessionRepository(db).recover_orphaned_sessions())


@router.get("/{session_id}", response_model=SessionRead)
def get_session(session_id: str, db: Session = Depends(get_db)):
    return SessionRepository(db).get_session(session_id)


@router.post("/{session_id}/end", response_model=SessionRead)
def end_session(session_id: str, payload: Optional[SessionEnd] = None, db: Session = Depends(get_db)):
    repo = SessionRepository(db)
    session = repo.get_session(session_id)
    end_date = payload.end_date if payload and payload.end_date else utc_now()
    return repo.end_session(session, end_date)


@router.delete("/{session_id}")
def delete_session(session_id: str, db: Session = Depends(get_db)):
    repo = SessionRepository(db)
    repo.delete_session(repo.get_session(session_id))
    return {"message": "Session deleted"}


# --------- Locations --------- #

@router.get("/{session_id}/locations", response_model=list[LocationRead])
def list_locations(
    session_id: str,
    order: SortOrder = Query(SortOrder.asc),
    batch_size: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    session = SessionRepository(db).get_session(session_id)
    sort = [SortDescriptor("timestamp", ascending=order == SortOrder.asc)]
    return LocationRepository(db).fetch_locations(
        session, sort=sort, batch_size=batch_size or settings.fetch_batch_size
    )


@router.post("/{session_id}/locations", response_model=list[LocationRead])
def add_locations(session_id: str, payload: LocationBatch, db: Session = Depends(get_db)):
    """Bulk import of already-validated fixes (e.g. a companion device backlog)."""
    session = SessionRepository(db).get_session(session_id)
    return LocationRepository(db).save_locations(payload.fixes, session)


@router.delete("/{session_id}/locations")
def delete_locations(session_id: str, db: Session = Depends(get_db)):
    session = SessionRepository(db).get_session(session_id)
    removed = LocationRepository(db).delete_locations(session)
    return {"deleted": removed}


@router.get("/{session_id}/count")
def location_count(session_id: str, db: Session = Depends(get_db)):
    repo = SessionRepository(db)
    return {"count": repo.location_count(repo.get_session(session_id))}


@router.get("/{session_id}/summary", response_model=SessionSummary)
def session_summary(session_id: str, db: Session = Depends(get_db)):
    return build_summary(db, session_id)


@router.get("/{session_id}/region", response_model=RegionRead)
def session_region(
    session_id: str,
    min_span: float = Query(0.01, gt=0),
    padding: float = Query(1.2, gt=0),
    db: Session = Depends(get_db),
):
    session = SessionRepository(db).get_session(session_id)
    entries = LocationRepository(db).fetch_locations(session)
    coords = [(e.latitude, e.longitude) for e in entries]
    region = compute_region(coords, min_span=min_span, padding_scale=padding)
    segments = split_segments_across_antimeridian(coords)
    return RegionRead(
        center=CoordinateRead(
            latitude=region.center.latitude, longitude=region.center.longitude
        ),
        latitude_delta=region.latitude_delta,
        longitude_delta=region.longitude_delta,
        segments=[
            [CoordinateRead(latitude=p.latitude, longitude=p.longitude) for p in seg]
            for seg in segments
        ],
    )


@router.get("/{session_id}/export")
def export(
    session_id: str,
    format: ExportFormat = Query(ExportFormat.gpx),
    db: Session = Depends(get_db),
):
    session = SessionRepository(db).get_session(session_id)
    entries = LocationRepository(db).fetch_locations(
        session, batch_size=settings.fetch_batch_size
    )
    body = export_session(session, entries, format)
    filename = generate_filename(session, format)
    return Response(
        content=body,
        media_type=format.media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
