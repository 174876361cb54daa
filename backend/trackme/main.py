import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trackme.api.sessions import router as sessions_router
from trackme.api.tracking import router as tracking_router, tracker
from trackme.core.config import settings
from trackme.core.errors import (
    DataInconsistencyError,
    ExportNoLocationsError,
    InvalidFixError,
    NoActiveSessionError,
    SessionAlreadyActiveError,
    SessionNotFoundError,
    StorageError,
    TrackMeError,
)
from trackme.db import Base, engine
from trackme.models.tracking_session import TrackingSession  # noqa: F401  (import ensures table is registered)
from trackme.models.location_entry import LocationEntry  # noqa: F401


logging.basicConfig(
    level=settings.log_level,
    format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="TrackMe")

# Allow CORS for local frontend
origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create DB tables (sessions, locations) on startup
Base.metadata.create_all(bind=engine)

# Close sessions left active by a crash before anything new starts
recovered = tracker.startup()
if recovered:
    logger.warning("Closed %d session(s) left active by a previous run", recovered)

app.include_router(sessions_router)
app.include_router(tracking_router)


_STATUS_BY_ERROR = [
    (SessionNotFoundError, 404),
    (SessionAlreadyActiveError, 409),
    (NoActiveSessionError, 409),
    (InvalidFixError, 422),
    (ExportNoLocationsError, 422),
    (DataInconsistencyError, 409),
    (StorageError, 503),
]


@app.exception_handler(TrackMeError)
def handle_trackme_error(request: Request, exc: TrackMeError):
    status = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.get("/")
def root():
    return {"message": "TrackMe backend is running"}
