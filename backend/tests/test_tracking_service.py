from datetime import timedelta

import pytest

from trackme.core.errors import (
    NoActiveSessionError,
    SessionAlreadyActiveError,
    SessionNotFoundError,
    StorageError,
)
from trackme.processing.validation import EngineState, RejectionReason, ValidationConfig
from trackme.repositories.locations import LocationRepository
from trackme.repositories.sessions import SessionRepository
from trackme.services.tracking import TrackingService
from conftest import T0, make_fix


# ~0.0018 degrees of latitude is ~200 m
STEP = 0.0018


@pytest.fixture
def service(session_factory):
    return TrackingService(session_factory, ValidationConfig.default())


def test_fix_without_session_raises(service):
    with pytest.raises(NoActiveSessionError):
        service.handle_fix(make_fix(0))


def test_start_record_stop(service, session_factory):
    session = service.start("Drive to Tahoe", now=T0)
    assert service.is_tracking
    assert session.is_active

    first = service.handle_fix(make_fix(0))
    redundant = service.handle_fix(make_fix(1))
    second = service.handle_fix(make_fix(60, lat=37.7749 + STEP))

    assert first.accepted and second.accepted
    assert not redundant.accepted
    assert redundant.result.reason == RejectionReason.REDUNDANT
    assert first.entry.session_id == session.id

    ended = service.stop(now=T0 + timedelta(minutes=2))
    assert not ended.is_active
    assert ended.end_date == T0 + timedelta(minutes=2)
    assert not service.is_tracking

    with session_factory() as db:
        row = SessionRepository(db).get_session(session.id)
        assert LocationRepository(db).location_count(row) == 2


def test_second_start_refused(service):
    service.start("First", now=T0)
    with pytest.raises(SessionAlreadyActiveError):
        service.start("Second", now=T0 + timedelta(seconds=5))


def test_stop_without_session_raises(service):
    with pytest.raises(NoActiveSessionError):
        service.stop()


def test_start_resets_engine(service):
    service.start(None, now=T0)
    service.handle_fix(make_fix(0))
    service.stop(now=T0 + timedelta(minutes=1))

    service.start(None, now=T0 + timedelta(hours=1))
    assert service.validator.state == EngineState.WAITING_FOR_FIRST_FIX
    # an earlier timestamp than the previous session is fine after a restart
    assert service.handle_fix(make_fix(30)).accepted


def test_startup_recovers_abandoned_session(session_factory):
    crashed = TrackingService(session_factory)
    session = crashed.start("Crashed", now=T0)
    crashed.handle_fix(make_fix(0))
    crashed.handle_fix(make_fix(30, lat=37.7749 + STEP))

    fresh = TrackingService(session_factory)
    assert fresh.startup() == 1
    assert not fresh.is_tracking
    with session_factory() as db:
        row = SessionRepository(db).get_session(session.id)
        assert not row.is_active
        assert row.end_date == T0 + timedelta(seconds=30)


def test_summary_reports_distance_and_points(service):
    session = service.start("Loop", now=T0)
    service.handle_fix(make_fix(0))
    service.handle_fix(make_fix(60, lat=37.7749 + STEP))
    service.stop(now=T0 + timedelta(minutes=5))

    summary = service.summary(session.id)
    assert summary.point_count == 2
    assert summary.elapsed_seconds == 300
    assert summary.elapsed == "00:05:00"
    assert summary.distance_m == pytest.approx(200.0, rel=0.05)
    assert summary.is_active is False


def test_summary_without_session_raises(service):
    with pytest.raises(NoActiveSessionError):
        service.summary()


def test_configure_swaps_thresholds(service):
    service.configure(ValidationConfig.permissive())
    service.start(None, now=T0)
    service.handle_fix(make_fix(0))
    # 1.5 s apart is redundant under the default thresholds but not here
    assert service.handle_fix(make_fix(1.5, lat=37.7749 + 0.00001)).accepted


def test_status_counts_decisions(service):
    service.start(None, now=T0)
    service.handle_fix(make_fix(0))
    service.handle_fix(make_fix(1))
    status = service.status()
    assert status["is_tracking"] is True
    assert status["state"] == "tracking"
    assert status["accepted"] == 1
    assert status["rejected"] == 1
    assert status["rejections"] == {"redundant": 1}


def _delete_current(service):
    with service.session_factory() as db:
        repo = SessionRepository(db)
        repo.delete_session(repo.get_session(service.current_session_id))


def test_fix_after_session_deleted_stops_tracking(service):
    service.start("Gone", now=T0)
    _delete_current(service)

    with pytest.raises(SessionNotFoundError):
        service.handle_fix(make_fix(0))
    assert service.validator.accepted_count == 0
    assert service.validator.state == EngineState.WAITING_FOR_FIRST_FIX
    assert not service.is_tracking
    with pytest.raises(NoActiveSessionError):
        service.stop()


def test_stop_after_session_deleted_clears_state(service):
    service.start("Gone", now=T0)
    service.handle_fix(make_fix(0))
    _delete_current(service)

    with pytest.raises(SessionNotFoundError):
        service.stop()
    assert not service.is_tracking
    assert service.status()["is_tracking"] is False
    # a new recording can start straight away
    assert service.start("Next", now=T0 + timedelta(hours=1)).is_active


def test_failed_save_does_not_become_anchor(service, monkeypatch):
    service.start(None, now=T0)

    def broken_save(self, fix, session):
        raise StorageError("Failed to save location")

    monkeypatch.setattr(LocationRepository, "save_location", broken_save)
    with pytest.raises(StorageError):
        service.handle_fix(make_fix(0))
    assert service.validator.accepted_count == 0
    assert service.validator.last_accepted is None
    assert service.is_tracking

    monkeypatch.undo()
    assert service.handle_fix(make_fix(0)).accepted
