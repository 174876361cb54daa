import pytest

from conftest import make_fix


def get_client():
    # conftest points DATABASE_URL at in-memory sqlite before this import
    from trackme.main import app  # noqa: WPS433
    from fastapi.testclient import TestClient  # noqa: WPS433
    return TestClient(app)


@pytest.fixture(autouse=True)
def clean_tracker():
    """The app keeps one tracker and one database for the whole process."""
    yield
    from trackme.api.tracking import tracker
    from trackme.db import SessionLocal
    from trackme.repositories.sessions import SessionRepository

    if tracker.is_tracking:
        tracker.stop()
    with SessionLocal() as db:
        repo = SessionRepository(db)
        for session in repo.fetch_all_sessions():
            repo.delete_session(session)


def fix_json(seconds=0.0, **kwargs):
    return make_fix(seconds, **kwargs).model_dump(mode="json")


def test_root_ok():
    client = get_client()
    r = client.get("/")
    assert r.status_code == 200
    data = r.json()
    assert "message" in data


def test_track_and_export():
    client = get_client()
    sr = client.post("/tracking/start", json={"narrative": "Test Walk"})
    assert sr.status_code == 200, sr.text
    session = sr.json()
    assert session["is_active"] is True

    first = client.post("/tracking/fix", json=fix_json(0))
    assert first.status_code == 200, first.text
    assert first.json()["accepted"] is True
    assert first.json()["entry"]["session_id"] == session["id"]

    dup = client.post("/tracking/fix", json=fix_json(1)).json()
    assert dup["accepted"] is False
    assert dup["reason"] == "redundant"

    client.post("/tracking/fix", json=fix_json(60, lat=37.7767))

    stop = client.post("/tracking/stop")
    assert stop.status_code == 200
    assert stop.json()["is_active"] is False

    cr = client.get(f"/sessions/{session['id']}/count")
    assert cr.json() == {"count": 2}

    lr = client.get(f"/sessions/{session['id']}/locations", params={"order": "desc"})
    stamps = [p["timestamp"] for p in lr.json()]
    assert stamps == sorted(stamps, reverse=True)

    er = client.get(f"/sessions/{session['id']}/export", params={"format": "gpx"})
    assert er.status_code == 200
    assert "<trkpt" in er.text
    assert 'filename="TrackMe_Test_Walk_' in er.headers["content-disposition"]

    rr = client.get(f"/sessions/{session['id']}/region")
    assert rr.status_code == 200
    assert len(rr.json()["segments"]) == 1


def test_second_session_conflicts():
    client = get_client()
    assert client.post("/sessions/", json={"narrative": "One"}).status_code == 200
    r = client.post("/sessions/", json={"narrative": "Two"})
    assert r.status_code == 409


def test_fix_without_tracking_conflicts():
    client = get_client()
    r = client.post("/tracking/fix", json=fix_json(0))
    assert r.status_code == 409


def test_unknown_session_is_404():
    client = get_client()
    assert client.get("/sessions/nope").status_code == 404
    assert client.delete("/sessions/nope").status_code == 404


def test_empty_export_is_422():
    client = get_client()
    session = client.post("/sessions/", json={}).json()
    client.post(f"/sessions/{session['id']}/end", json={})
    r = client.get(f"/sessions/{session['id']}/export", params={"format": "csv"})
    assert r.status_code == 422


def test_bulk_import_and_delete_locations():
    client = get_client()
    session = client.post("/sessions/", json={"narrative": "Backlog"}).json()
    payload = {"fixes": [fix_json(0), fix_json(30, lat=37.78)]}
    ir = client.post(f"/sessions/{session['id']}/locations", json=payload)
    assert ir.status_code == 200, ir.text
    assert len(ir.json()) == 2

    dr = client.delete(f"/sessions/{session['id']}/locations")
    assert dr.json() == {"deleted": 2}
    assert client.get(f"/sessions/{session['id']}/count").json() == {"count": 0}


def test_mode_switch():
    client = get_client()
    r = client.put("/tracking/mode", json={"mode": "detailed"})
    assert r.status_code == 200
    assert r.json() == {"mode": "detailed"}
    status = client.get("/tracking/status").json()
    assert status["is_tracking"] is False
    client.put("/tracking/mode", json={"mode": "balanced"})
