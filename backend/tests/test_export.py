import csv
import io
import json
from datetime import timedelta

import gpxpy
import pytest

from trackme.core.config import settings
from trackme.core.errors import ExportNoLocationsError
from trackme.repositories.locations import LocationRepository
from trackme.repositories.sessions import SessionRepository
from trackme.services.export import (
    CSV_HEADER,
    ExportFormat,
    export_csv,
    export_geojson,
    export_gpx,
    export_session,
    generate_filename,
)
from conftest import T0, make_fix


@pytest.fixture
def recorded(db):
    session = SessionRepository(db).create_session("Ridge Trail", T0)
    repo = LocationRepository(db)
    repo.save_locations(
        [
            make_fix(0),
            make_fix(60, lat=37.7760, altitude=25.0),
            make_fix(120, lat=37.7771, altitude=0.0),
        ],
        session,
    )
    return session, repo.fetch_locations(session)


def test_gpx_round_trips_through_gpxpy(recorded):
    session, entries = recorded
    parsed = gpxpy.parse(export_gpx(session, entries))

    assert parsed.name == "Ridge Trail"
    points = parsed.tracks[0].segments[0].points
    assert len(points) == 3
    assert points[0].latitude == pytest.approx(37.7749)
    assert points[1].elevation == pytest.approx(25.0)
    assert points[2].elevation is None
    assert points[1].time - points[0].time == timedelta(seconds=60)


def test_csv_has_header_and_one_row_per_point(recorded):
    session, entries = recorded
    rows = list(csv.reader(io.StringIO(export_csv(session, entries))))
    assert rows[0] == CSV_HEADER
    assert len(rows) == 4
    assert float(rows[1][0]) == pytest.approx(37.7749)
    assert rows[1][-1].startswith("2025-06-01T08:00:00")


def test_geojson_is_a_lon_lat_linestring(recorded):
    session, entries = recorded
    feature = json.loads(export_geojson(session, entries))
    assert feature["type"] == "Feature"
    assert feature["geometry"]["type"] == "LineString"
    lon, lat, alt = feature["geometry"]["coordinates"][0]
    assert (lon, lat) == pytest.approx((-122.4194, 37.7749))
    assert feature["properties"]["points"] == 3


@pytest.mark.parametrize("fmt", list(ExportFormat))
def test_empty_session_cannot_be_exported(db, fmt):
    session = SessionRepository(db).create_session(None, T0)
    with pytest.raises(ExportNoLocationsError):
        export_session(session, [], fmt)


def test_filename_pattern(db, monkeypatch):
    monkeypatch.setattr(settings, "timezone", "UTC")
    session = SessionRepository(db).create_session("Bay to Breakers", T0)
    assert generate_filename(session, ExportFormat.gpx) == "TrackMe_Bay_to_Breakers_2025-06-01_080000.gpx"


def test_filename_without_narrative(db, monkeypatch):
    monkeypatch.setattr(settings, "timezone", "UTC")
    session = SessionRepository(db).create_session(None, T0)
    assert generate_filename(session, ExportFormat.csv) == "TrackMe_session_2025-06-01_080000.csv"
