"""Track-log exports for a recorded session (GPX, CSV, GeoJSON)."""

import csv
import io
import json
from enum import Enum
from typing import Sequence

import gpxpy
import gpxpy.gpx

from trackme.core.config import settings
from trackme.core.errors import ExportNoLocationsError
from trackme.core.time_utils import to_local_datetime
from trackme.models.location_entry import LocationEntry
from trackme.models.tracking_session import TrackingSession


class ExportFormat(str, Enum):
    gpx = "gpx"
    csv = "csv"
    geojson = "geojson"

    @property
    def media_type(self) -> str:
        return {
            ExportFormat.gpx: "application/gpx+xml",
            ExportFormat.csv: "text/csv",
            ExportFormat.geojson: "application/geo+json",
        }[self]


CSV_HEADER = ["Latitude", "Longitude", "Altitude", "Speed", "Course", "Accuracy", "Timestamp"]


def _require_points(session: TrackingSession, locations: Sequence[LocationEntry]):
    if not locations:
        raise ExportNoLocationsError(session.id)


def export_gpx(session: TrackingSession, locations: Sequence[LocationEntry]) -> str:
    """GPX 1.1 document with one track and one segment, oldest point first."""
    _require_points(session, locations)
    gpx = gpxpy.gpx.GPX()
    gpx.creator = "TrackMe"
    gpx.name = session.narrative or "Tracking Session"
    gpx.time = session.start_date

    track = gpxpy.gpx.GPXTrack(name=session.narrative or "Track")
    segment = gpxpy.gpx.GPXTrackSegment()
    for loc in locations:
        segment.points.append(
            gpxpy.gpx.GPXTrackPoint(
                latitude=loc.latitude,
                longitude=loc.longitude,
                # 0 means "unknown" from most sensors; leave <ele> out
                elevation=loc.altitude if loc.altitude != 0 else None,
                time=loc.timestamp,
            )
        )
    track.segments.append(segment)
    gpx.tracks.append(track)
    return gpx.to_xml(version="1.1")


def export_csv(session: TrackingSession, locations: Sequence[LocationEntry]) -> str:
    _require_points(session, locations)
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for loc in locations:
        writer.writerow([
            loc.latitude,
            loc.longitude,
            loc.altitude,
            loc.speed,
            loc.course,
            loc.accuracy,
            loc.timestamp.isoformat() if loc.timestamp else "",
        ])
    return buf.getvalue()


def export_geojson(session: TrackingSession, locations: Sequence[LocationEntry]) -> str:
    """GeoJSON Feature with a LineString; coordinates are [lon, lat, alt]."""
    _require_points(session, locations)
    feature = {
        "type": "Feature",
        "properties": {
            "name": session.narrative or "Tracking Session",
            "timestamp": session.start_date.isoformat(),
            "points": len(locations),
        },
        "geometry": {
            "type": "LineString",
            "coordinates": [[loc.longitude, loc.latitude, loc.altitude] for loc in locations],
        },
    }
    return json.dumps(feature)


EXPORTERS = {
    ExportFormat.gpx: export_gpx,
    ExportFormat.csv: export_csv,
    ExportFormat.geojson: export_geojson,
}


def export_session(
    session: TrackingSession, locations: Sequence[LocationEntry], fmt: ExportFormat
) -> str:
    return EXPORTERS[fmt](session, locations)


def generate_filename(session: TrackingSession, fmt: ExportFormat) -> str:
    """TrackMe_<narrative>_<YYYY-mm-dd_HHMMSS>.<ext> in the configured timezone."""
    local_start = to_local_datetime(session.start_date, settings.timezone)
    stamp = local_start.strftime("%Y-%m-%d_%H%M%S")
    narrative = (session.narrative or "session").replace(" ", "_").replace("/", "-")[:30]
    return f"TrackMe_{narrative or 'session'}_{stamp}.{fmt.value}"
