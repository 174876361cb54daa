"""Geospatial helpers: great-circle distance and antimeridian-aware region math."""

import math
from typing import Iterable, NamedTuple, Sequence

from trackme.core.constants import (
    DEFAULT_MIN_SPAN,
    DEFAULT_PADDING_SCALE,
    EARTH_RADIUS_M,
    EMPTY_REGION_SPAN,
    MAX_LATITUDE_SPAN,
    MAX_LONGITUDE_SPAN,
)


class Coordinate(NamedTuple):
    latitude: float
    longitude: float


class Region(NamedTuple):
    center: Coordinate
    latitude_delta: float
    longitude_delta: float


def haversine_m(lat1, lon1, lat2, lon2):
    """Return great‑circle distance in meters between two WGS84 points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # rounding can push `a` a hair past 1 for antipodal points
    a = min(max(a, 0.0), 1.0)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def path_distance_m(coords: Iterable[Sequence[float]]) -> float:
    """Sum of haversine legs along an ordered path of (lat, lon) pairs."""
    total = 0.0
    prev = None
    for lat, lon in coords:
        if prev is not None:
            total += haversine_m(prev[0], prev[1], lat, lon)
        prev = (lat, lon)
    return total


def wrap_longitude(lon: float) -> float:
    """Normalize a longitude into [-180, 180]."""
    if -180.0 <= lon <= 180.0:
        return lon
    return ((lon + 180.0) % 360.0) - 180.0


def compute_region(
    coords: Sequence[Sequence[float]],
    min_span: float = DEFAULT_MIN_SPAN,
    padding_scale: float = DEFAULT_PADDING_SCALE,
) -> Region:
    """Fit a padded viewport around `coords`, handling antimeridian crossing.

    Two longitude spans are compared: the plain [-180, 180] one and one where
    negative longitudes are shifted by +360. The smaller wins, so points at
    179 and -179 give a span of ~2 degrees rather than ~358.

    Empty input returns a world-ish default centred on (0, 0).
    """
    if min_span <= 0 or padding_scale <= 0:
        raise ValueError("min_span and padding_scale must be > 0")

    if not coords:
        return Region(Coordinate(0.0, 0.0), EMPTY_REGION_SPAN, EMPTY_REGION_SPAN)

    lats = [c[0] for c in coords]
    lons = [c[1] for c in coords]
    min_lat, max_lat = min(lats), max(lats)

    normal_min, normal_max = min(lons), max(lons)
    unwrapped = [lon + 360.0 if lon < 0 else lon for lon in lons]
    unwrap_min, unwrap_max = min(unwrapped), max(unwrapped)

    use_unwrapped = (unwrap_max - unwrap_min) < (normal_max - normal_min)
    lo, hi = (unwrap_min, unwrap_max) if use_unwrapped else (normal_min, normal_max)

    center_lon = (lo + hi) / 2.0
    if use_unwrapped and center_lon > 180.0:
        center_lon -= 360.0
    center_lat = (min_lat + max_lat) / 2.0

    span_lat = min(max(max_lat - min_lat, min_span) * padding_scale, MAX_LATITUDE_SPAN)
    # never zoom out to the whole wrap because of an outlier
    span_lon = min(max(hi - lo, min_span) * padding_scale, MAX_LONGITUDE_SPAN)

    return Region(Coordinate(center_lat, center_lon), span_lat, span_lon)


def split_segments_across_antimeridian(
    coords: Sequence[Sequence[float]],
) -> list[list[Coordinate]]:
    """Split a path into runs wherever consecutive longitudes jump by > 180°.

    The crossing point closes the current run and also opens the next one, so
    each run can be drawn as its own polyline.
    """
    points = [Coordinate(c[0], c[1]) for c in coords]
    if len(points) < 2:
        return [points] if points else []

    segments: list[list[Coordinate]] = []
    current = [points[0]]
    for prev, nxt in zip(points, points[1:]):
        current.append(nxt)
        if abs(nxt.longitude - prev.longitude) > 180.0:
            if len(current) >= 2:
                segments.append(current)
            current = [nxt]
    if len(current) >= 2:
        segments.append(current)
    return segments
