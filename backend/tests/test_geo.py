import pytest

from trackme.core.geo import (
    Coordinate,
    compute_region,
    haversine_m,
    path_distance_m,
    split_segments_across_antimeridian,
    wrap_longitude,
)


def test_region_across_antimeridian_has_small_span():
    region = compute_region([(0.0, 179.0), (0.0, -179.0)])
    assert region.longitude_delta < 10.0
    assert abs(region.center.longitude) == pytest.approx(180.0)


def test_region_normal_case():
    region = compute_region([(10.0, 20.0), (12.0, 24.0)], min_span=0.01, padding_scale=1.0)
    assert region.center == Coordinate(11.0, 22.0)
    assert region.latitude_delta == pytest.approx(2.0)
    assert region.longitude_delta == pytest.approx(4.0)


def test_region_single_point_uses_min_span():
    region = compute_region([(45.0, 7.0)], min_span=0.05, padding_scale=2.0)
    assert region.latitude_delta == pytest.approx(0.1)
    assert region.longitude_delta == pytest.approx(0.1)


def test_region_empty_defaults():
    region = compute_region([])
    assert region.center == Coordinate(0.0, 0.0)
    assert region.latitude_delta > 0
    assert region.longitude_delta > 0


def test_region_rejects_non_positive_span():
    with pytest.raises(ValueError):
        compute_region([(0.0, 0.0)], min_span=0.0)


def test_region_longitude_span_is_capped():
    region = compute_region([(0.0, -170.0), (0.0, 0.0), (0.0, 170.0)])
    assert region.longitude_delta <= 350.0


def test_split_single_crossing_yields_two_segments():
    segments = split_segments_across_antimeridian([(0.0, 179.0), (0.0, -179.0), (0.0, -178.0)])
    assert len(segments) == 2
    assert all(len(s) >= 2 for s in segments)
    assert segments[0][-1] == segments[1][0]


def test_split_without_crossing_is_one_segment():
    path = [(0.0, 10.0), (0.1, 10.1), (0.2, 10.2)]
    assert split_segments_across_antimeridian(path) == [[Coordinate(*p) for p in path]]


def test_split_degenerate_inputs():
    assert split_segments_across_antimeridian([]) == []
    assert split_segments_across_antimeridian([(1.0, 2.0)]) == [[Coordinate(1.0, 2.0)]]


def test_haversine_known_distance():
    # one degree of latitude is ~111.2 km
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111195, rel=1e-3)
    assert haversine_m(10.0, 10.0, 10.0, 10.0) == 0.0


def test_haversine_short_across_antimeridian():
    assert haversine_m(0.0, 179.9, 0.0, -179.9) < 25000


def test_path_distance_sums_legs():
    path = [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)]
    assert path_distance_m(path) == pytest.approx(2 * haversine_m(0, 0, 1, 0))
    assert path_distance_m([]) == 0.0


def test_wrap_longitude():
    assert wrap_longitude(181.0) == pytest.approx(-179.0)
    assert wrap_longitude(-190.0) == pytest.approx(170.0)
    assert wrap_longitude(180.0) == 180.0
