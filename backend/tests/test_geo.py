import pytest

from lifepulse.utils.geo import bounding_box, haversine_m
from conftest import BASE_LAT, BASE_LON, north_of


def test_haversine_zero_for_same_point():
    assert haversine_m(BASE_LON, BASE_LAT, BASE_LON, BASE_LAT) == 0


def test_haversine_due_north_matches_offset():
    lat = north_of(BASE_LAT, 15000)
    assert haversine_m(BASE_LON, BASE_LAT, BASE_LON, lat) == pytest.approx(15000, rel=1e-6)


def test_haversine_known_city_pair():
    # Bengaluru to Chennai is roughly 290 km
    distance = haversine_m(77.5946, 12.9716, 80.2707, 13.0827)
    assert 280000 < distance < 300000


def test_bounding_box_contains_circle():
    min_lon, min_lat, max_lon, max_lat = bounding_box(BASE_LON, BASE_LAT, 20000)
    assert min_lat < north_of(BASE_LAT, -20000) + 1e-9
    assert max_lat > north_of(BASE_LAT, 20000) - 1e-9
    assert min_lon < BASE_LON < max_lon
    # East-west extent at this latitude must cover 20 km
    assert haversine_m(BASE_LON, BASE_LAT, max_lon, BASE_LAT) >= 20000


def test_bounding_box_drops_longitude_across_antimeridian():
    min_lon, min_lat, max_lon, max_lat = bounding_box(179.95, 0.0, 20000)
    assert min_lon is None and max_lon is None
    assert min_lat < 0 < max_lat


def test_bounding_box_near_pole_spans_all_longitudes():
    min_lon, _, max_lon, max_lat = bounding_box(10.0, 89.95, 20000)
    assert min_lon is None and max_lon is None
    assert max_lat == 90.0
