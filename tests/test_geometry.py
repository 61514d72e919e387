import math

import pytest

from weathermap.config import MERCATOR_LAT_BOUND
from weathermap.geometry import coordinates_to_degrees, lonlat_to_world_px, mercator, tiles_covering


def test_mercator_matches_closed_form():
    for lat in (-60.0, -12.5, 0.0, 33.3, 51.505, 80.0):
        expected = math.log(math.tan(math.pi / 4 + math.radians(lat) / 2))
        assert mercator(lat) == pytest.approx(expected, abs=1e-8)


def test_mercator_clamps_poles():
    assert mercator(90.0) == pytest.approx(mercator(MERCATOR_LAT_BOUND))
    assert mercator(-90.0) == pytest.approx(-mercator(MERCATOR_LAT_BOUND))
    assert mercator(MERCATOR_LAT_BOUND) == pytest.approx(math.pi, abs=1e-6)


def test_coordinates_to_degrees_corners():
    lon, lat = coordinates_to_degrees(0, 0, 0)
    assert lon == -180.0
    assert lat == pytest.approx(MERCATOR_LAT_BOUND, abs=1e-6)

    lon, lat = coordinates_to_degrees(1, 1, 1)
    assert (lon, lat) == pytest.approx((0.0, 0.0), abs=1e-9)

    lon, lat = coordinates_to_degrees(2, 4, 4)
    assert lon == 180.0
    assert lat == pytest.approx(-MERCATOR_LAT_BOUND, abs=1e-6)


def test_world_px_origin_is_centre_of_world():
    x, y = lonlat_to_world_px(0.0, 0.0, 3)
    assert x == pytest.approx(1024.0)
    assert y == pytest.approx(1024.0, abs=1e-6)


def test_single_tile_world():
    assert tiles_covering(0.0, 0.0, 0, 256, 256) == [(0, 0, 0)]


def test_four_tiles_at_zoom_one():
    keys = tiles_covering(0.0, 0.0, 1, 512, 512)
    assert sorted(keys) == [(1, 0, 0), (1, 0, 1), (1, 1, 0), (1, 1, 1)]


def test_x_wraps_and_y_is_clamped():
    keys = tiles_covering(80.0, 179.9, 1, 512, 2048)
    assert len(keys) == len(set(keys))
    for z, x, y in keys:
        assert z == 1
        assert 0 <= x < 2
        assert 0 <= y < 2
