"""Tests for drawing bounds calculation."""

import pytest

from planet_canvas.core.projection import GeoCoordinate
from planet_canvas.core.region import GeoBounds, calculate_drawing_bounds, drawing_canvas_size


class TestDrawingBounds:
    def test_zoom_one_is_ten_times_wider_than_zoom_ten(self):
        wide = calculate_drawing_bounds(GeoCoordinate(0, 0), 1)
        narrow = calculate_drawing_bounds(GeoCoordinate(0, 0), 10)

        assert wide.lat_span == pytest.approx(30.0)
        assert narrow.lat_span == pytest.approx(3.0)
        assert wide.long_span / narrow.long_span == pytest.approx(10.0)
        assert wide.lat_span / narrow.lat_span == pytest.approx(10.0)

    def test_centered_on_coordinate(self):
        b = calculate_drawing_bounds(GeoCoordinate(0, 20), 5)
        assert b == pytest.approx((-3.0, 3.0, 17.0, 23.0))

    def test_longitude_widened_away_from_equator(self):
        b = calculate_drawing_bounds(GeoCoordinate(60, 0), 1)
        # 1 / cos(60) = 2
        assert b.long_span == pytest.approx(60.0)
        assert b.lat_span == pytest.approx(30.0)

    def test_latitude_clamped_at_north_pole(self):
        b = calculate_drawing_bounds(GeoCoordinate(85, 0), 1)
        assert b.lat_max == 90.0
        assert b.lat_min == pytest.approx(70.0)

    def test_latitude_clamped_at_south_pole(self):
        b = calculate_drawing_bounds(GeoCoordinate(-89, 0), 2)
        assert b.lat_min == -90.0
        assert b.lat_max == pytest.approx(-81.5)

    def test_pole_does_not_blow_up(self):
        b = calculate_drawing_bounds(GeoCoordinate(90, 45), 10)
        # cos(90) is floored at 0.01: 3 degrees become 300 of longitude
        assert b.lat_max == 90.0
        assert b.long_span == pytest.approx(300.0)
        assert b.crosses_antimeridian

    def test_widens_to_full_span_near_pole(self):
        b = calculate_drawing_bounds(GeoCoordinate(88, 100), 1)
        assert (b.long_min, b.long_max) == (-180.0, 180.0)
        assert not b.crosses_antimeridian

    def test_crossing_antimeridian_east(self):
        b = calculate_drawing_bounds(GeoCoordinate(0, 175), 1)
        assert b.long_min == pytest.approx(160.0)
        assert b.long_max == pytest.approx(-170.0)
        assert b.crosses_antimeridian
        assert b.long_span == pytest.approx(30.0)

    def test_crossing_antimeridian_west(self):
        b = calculate_drawing_bounds(GeoCoordinate(0, -180), 3)
        assert b.long_min == pytest.approx(175.0)
        assert b.long_max == pytest.approx(-175.0)
        assert b.long_span == pytest.approx(10.0)


class TestGeoBounds:
    def test_split_crossing_bounds(self):
        b = GeoBounds(-10, 10, 170, -170)
        west_part, east_part = b.split()
        assert west_part == GeoBounds(-10, 10, 170, 180)
        assert east_part == GeoBounds(-10, 10, -180, -170)

    def test_split_plain_bounds(self):
        b = GeoBounds(-10, 10, 0, 20)
        assert b.split() == [b]

    def test_contains_across_antimeridian(self):
        b = GeoBounds(-10, 10, 170, -170)
        assert b.contains(GeoCoordinate(0, 175))
        assert b.contains(GeoCoordinate(0, -175))
        assert not b.contains(GeoCoordinate(0, 0))
        assert not b.contains(GeoCoordinate(20, 175))


class TestCanvasSize:
    def test_range(self):
        assert drawing_canvas_size(1) == 256
        assert drawing_canvas_size(10) == 1024
        assert drawing_canvas_size(5.5) == 640

    def test_clamped(self):
        assert drawing_canvas_size(0.5) == 256
        assert drawing_canvas_size(20) == 1024
