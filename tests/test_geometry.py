import math

import pytest

from fsm_core.geometry import (
    DegenerateGeometryError,
    Point,
    circle_from_three_points,
    normalize_angle,
    rect_from_points,
)


def test_circle_through_three_points():
    circle = circle_from_three_points(Point(0, 0), Point(2, 0), Point(0, 2))
    assert circle.x == pytest.approx(1)
    assert circle.y == pytest.approx(1)
    assert circle.radius == pytest.approx(math.sqrt(2))


def test_circle_passes_through_every_input_point():
    points = [Point(10, 40), Point(-25, 3), Point(60, -12)]
    circle = circle_from_three_points(*points)
    for p in points:
        assert math.hypot(p.x - circle.x, p.y - circle.y) == pytest.approx(circle.radius)


def test_collinear_points_raise():
    with pytest.raises(DegenerateGeometryError):
        circle_from_three_points(Point(0, 0), Point(1, 1), Point(2, 2))


def test_degenerate_error_is_a_value_error():
    with pytest.raises(ValueError):
        circle_from_three_points(Point(5, 5), Point(5, 5), Point(5, 5))


def test_rect_from_points_normalizes_corners():
    rect = rect_from_points(Point(30, 40), Point(10, 5))
    assert (rect.x, rect.y) == (10, 5)
    assert (rect.width, rect.height) == (21, 36)


def test_rect_from_single_point_is_one_pixel():
    rect = rect_from_points(Point(7, 7), Point(7, 7))
    assert (rect.width, rect.height) == (1, 1)
    assert rect.center() == Point(7.5, 7.5)


@pytest.mark.parametrize("angle, expected", [
    (-math.pi, math.pi),
    (math.pi, math.pi),
    (1.5 * math.pi, -0.5 * math.pi),
    (0.25, 0.25),
])
def test_normalize_angle(angle, expected):
    assert normalize_angle(angle) == pytest.approx(expected)
