"""
Geometry kernel - pure math used by the entity model.

Provides:
- Point / Rect / Circle value types
- Circle through three points (determinant form of the circumcircle)
- Rectangle construction from two drag corners

Nothing here holds state; every function is safe to call from anywhere.
"""

import math
from dataclasses import dataclass


# Below this determinant the three points are treated as collinear
COLLINEAR_EPSILON = 1e-9


class DegenerateGeometryError(ValueError):
    """Raised when a circle is requested through three collinear points."""


@dataclass
class Point:
    """A 2D point in canvas units."""
    x: float
    y: float


@dataclass
class Rect:
    """An axis-aligned rectangle (upper-left corner plus size)."""
    x: float
    y: float
    width: float
    height: float

    def center(self) -> Point:
        """Get the center point of the rectangle."""
        return Point(self.x + self.width / 2, self.y + self.height / 2)


@dataclass
class Circle:
    """A circle given by its center and radius."""
    x: float
    y: float
    radius: float


def det(a: float, b: float, c: float,
        d: float, e: float, f: float,
        g: float, h: float, i: float) -> float:
    """Determinant of the row-major 3x3 matrix [[a, b, c], [d, e, f], [g, h, i]]."""
    return a * e * i + b * f * g + c * d * h - a * f * h - b * d * i - c * e * g


def circle_from_three_points(p1: Point, p2: Point, p3: Point) -> Circle:
    """
    Solve the unique circle passing through three points.

    Uses the determinant form of the circle equation: with rows
    (x, y, 1) for the linear term and (x^2 + y^2, ...) for the others,
    the center is (-bx / 2a, -by / 2a).

    Args:
        p1: First point on the circle
        p2: Second point on the circle
        p3: Third point on the circle

    Returns:
        Circle with center and radius

    Raises:
        DegenerateGeometryError: If the points are (nearly) collinear
    """
    x1, y1 = p1.x, p1.y
    x2, y2 = p2.x, p2.y
    x3, y3 = p3.x, p3.y
    s1 = x1 * x1 + y1 * y1
    s2 = x2 * x2 + y2 * y2
    s3 = x3 * x3 + y3 * y3

    a = det(x1, y1, 1, x2, y2, 1, x3, y3, 1)
    if abs(a) < COLLINEAR_EPSILON:
        raise DegenerateGeometryError(
            f"Points ({x1}, {y1}), ({x2}, {y2}), ({x3}, {y3}) are collinear"
        )

    bx = -det(s1, y1, 1, s2, y2, 1, s3, y3, 1)
    by = det(s1, x1, 1, s2, x2, 1, s3, x3, 1)
    c = -det(s1, x1, y1, s2, x2, y2, s3, x3, y3)

    return Circle(
        x=-bx / (2 * a),
        y=-by / (2 * a),
        radius=math.sqrt(bx * bx + by * by - 4 * a * c) / (2 * abs(a)),
    )


def rect_from_points(p1: Point, p2: Point) -> Rect:
    """
    Normalize a two-corner drag into a canonical rectangle.

    The result starts at the upper-left corner and its size includes
    both corner pixels (hence the +1).
    """
    x1, x2 = sorted((p1.x, p2.x))
    y1, y2 = sorted((p1.y, p2.y))
    return Rect(x=x1, y=y1, width=x2 - x1 + 1, height=y2 - y1 + 1)


def normalize_angle(angle: float) -> float:
    """Bring an angle back into (-pi, pi] after a single overshoot."""
    if angle <= -math.pi:
        angle += 2 * math.pi
    if angle > math.pi:
        angle -= 2 * math.pi
    return angle
