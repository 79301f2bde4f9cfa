"""Geometry utility functions for 2D points, sizes and angles."""
from __future__ import annotations

import math
from typing import Tuple

Point = Tuple[float, float]
Size = Tuple[float, float]


def is_finite(*values: float) -> bool:
    """Return True if every value is a finite real number."""
    try:
        return all(math.isfinite(v) for v in values)
    except (TypeError, OverflowError):
        return False


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value to the closed range [lower, upper]."""
    return max(lower, min(upper, value))


def calculate_distance(start_point: Point, end_point: Point) -> float:
    """
    Calculate the Euclidean distance between two points.

    :param start_point: Starting point (x, y)
    :param end_point: Ending point (x, y)
    :return: Distance between the two points
    """
    dx = end_point[0] - start_point[0]
    dy = end_point[1] - start_point[1]
    return math.hypot(dx, dy)


def calculate_norm(vector: Point) -> float:
    """Calculate the length of a 2D vector."""
    return math.hypot(vector[0], vector[1])


def center_of(size: Size) -> Point:
    """Return the centre point of a container of the given size."""
    return size[0] / 2.0, size[1] / 2.0


def midpoint(point1: Point, point2: Point) -> Point:
    """Return the midpoint between two points."""
    return (point1[0] + point2[0]) / 2.0, (point1[1] + point2[1]) / 2.0


def rotate_about(point: Point, center: Point, degrees: float) -> Point:
    """
    Rotate a point about a centre by the given angle.

    Positive angles rotate clockwise in screen coordinates (y axis down).

    :param point: Point to rotate (x, y)
    :param center: Rotation centre (x, y)
    :param degrees: Rotation angle in degrees
    :return: Rotated point (x, y)
    """
    angle = math.radians(degrees)
    cos_a = math.cos(angle)
    sin_a = math.sin(angle)
    rx = point[0] - center[0]
    ry = point[1] - center[1]
    return (
        rx * cos_a - ry * sin_a + center[0],
        rx * sin_a + ry * cos_a + center[1],
    )


def scale_about(point: Point, center: Point, factor: float) -> Point:
    """Scale a point about a centre by the given factor."""
    return (
        (point[0] - center[0]) * factor + center[0],
        (point[1] - center[1]) * factor + center[1],
    )


def normalize_degrees(degrees: float) -> float:
    """Normalize an angle in degrees to [0, 360)."""
    return ((degrees % 360.0) + 360.0) % 360.0


def shortest_angle_difference(from_degrees: float, to_degrees: float) -> float:
    """
    Signed shortest angular difference from one heading to another.

    :return: Difference in degrees within [-180, 180]
    """
    diff = math.radians(to_degrees - from_degrees)
    return math.degrees(math.atan2(math.sin(diff), math.cos(diff)))
