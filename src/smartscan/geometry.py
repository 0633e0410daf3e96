"""
Geometry helpers for document boundaries
=========================================
Point math, corner ordering and aspect-ratio measurement shared by the
boundary detector and the perspective corrector.

A quadrilateral is always a tuple of four Points in canonical order:

    top-left, top-right, bottom-right, bottom-left

Any corner set that comes out of contour extraction is unordered and must
go through order_corners() before it is used.
"""

import math
from typing import Iterable, NamedTuple, Sequence, Tuple

import numpy as np


class Point(NamedTuple):
    """Pixel coordinate in some image's coordinate space."""
    x: float
    y: float


Quadrilateral = Tuple[Point, Point, Point, Point]


def distance(p1: Point, p2: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(p2[0] - p1[0], p2[1] - p1[1])


def to_points(pts: Iterable) -> Tuple[Point, ...]:
    """Convert an (N, 2) array / nested list / contour into Points."""
    arr = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    return tuple(Point(float(x), float(y)) for x, y in arr)


def to_array(quad: Sequence[Point]) -> np.ndarray:
    """Quadrilateral → float32 (4, 2) array, the layout OpenCV expects."""
    return np.array([[p[0], p[1]] for p in quad], dtype=np.float32)


def order_corners(points: Sequence) -> Quadrilateral:
    """
    Order 4 unordered points as TL, TR, BR, BL.

    Points are sorted by polar angle around their centroid, then the
    sequence is rotated so the point with the smallest x+y comes first.
    Unlike a sort-by-y-then-x, this keeps working for rotated and
    skewed quadrilaterals.
    """
    pts = to_points(points)
    if len(pts) != 4:
        raise ValueError(f"order_corners expects 4 points, got {len(pts)}")

    cx = sum(p.x for p in pts) / 4.0
    cy = sum(p.y for p in pts) / 4.0

    # Image y grows downward, so increasing atan2 walks clockwise on screen:
    # TL → TR → BR → BL.
    by_angle = sorted(pts, key=lambda p: math.atan2(p.y - cy, p.x - cx))

    start = min(range(4), key=lambda i: (by_angle[i].x + by_angle[i].y, i))
    ordered = by_angle[start:] + by_angle[:start]
    return tuple(ordered)  # type: ignore[return-value]


def aspect_ratio(quad: Sequence[Point]) -> float:
    """
    Longer / shorter side of the quadrilateral.

    Sides are measured between opposite-edge midpoints, which averages out
    perspective foreshortening. Returns inf when a side collapses to zero.
    """
    tl, tr, br, bl = quad
    mid_top = Point((tl[0] + tr[0]) / 2, (tl[1] + tr[1]) / 2)
    mid_bottom = Point((bl[0] + br[0]) / 2, (bl[1] + br[1]) / 2)
    mid_left = Point((tl[0] + bl[0]) / 2, (tl[1] + bl[1]) / 2)
    mid_right = Point((tr[0] + br[0]) / 2, (tr[1] + br[1]) / 2)

    height = distance(mid_top, mid_bottom)
    width = distance(mid_left, mid_right)

    shorter = min(width, height)
    if shorter <= 1e-9:
        return math.inf
    return max(width, height) / shorter


def polygon_area(quad: Sequence[Point]) -> float:
    """Shoelace area (always positive)."""
    total = 0.0
    n = len(quad)
    for i in range(n):
        x1, y1 = quad[i][0], quad[i][1]
        x2, y2 = quad[(i + 1) % n][0], quad[(i + 1) % n][1]
        total += x1 * y2 - x2 * y1
    return abs(total) / 2.0


def default_corners(width: int, height: int, margin: float = 0.1) -> Quadrilateral:
    """Image bounding box inset by `margin` on each side."""
    mx = width * margin
    my = height * margin
    return (
        Point(mx, my),
        Point(width - mx, my),
        Point(width - mx, height - my),
        Point(mx, height - my),
    )


def full_frame_corners(width: int, height: int) -> Quadrilateral:
    return (
        Point(0.0, 0.0),
        Point(float(width), 0.0),
        Point(float(width), float(height)),
        Point(0.0, float(height)),
    )


def scale_corners(quad: Sequence[Point], factor: float) -> Quadrilateral:
    """Map corners from the downsampled working image back to the source."""
    return tuple(Point(p[0] * factor, p[1] * factor) for p in quad)  # type: ignore[return-value]


def clamp_corners(quad: Sequence[Point], width: int, height: int) -> Quadrilateral:
    """Clamp manually supplied corners into [0, width] x [0, height]."""
    return tuple(
        Point(min(max(float(p[0]), 0.0), float(width)),
              min(max(float(p[1]), 0.0), float(height)))
        for p in quad
    )  # type: ignore[return-value]


def is_simple_polygon(quad: Sequence[Point]) -> bool:
    """True if no two non-adjacent edges of the quadrilateral cross."""
    def _cross(o, a, b):
        return (a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0])

    def _intersects(p1, p2, q1, q2):
        d1 = _cross(q1, q2, p1)
        d2 = _cross(q1, q2, p2)
        d3 = _cross(p1, p2, q1)
        d4 = _cross(p1, p2, q2)
        return (d1 * d2 < 0) and (d3 * d4 < 0)

    a, b, c, d = quad
    return not (_intersects(a, b, c, d) or _intersects(b, c, d, a))
