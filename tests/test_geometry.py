"""
Tests for geometry helpers
"""

import math
import random

import pytest

from smartscan.geometry import (
    Point,
    aspect_ratio,
    clamp_corners,
    default_corners,
    is_simple_polygon,
    order_corners,
    polygon_area,
    scale_corners,
)


RECT = [(10, 20), (210, 20), (210, 120), (10, 120)]


def test_order_corners_any_input_order():
    """Shuffled rectangle corners come back as TL, TR, BR, BL"""
    pts = list(RECT)
    random.Random(7).shuffle(pts)

    ordered = order_corners(pts)

    assert ordered == tuple(Point(float(x), float(y)) for x, y in RECT)


def test_order_corners_diamond():
    """45° rotated square: ties on x+y resolve to the top vertex"""
    ordered = order_corners([(0, 50), (50, 100), (100, 50), (50, 0)])

    assert ordered[0] == Point(50.0, 0.0)
    assert ordered[1] == Point(100.0, 50.0)
    assert ordered[2] == Point(50.0, 100.0)
    assert ordered[3] == Point(0.0, 50.0)


def test_order_corners_first_has_min_sum():
    pts = [(300, 40), (620, 95), (560, 480), (250, 430)]
    ordered = order_corners(pts)
    assert ordered[0] == min(ordered, key=lambda p: p.x + p.y)


def test_order_corners_idempotent():
    """Re-ordering canonical corners leaves them unchanged"""
    rng = random.Random(42)
    for _ in range(500):
        pts = [(rng.uniform(0, 1000), rng.uniform(0, 1000)) for _ in range(4)]
        ordered = order_corners(pts)
        assert order_corners(ordered) == ordered


def test_order_corners_rejects_wrong_count():
    with pytest.raises(ValueError):
        order_corners([(0, 0), (1, 0), (1, 1)])


def test_aspect_ratio():
    assert aspect_ratio(order_corners(RECT)) == pytest.approx(2.0)


def test_aspect_ratio_degenerate():
    flat = [Point(0, 0), Point(100, 0), Point(100, 0), Point(0, 0)]
    assert math.isinf(aspect_ratio(flat))


def test_polygon_area():
    assert polygon_area(order_corners(RECT)) == pytest.approx(200 * 100)


def test_default_corners():
    corners = default_corners(1000, 800, margin=0.1)
    assert corners == (
        Point(100, 80), Point(900, 80), Point(900, 720), Point(100, 720)
    )


def test_scale_and_clamp():
    scaled = scale_corners(order_corners(RECT), 2.0)
    assert scaled[2] == Point(420.0, 240.0)

    clamped = clamp_corners([(-5, -5), (500, 3), (500, 500), (2, 500)], 300, 200)
    assert clamped == (Point(0, 0), Point(300, 3), Point(300, 200), Point(2, 200))


def test_is_simple_polygon():
    assert is_simple_polygon(order_corners(RECT))
    bowtie = [Point(0, 0), Point(100, 100), Point(100, 0), Point(0, 100)]
    assert not is_simple_polygon(bowtie)
