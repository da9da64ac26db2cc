"""Tests for box and polygon geometry."""

import pytest

from annotator_engine.core.geometry import (
    ResizeHandle,
    apply_resize,
    boxes_intersect,
    clamp_box,
    close_polygon,
    get_resize_handle,
    move_box,
    normalize_box,
    point_in_box,
    point_in_polygon,
    polygon_bounds,
    simplify_polygon,
)
from annotator_engine.core.models import BoundingBox, PolygonPoint


def _points(*coords):
    return [PolygonPoint(x, y) for x, y in coords]


class TestBoxes:
    """Tests for box helpers."""

    def test_normalize_box_any_corner_order(self):
        assert normalize_box(50, 60, 10, 20) == BoundingBox(10, 20, 40, 40)
        assert normalize_box(10, 20, 50, 60) == BoundingBox(10, 20, 40, 40)

    def test_normalize_box_degenerate(self):
        assert normalize_box(5, 5, 5, 5) == BoundingBox(5, 5, 0, 0)

    def test_clamp_box_inside_is_unchanged(self):
        box = BoundingBox(10, 10, 20, 20)
        assert clamp_box(box, 100, 100) == box

    def test_clamp_box_overflowing(self):
        assert clamp_box(BoundingBox(90, 95, 30, 30), 100, 100) == BoundingBox(90, 95, 10, 5)

    def test_clamp_box_entirely_outside(self):
        """A box past the far edge collapses onto the corner."""
        assert clamp_box(BoundingBox(150, 150, 20, 20), 100, 100) == BoundingBox(100, 100, 0, 0)

    def test_clamp_box_negative_origin(self):
        """The origin is clamped first, the size is only limited afterwards."""
        assert clamp_box(BoundingBox(-10, -10, 30, 30), 100, 100) == BoundingBox(0, 0, 30, 30)

    def test_point_in_box_includes_edges(self):
        box = BoundingBox(10, 10, 20, 20)
        assert point_in_box(10, 10, box)
        assert point_in_box(30, 30, box)
        assert not point_in_box(31, 20, box)

    def test_boxes_intersect(self):
        a = BoundingBox(0, 0, 10, 10)
        assert boxes_intersect(a, BoundingBox(5, 5, 10, 10))
        assert boxes_intersect(a, BoundingBox(10, 0, 5, 5))  # shared edge
        assert not boxes_intersect(a, BoundingBox(11, 0, 5, 5))

    def test_move_box(self):
        assert move_box(BoundingBox(1, 2, 3, 4), 10, -2) == BoundingBox(11, 0, 3, 4)


class TestResize:
    """Tests for resize handles."""

    @pytest.mark.parametrize("px,py,expected", [
        (100, 100, ResizeHandle.NW),
        (200, 100, ResizeHandle.NE),
        (100, 250, ResizeHandle.SW),
        (200, 250, ResizeHandle.SE),
        (150, 100, ResizeHandle.N),
        (150, 250, ResizeHandle.S),
        (100, 175, ResizeHandle.W),
        (203, 175, ResizeHandle.E),
        (150, 175, None),
        (300, 300, None),
    ])
    def test_get_resize_handle(self, px, py, expected):
        box = BoundingBox(100, 100, 100, 150)
        assert get_resize_handle(px, py, box) == expected

    def test_handle_size(self):
        box = BoundingBox(100, 100, 100, 150)
        assert get_resize_handle(106, 106, box) is None
        assert get_resize_handle(106, 106, box, handle_size=12) == ResizeHandle.NW

    def test_resize_se(self):
        box = BoundingBox(100, 100, 100, 150)
        assert apply_resize(box, ResizeHandle.SE, 10, 20) == BoundingBox(100, 100, 110, 170)

    def test_resize_nw(self):
        box = BoundingBox(100, 100, 100, 150)
        assert apply_resize(box, ResizeHandle.NW, 10, 20) == BoundingBox(110, 120, 90, 130)

    def test_resize_edges_only_change_one_axis(self):
        box = BoundingBox(100, 100, 100, 150)
        assert apply_resize(box, ResizeHandle.N, 50, 10) == BoundingBox(100, 110, 100, 140)
        assert apply_resize(box, ResizeHandle.E, 10, 50) == BoundingBox(100, 100, 110, 150)

    def test_resize_collapse_keeps_minimum_size(self):
        """Dragging the west edge past the east edge leaves a 1px box."""
        box = BoundingBox(100, 100, 200, 150)
        assert apply_resize(box, ResizeHandle.W, 300, 0) == BoundingBox(299, 100, 1, 150)

    def test_resize_collapse_vertical(self):
        """Dragging the north edge past the south edge leaves a 1px box."""
        box = BoundingBox(100, 100, 100, 150)
        assert apply_resize(box, ResizeHandle.N, 0, 200) == BoundingBox(100, 249, 100, 1)

    @pytest.mark.parametrize("handle", list(ResizeHandle))
    @pytest.mark.parametrize("dx,dy", [
        (0, 0), (500, 500), (-500, -500), (500, -500), (-500, 500), (99.5, 149.5), (-0.5, 0.25),
    ])
    def test_resize_never_below_one_pixel(self, handle, dx, dy):
        result = apply_resize(BoundingBox(100, 100, 100, 150), handle, dx, dy)

        assert result.width >= 1
        assert result.height >= 1

    def test_resize_accepts_string_handle(self):
        box = BoundingBox(0, 0, 10, 10)
        assert apply_resize(box, "s", 0, 5) == BoundingBox(0, 0, 10, 15)


class TestPolygons:
    """Tests for polygon helpers."""

    def test_point_in_polygon(self):
        square = _points((0, 0), (10, 0), (10, 10), (0, 10))
        assert point_in_polygon(5, 5, square)
        assert not point_in_polygon(15, 5, square)

    def test_point_in_concave_polygon(self):
        u_shape = _points((0, 0), (30, 0), (30, 30), (20, 30), (20, 10), (10, 10), (10, 30), (0, 30))
        assert point_in_polygon(5, 20, u_shape)
        assert not point_in_polygon(15, 20, u_shape)

    def test_polygon_bounds(self):
        assert polygon_bounds(_points((5, 10), (20, 0), (15, 30))) == BoundingBox(5, 0, 15, 30)

    def test_polygon_bounds_empty(self):
        assert polygon_bounds([]) == BoundingBox(0, 0, 0, 0)

    def test_close_polygon(self):
        closed = close_polygon(_points((0, 0), (1, 0), (1, 1)))
        assert closed[-1] == PolygonPoint(0, 0)
        assert len(closed) == 4

    def test_close_polygon_already_closed(self):
        points = _points((0, 0), (1, 0), (0, 0))
        assert close_polygon(points) == points

    def test_close_polygon_short(self):
        assert close_polygon(_points((1, 1))) == _points((1, 1))


class TestSimplify:
    """Tests for Douglas-Peucker simplification."""

    def test_collinear_points_removed(self):
        points = _points((0, 0), (1, 0.01), (2, 0), (3, 0.01), (4, 0))
        assert simplify_polygon(points, 0.1) == _points((0, 0), (4, 0))

    def test_peak_kept(self):
        points = _points((0, 0), (5, 5), (10, 0))
        assert simplify_polygon(points, 1) == points

    def test_zero_tolerance_drops_only_exactly_collinear(self):
        points = _points((0, 0), (1, 0), (2, 0), (2, 1))
        assert simplify_polygon(points, 0) == _points((0, 0), (2, 0), (2, 1))

    def test_two_points_unchanged(self):
        points = _points((0, 0), (1, 1))
        assert simplify_polygon(points, 10) == points
