"""Pure 2D geometry for boxes and polygons."""

from __future__ import annotations

import math
from enum import Enum
from typing import List, Optional, Sequence

from .models import BoundingBox, PolygonPoint


class ResizeHandle(str, Enum):
    """Resize handles around a bounding box."""

    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"
    N = "n"
    S = "s"
    E = "e"
    W = "w"


def normalize_box(x0: float, y0: float, x1: float, y1: float) -> BoundingBox:
    """
    Build a box from two drag corners in any order.

    Degenerate (zero width or height) results are valid; callers reject
    boxes that are too small before committing them.
    """
    return BoundingBox(
        x=min(x0, x1),
        y=min(y0, y1),
        width=abs(x1 - x0),
        height=abs(y1 - y0),
    )


def clamp_box(box: BoundingBox, max_width: float, max_height: float) -> BoundingBox:
    """
    Clamp a box into ``[0, max_width] x [0, max_height]``.

    The origin is clamped first and the size is then limited to the space
    left between the clamped origin and the boundary.
    """
    x = max(0, min(box.x, max_width))
    y = max(0, min(box.y, max_height))
    return BoundingBox(
        x=x,
        y=y,
        width=min(box.width, max_width - x),
        height=min(box.height, max_height - y),
    )


def point_in_box(px: float, py: float, box: BoundingBox) -> bool:
    """Check if a point lies inside a box, edges included."""
    return box.x <= px <= box.right and box.y <= py <= box.bottom


def boxes_intersect(a: BoundingBox, b: BoundingBox) -> bool:
    """Check if two boxes overlap. Boxes sharing an edge count as overlapping."""
    return not (
        a.right < b.x
        or b.right < a.x
        or a.bottom < b.y
        or b.bottom < a.y
    )


def get_resize_handle(
    px: float,
    py: float,
    box: BoundingBox,
    handle_size: float = 8
) -> Optional[ResizeHandle]:
    """
    Find the resize handle under a point.

    Args:
        px: Point x coordinate
        py: Point y coordinate
        box: Box to test against
        handle_size: Hit area size; a point within half of it from an
            edge is on that edge

    Returns:
        The handle under the point, or None. Corners win over edges.
    """
    half = handle_size / 2
    right = box.right
    bottom = box.bottom

    on_left = abs(px - box.x) <= half
    on_right = abs(px - right) <= half
    on_top = abs(py - box.y) <= half
    on_bottom = abs(py - bottom) <= half

    if on_top and on_left:
        return ResizeHandle.NW
    if on_top and on_right:
        return ResizeHandle.NE
    if on_bottom and on_left:
        return ResizeHandle.SW
    if on_bottom and on_right:
        return ResizeHandle.SE
    if on_top and box.x < px < right:
        return ResizeHandle.N
    if on_bottom and box.x < px < right:
        return ResizeHandle.S
    if on_left and box.y < py < bottom:
        return ResizeHandle.W
    if on_right and box.y < py < bottom:
        return ResizeHandle.E
    return None


# (x, y, width, height) coefficients applied to (dx, dy) per handle
_RESIZE_TABLE = {
    ResizeHandle.NW: ((1, 0), (0, 1), (-1, 0), (0, -1)),
    ResizeHandle.NE: ((0, 0), (0, 1), (1, 0), (0, -1)),
    ResizeHandle.SW: ((1, 0), (0, 0), (-1, 0), (0, 1)),
    ResizeHandle.SE: ((0, 0), (0, 0), (1, 0), (0, 1)),
    ResizeHandle.N: ((0, 0), (0, 1), (0, 0), (0, -1)),
    ResizeHandle.S: ((0, 0), (0, 0), (0, 0), (0, 1)),
    ResizeHandle.W: ((1, 0), (0, 0), (-1, 0), (0, 0)),
    ResizeHandle.E: ((0, 0), (0, 0), (1, 0), (0, 0)),
}


def apply_resize(box: BoundingBox, handle: ResizeHandle, dx: float, dy: float) -> BoundingBox:
    """
    Resize a box by dragging one of its handles.

    Each axis keeps a minimum size of 1. When a drag would collapse an
    axis, the origin becomes ``origin + size - 1`` and the size becomes 1.
    """
    handle = ResizeHandle(handle)
    values = [box.x, box.y, box.width, box.height]
    for i, (cx, cy) in enumerate(_RESIZE_TABLE[handle]):
        if cx:
            values[i] += cx * dx
        if cy:
            values[i] += cy * dy

    x, y, width, height = values
    if width < 1:
        x = x + width - 1
        width = 1
    if height < 1:
        y = y + height - 1
        height = 1

    return BoundingBox(x=x, y=y, width=width, height=height)


def move_box(box: BoundingBox, dx: float, dy: float) -> BoundingBox:
    """Translate a box."""
    return BoundingBox(x=box.x + dx, y=box.y + dy, width=box.width, height=box.height)


def point_in_polygon(px: float, py: float, points: Sequence[PolygonPoint]) -> bool:
    """Even-odd ray casting test; the polygon is implicitly closed."""
    inside = False
    j = len(points) - 1
    for i in range(len(points)):
        xi, yi = points[i].x, points[i].y
        xj, yj = points[j].x, points[j].y
        if (yi > py) != (yj > py) and px < (xj - xi) * (py - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def polygon_bounds(points: Sequence[PolygonPoint]) -> BoundingBox:
    """Axis-aligned bounds of a point set. Empty input gives a zero box."""
    if not points:
        return BoundingBox(0, 0, 0, 0)

    xs = [p.x for p in points]
    ys = [p.y for p in points]
    min_x, max_x = min(xs), max(xs)
    min_y, max_y = min(ys), max(ys)
    return BoundingBox(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)


def close_polygon(points: Sequence[PolygonPoint]) -> List[PolygonPoint]:
    """Return a copy of the polygon with the first vertex appended if it is open."""
    if len(points) < 2:
        return list(points)

    first = points[0]
    last = points[-1]
    if first.x == last.x and first.y == last.y:
        return list(points)
    return [*points, PolygonPoint(first.x, first.y)]


def simplify_polygon(points: Sequence[PolygonPoint], tolerance: float) -> List[PolygonPoint]:
    """
    Simplify a polyline with the Douglas-Peucker algorithm.

    Args:
        points: Points to simplify
        tolerance: Maximum distance a dropped point may deviate from the
            simplified line

    Returns:
        The simplified point list. The first and last points are kept.
    """
    if len(points) <= 2:
        return list(points)

    first = points[0]
    last = points[-1]

    max_dist = 0.0
    max_index = 0
    for i in range(1, len(points) - 1):
        dist = _perpendicular_distance(points[i], first, last)
        if dist > max_dist:
            max_dist = dist
            max_index = i

    if max_dist > tolerance:
        left = simplify_polygon(points[:max_index + 1], tolerance)
        right = simplify_polygon(points[max_index:], tolerance)
        # Junction point is shared by both halves
        return left[:-1] + right

    return [first, last]


def _perpendicular_distance(
    point: PolygonPoint,
    line_start: PolygonPoint,
    line_end: PolygonPoint
) -> float:
    """Distance from a point to the line through two points."""
    dx = line_end.x - line_start.x
    dy = line_end.y - line_start.y

    if dx == 0 and dy == 0:
        return math.sqrt((point.x - line_start.x) ** 2 + (point.y - line_start.y) ** 2)

    numerator = abs(dy * point.x - dx * point.y + line_end.x * line_start.y - line_end.y * line_start.x)
    return numerator / math.sqrt(dx * dx + dy * dy)
