"""Box, polygon and selection gestures in canvas coordinates."""

from __future__ import annotations

import dataclasses
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from PyQt6.QtCore import QObject, Qt, pyqtSignal

from .geometry import (
    ResizeHandle,
    apply_resize,
    clamp_box,
    get_resize_handle,
    move_box,
    normalize_box,
    point_in_box,
    point_in_polygon,
    polygon_bounds,
)
from .models import Annotation, AnnotationType, BoundingBox, PolygonPoint

logger = logging.getLogger(__name__)

CLOSE_THRESHOLD = 12
MIN_BOX_SIZE = 2
MIN_POLYGON_POINTS = 3
HANDLE_SIZE = 8


class DrawingState(str, Enum):
    """Polygon gesture state."""

    IDLE = "idle"
    ACCUMULATING = "accumulating"


@dataclass
class Viewport:
    """
    Mapping between canvas pixels and image pixels.

    A canvas point ``c`` maps to the image point ``(c - pan) / zoom``.
    """

    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    image_width: float = 0.0
    image_height: float = 0.0

    def to_image(self, canvas_x: float, canvas_y: float) -> Tuple[float, float]:
        return (canvas_x - self.pan_x) / self.zoom, (canvas_y - self.pan_y) / self.zoom

    def to_image_clamped(self, canvas_x: float, canvas_y: float) -> PolygonPoint:
        """Image point for a canvas point, clamped into the image."""
        x, y = self.to_image(canvas_x, canvas_y)
        return PolygonPoint(
            max(0.0, min(self.image_width, x)),
            max(0.0, min(self.image_height, y)),
        )


class BoxDrawing(QObject):
    """
    Press-drag-release gesture producing a bounding box.

    The live box is normalized and clamped to the image on every move.
    Release commits it only when both sides exceed ``min_box_size``.
    """

    box_completed = pyqtSignal(object)  # BoundingBox

    def __init__(
        self,
        viewport: Viewport,
        on_complete: Optional[Callable[[BoundingBox], None]] = None,
        min_box_size: float = MIN_BOX_SIZE
    ) -> None:
        super().__init__()
        self.viewport = viewport
        self.min_box_size = min_box_size
        self._drawing = False
        self._start: Tuple[float, float] = (0.0, 0.0)
        self._current: Optional[BoundingBox] = None
        if on_complete is not None:
            self.box_completed.connect(on_complete)

    @property
    def is_drawing(self) -> bool:
        return self._drawing

    @property
    def current_box(self) -> Optional[BoundingBox]:
        """The box being dragged, in image coordinates."""
        return self._current

    def press(
        self,
        canvas_x: float,
        canvas_y: float,
        button: Qt.MouseButton = Qt.MouseButton.LeftButton
    ) -> None:
        if button != Qt.MouseButton.LeftButton:
            return
        self._drawing = True
        self._start = self.viewport.to_image(canvas_x, canvas_y)
        self._current = None

    def move(self, canvas_x: float, canvas_y: float) -> Optional[BoundingBox]:
        if not self._drawing:
            return None
        x, y = self.viewport.to_image(canvas_x, canvas_y)
        box = normalize_box(self._start[0], self._start[1], x, y)
        self._current = clamp_box(box, self.viewport.image_width, self.viewport.image_height)
        return self._current

    def release(self) -> Optional[BoundingBox]:
        """
        Finish the drag. Also used when the pointer leaves the canvas.

        Returns:
            The committed box, or None if nothing was committed
        """
        if not self._drawing:
            return None
        self._drawing = False

        box = self._current
        self._current = None
        if box is None or box.width <= self.min_box_size or box.height <= self.min_box_size:
            return None

        self.box_completed.emit(box)
        return box

    def cancel(self) -> None:
        self._drawing = False
        self._current = None


class PolygonDrawing(QObject):
    """
    Click-to-add-vertex gesture producing a polygon.

    Clicking within ``close_threshold`` screen pixels of the first vertex
    closes the polygon once it has at least three vertices. Double click
    and Enter also close it; Escape cancels.
    """

    polygon_completed = pyqtSignal(object, object)  # List[PolygonPoint], BoundingBox

    def __init__(
        self,
        viewport: Viewport,
        on_complete: Optional[Callable[[List[PolygonPoint], BoundingBox], None]] = None,
        close_threshold: float = CLOSE_THRESHOLD
    ) -> None:
        super().__init__()
        self.viewport = viewport
        self.close_threshold = close_threshold
        self._points: List[PolygonPoint] = []
        self._mouse_pos: Optional[PolygonPoint] = None
        if on_complete is not None:
            self.polygon_completed.connect(on_complete)

    @property
    def state(self) -> DrawingState:
        return DrawingState.ACCUMULATING if self._points else DrawingState.IDLE

    @property
    def is_drawing(self) -> bool:
        return bool(self._points)

    @property
    def points(self) -> List[PolygonPoint]:
        return list(self._points)

    @property
    def mouse_pos(self) -> Optional[PolygonPoint]:
        """Last hover position while accumulating, for the rubber-band edge."""
        return self._mouse_pos

    def _screen_distance(self, a: PolygonPoint, b: PolygonPoint) -> float:
        zoom = self.viewport.zoom
        return math.hypot((a.x - b.x) * zoom, (a.y - b.y) * zoom)

    def click(
        self,
        canvas_x: float,
        canvas_y: float,
        button: Qt.MouseButton = Qt.MouseButton.LeftButton
    ) -> bool:
        """
        Add a vertex, or close the polygon when clicking near the first one.

        Returns:
            True if the click committed the polygon
        """
        if button != Qt.MouseButton.LeftButton:
            return False

        point = self.viewport.to_image_clamped(canvas_x, canvas_y)
        if (len(self._points) >= MIN_POLYGON_POINTS
                and self._screen_distance(point, self._points[0]) < self.close_threshold):
            return self.finish()

        self._points.append(point)
        return False

    def move(self, canvas_x: float, canvas_y: float) -> None:
        if self._points:
            self._mouse_pos = self.viewport.to_image_clamped(canvas_x, canvas_y)

    def double_click(self) -> bool:
        """Close the polygon without adding the double-clicked point."""
        if len(self._points) >= MIN_POLYGON_POINTS:
            return self.finish()
        return False

    def key_press(self, key: str) -> bool:
        """
        Handle Escape and Enter.

        Returns:
            True if the key was consumed
        """
        if key == "Escape":
            if not self._points:
                return False
            self.cancel()
            return True
        if key == "Enter" and len(self._points) >= MIN_POLYGON_POINTS:
            self.finish()
            return True
        return False

    def finish(self) -> bool:
        """
        Commit the polygon if it has enough vertices and reset.

        Returns:
            True if a polygon was committed
        """
        points = self._points
        self._reset()
        if len(points) < MIN_POLYGON_POINTS:
            return False

        logger.debug(f"Polygon closed with {len(points)} points")
        self.polygon_completed.emit(points, polygon_bounds(points))
        return True

    def cancel(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self._points = []
        self._mouse_pos = None


def hit_test(
    px: float,
    py: float,
    annotations: Sequence[Annotation],
    handle_size: float = HANDLE_SIZE
) -> Tuple[Optional[Annotation], Optional[ResizeHandle]]:
    """
    Find the topmost annotation under an image point.

    Later annotations are drawn on top and are tested first. Boxes are hit
    on their resize handles or inside; polygons and OBBs inside their
    outline. Classification annotations cover the whole image and are
    never hit.

    Returns:
        Tuple of (annotation, handle); the handle is None for a move
    """
    for annotation in reversed(annotations):
        annotation_type = annotation.effective_type
        if annotation_type == AnnotationType.CLASSIFICATION:
            continue
        if annotation_type in (AnnotationType.POLYGON, AnnotationType.OBB) and annotation.polygon:
            if point_in_polygon(px, py, annotation.polygon):
                return annotation, None
            continue

        handle = get_resize_handle(px, py, annotation.box, handle_size)
        if handle is not None or point_in_box(px, py, annotation.box):
            return annotation, handle
    return None, None


class SelectDrag(QObject):
    """
    Press-drag-release gesture moving or resizing an existing annotation.

    Pressing a box handle resizes the box; pressing anywhere else on an
    annotation moves it. Polygons and OBBs move with their outline. The
    edit is previewed while dragging and committed once on release.
    """

    drag_completed = pyqtSignal(object)  # Updated Annotation

    def __init__(
        self,
        viewport: Viewport,
        on_complete: Optional[Callable[[Annotation], None]] = None,
        handle_size: float = HANDLE_SIZE
    ) -> None:
        super().__init__()
        self.viewport = viewport
        self.handle_size = handle_size
        self._target: Optional[Annotation] = None
        self._handle: Optional[ResizeHandle] = None
        self._start: Tuple[float, float] = (0.0, 0.0)
        self._current: Optional[Annotation] = None
        if on_complete is not None:
            self.drag_completed.connect(on_complete)

    @property
    def is_dragging(self) -> bool:
        return self._target is not None

    @property
    def handle(self) -> Optional[ResizeHandle]:
        """Handle being dragged, or None while moving."""
        return self._handle

    @property
    def current(self) -> Optional[Annotation]:
        """The dragged annotation with the edit so far applied."""
        return self._current

    def press(
        self,
        canvas_x: float,
        canvas_y: float,
        annotations: Sequence[Annotation],
        button: Qt.MouseButton = Qt.MouseButton.LeftButton
    ) -> Optional[Annotation]:
        """
        Start dragging the annotation under the pointer.

        Handles keep their on-screen size, so the hit area shrinks in image
        space as the zoom grows.

        Returns:
            The annotation under the pointer, or None on empty canvas
        """
        self.cancel()
        if button != Qt.MouseButton.LeftButton:
            return None

        x, y = self.viewport.to_image(canvas_x, canvas_y)
        annotation, handle = hit_test(x, y, annotations, self.handle_size / self.viewport.zoom)
        if annotation is None:
            return None

        self._target = annotation
        self._handle = handle
        self._start = (x, y)
        self._current = annotation
        return annotation

    def move(self, canvas_x: float, canvas_y: float) -> Optional[Annotation]:
        target = self._target
        if target is None:
            return None

        x, y = self.viewport.to_image(canvas_x, canvas_y)
        dx = x - self._start[0]
        dy = y - self._start[1]

        if self._handle is not None:
            self._current = dataclasses.replace(target, box=apply_resize(target.box, self._handle, dx, dy))
        elif target.polygon:
            self._current = dataclasses.replace(
                target,
                box=move_box(target.box, dx, dy),
                polygon=tuple(PolygonPoint(p.x + dx, p.y + dy) for p in target.polygon),
            )
        else:
            self._current = dataclasses.replace(target, box=move_box(target.box, dx, dy))
        return self._current

    def release(self) -> Optional[Annotation]:
        """
        Finish the drag. Also used when the pointer leaves the canvas.

        Returns:
            The updated annotation, or None if nothing changed
        """
        target, current = self._target, self._current
        self.cancel()
        if target is None or current is None or current == target:
            return None

        self.drag_completed.emit(current)
        return current

    def cancel(self) -> None:
        self._target = None
        self._handle = None
        self._current = None
