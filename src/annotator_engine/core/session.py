"""One annotator instance: store, view state, gestures and shortcuts wired together."""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from PyQt6.QtCore import QObject, Qt, pyqtSignal

from .annotation_store import AnnotationStore
from .config import AppConfig
from .drawing import BoxDrawing, PolygonDrawing, SelectDrag, Viewport
from .export import ExportData, export_all
from .image_cache import ImageCache
from .models import Annotation, AnnotationType, BoundingBox, ImageData, Label, PolygonPoint
from .shortcuts import KeyEvent, ShortcutDispatcher
from .tags import TagManager
from .ui_state import Tool, UIState
from .yolo_format import YOLO_PARSERS

logger = logging.getLogger(__name__)

# Canvas size assumed until an image reports its natural size
DEFAULT_IMAGE_WIDTH = 800
DEFAULT_IMAGE_HEIGHT = 600


class AnnotationSession(QObject):
    """
    Annotation session for a list of images.

    Owns the annotation store, view state, drawing gestures, shortcut
    dispatcher and tag manager of one annotator. Locking the view blocks
    every action that would change annotations.
    """

    annotations_changed = pyqtSignal(str, list)  # Image ID, annotations of that image
    exported = pyqtSignal(list)  # List[ExportData]

    def __init__(
        self,
        images: Sequence[ImageData],
        labels: Sequence[Label],
        config: Optional[AppConfig] = None,
        initial_annotations: Optional[Mapping[str, Sequence[Annotation]]] = None,
        image_cache: Optional[ImageCache] = None,
        tag_manager: Optional[TagManager] = None,
        on_export: Optional[Callable[[List[ExportData]], None]] = None
    ) -> None:
        """
        Initialize the session.

        Args:
            images: Images to annotate, in navigation order
            labels: Available labels
            config: Settings; defaults are used when omitted
            initial_annotations: Annotations per image ID
            image_cache: Cache used to learn image sizes
            tag_manager: Tag manager with host capabilities
            on_export: Called with the export payload of the export shortcut
        """
        super().__init__()
        self.config = config or AppConfig()
        self.images: List[ImageData] = list(images)
        self.labels: List[Label] = list(labels)
        self.image_cache = image_cache if image_cache is not None else ImageCache()
        self.tags = tag_manager if tag_manager is not None else TagManager(
            self.labels,
            limit=self.config.tag_search_limit,
            debounce_ms=self.config.tag_search_debounce_ms,
        )

        self.store = AnnotationStore(initial_annotations, max_history=self.config.max_history_entries)
        self.ui_state = UIState(favorite_label_ids=self.config.favorite_label_ids)
        if self.labels:
            self.ui_state.set_active_label(self.labels[0].id)

        self.viewport = Viewport()
        self.box_drawing = BoxDrawing(self.viewport, self.commit_box, self.config.min_box_size)
        self.polygon_drawing = PolygonDrawing(
            self.viewport, self.commit_polygon, self.config.polygon_close_threshold
        )
        self.select_drag = SelectDrag(self.viewport, self.apply_drag, self.config.handle_size)

        self.dispatcher = ShortcutDispatcher(
            self.store,
            self.ui_state,
            labels=self.labels,
            shortcuts=self.config.keyboard_shortcuts,
            image_count=len(self.images),
            zoom_step=self.config.zoom_step,
            classify_mode=self.classify_mode,
            label_key_bindings=self.config.label_key_bindings,
            on_export=self._export_shortcut,
            on_toggle_classification=self.toggle_classification,
        )

        self._id_counter = 0
        self.store.annotations_changed.connect(self._on_annotations_changed)
        if on_export is not None:
            self.exported.connect(on_export)
        self._sync_viewport()

    # === State ===

    @property
    def classify_mode(self) -> bool:
        return self.config.annotation_mode == "classify"

    @property
    def locked(self) -> bool:
        return self.ui_state.locked

    @property
    def current_image(self) -> Optional[ImageData]:
        index = self.ui_state.current_image_index
        if 0 <= index < len(self.images):
            return self.images[index]
        return None

    def current_annotations(self) -> List[Annotation]:
        image = self.current_image
        return self.store.get_annotations(image.id) if image else []

    def image_size(self, image: ImageData) -> Tuple[float, float]:
        """Natural size of an image, or the default canvas size when unknown."""
        width = image.natural_width if image.natural_width is not None else DEFAULT_IMAGE_WIDTH
        height = image.natural_height if image.natural_height is not None else DEFAULT_IMAGE_HEIGHT
        return width, height

    def set_image_size(self, image_id: str, width: int, height: int) -> None:
        """Record the natural size of an image once it is known."""
        self.images = [
            dataclasses.replace(image, natural_width=width, natural_height=height)
            if image.id == image_id else image
            for image in self.images
        ]
        self._sync_viewport()

    def load_current_image(self) -> bool:
        """
        Decode the current image through the cache and record its size.

        Returns:
            True if the image is available
        """
        image = self.current_image
        if image is None:
            return False
        loaded = self.image_cache.load(image.src)
        if loaded is None:
            return False
        if (image.natural_width, image.natural_height) != (loaded.natural_width, loaded.natural_height):
            self.set_image_size(image.id, loaded.natural_width, loaded.natural_height)
        return True

    def set_labels(self, labels: Sequence[Label]) -> None:
        self.labels = list(labels)
        self.dispatcher.labels = list(labels)
        self.tags.set_labels(labels)
        label_ids = {label.id for label in self.labels}
        if self.ui_state.active_label_id not in label_ids:
            self.ui_state.set_active_label(self.labels[0].id if self.labels else None)

    # Tag management. Each call updates the session labels on success so the
    # dispatcher and export see the same list as the tag manager.

    async def create_tag(self, name: str, color: Optional[str] = None) -> Label:
        label = await self.tags.create_tag(name, color)
        self.set_labels(self.tags.labels)
        return label

    async def delete_tag(self, label_id: str) -> None:
        await self.tags.delete_tag(label_id)
        self.set_labels(self.tags.labels)

    async def update_tag(self, label_id: str, updates: Mapping[str, str]) -> Label:
        label = await self.tags.update_tag(label_id, updates)
        self.set_labels(self.tags.labels)
        return label

    def set_images(self, images: Sequence[ImageData]) -> None:
        self.images = list(images)
        self.dispatcher.image_count = len(self.images)
        if self.ui_state.current_image_index >= len(self.images):
            self.ui_state.set_current_image_index(max(0, len(self.images) - 1))
        self._sync_viewport()

    def _sync_viewport(self) -> None:
        self.viewport.zoom = self.ui_state.zoom
        self.viewport.pan_x = self.ui_state.pan_x
        self.viewport.pan_y = self.ui_state.pan_y
        image = self.current_image
        if image is not None:
            self.viewport.image_width, self.viewport.image_height = self.image_size(image)

    def next_id(self) -> str:
        """Generate an annotation ID unique within this session."""
        self._id_counter += 1
        return f"ann-{int(time.time() * 1000)}-{self._id_counter}"

    def _on_annotations_changed(self, image_id: str) -> None:
        image = self.current_image
        if image is None or (image_id and image_id != image.id):
            return
        self.annotations_changed.emit(image.id, self.store.get_annotations(image.id))

    # === Annotation commands ===

    def _can_add(self) -> Optional[Tuple[ImageData, str]]:
        image = self.current_image
        label_id = self.ui_state.active_label_id
        if self.locked or image is None or not label_id:
            return None
        return image, label_id

    def commit_box(self, box: BoundingBox) -> Optional[Annotation]:
        """
        Add a box annotation with the active label to the current image.

        Returns:
            The new annotation, or None when locked or no label is active
        """
        target = self._can_add()
        if target is None:
            return None
        image, label_id = target
        annotation = Annotation(id=self.next_id(), image_id=image.id, label_id=label_id, box=box)
        self.store.add_annotation(annotation)
        return annotation

    def commit_polygon(self, points: Sequence[PolygonPoint], bounds: BoundingBox) -> Optional[Annotation]:
        """Add a polygon annotation with the active label to the current image."""
        target = self._can_add()
        if target is None:
            return None
        image, label_id = target
        annotation = Annotation(
            id=self.next_id(),
            image_id=image.id,
            label_id=label_id,
            box=bounds,
            type=AnnotationType.POLYGON,
            polygon=tuple(points),
        )
        self.store.add_annotation(annotation)
        return annotation

    def update_box(self, annotation_id: str, image_id: str, box: BoundingBox) -> bool:
        """Move or resize an annotation. Ignored while locked."""
        if self.locked:
            return False
        self.store.update_annotation(annotation_id, image_id, {"box": box})
        return True

    def apply_drag(self, annotation: Annotation) -> bool:
        """Store the geometry of a moved or resized annotation. Ignored while locked."""
        if self.locked:
            return False
        self.store.update_annotation(
            annotation.id, annotation.image_id, {"box": annotation.box, "polygon": annotation.polygon}
        )
        return True

    def delete_annotation(self, annotation_id: str, image_id: str) -> bool:
        if self.locked:
            return False
        self.store.remove_annotation(annotation_id, image_id)
        if self.ui_state.selected_annotation_id == annotation_id:
            self.ui_state.set_selected_annotation(None)
        return True

    def toggle_classification(self, label_id: str) -> Optional[bool]:
        """
        Toggle a whole-image classification label on the current image.

        Returns:
            True if the label was added, False if it was removed, None if
            nothing changed
        """
        image = self.current_image
        if self.locked or image is None:
            return None

        for annotation in self.store.get_annotations(image.id):
            if annotation.effective_type == AnnotationType.CLASSIFICATION and annotation.label_id == label_id:
                self.store.remove_annotation(annotation.id, image.id)
                return False

        width, height = self.image_size(image)
        self.store.add_annotation(Annotation(
            id=self.next_id(),
            image_id=image.id,
            label_id=label_id,
            box=BoundingBox(0, 0, width, height),
            type=AnnotationType.CLASSIFICATION,
        ))
        return True

    # === Input ===

    def handle_key(self, event: KeyEvent) -> Optional[str]:
        """
        Route a key press to the polygon gesture or the shortcut dispatcher.

        Returns:
            The action handled, or None if the host should process the key
        """
        if self.ui_state.tool == Tool.POLYGON and not self.locked and self.polygon_drawing.is_drawing:
            if event.key == "Escape" and self.polygon_drawing.key_press(event.key):
                return "polygon.cancel"
            if event.key == "Enter" and self.polygon_drawing.key_press(event.key):
                return "polygon.finish"

        action = self.dispatcher.handle(event)
        if self.ui_state.tool != Tool.POLYGON and self.polygon_drawing.is_drawing:
            self.polygon_drawing.cancel()
        if self.ui_state.tool != Tool.DRAW and self.box_drawing.is_drawing:
            self.box_drawing.cancel()
        if (self.ui_state.tool != Tool.SELECT or self.locked) and self.select_drag.is_dragging:
            self.select_drag.cancel()
        self._sync_viewport()
        return action

    def mouse_press(self, x: float, y: float, button: Qt.MouseButton = Qt.MouseButton.LeftButton) -> None:
        """Handle a press at canvas coordinates."""
        self._sync_viewport()
        tool = self.ui_state.tool
        if self.locked:
            return
        if tool == Tool.DRAW:
            self.box_drawing.press(x, y, button)
        elif tool == Tool.POLYGON:
            self.polygon_drawing.click(x, y, button)
        elif tool == Tool.SELECT and button == Qt.MouseButton.LeftButton:
            hit = self.select_drag.press(x, y, self.current_annotations(), button)
            self.ui_state.set_selected_annotation(hit.id if hit else None)

    def mouse_move(self, x: float, y: float) -> None:
        tool = self.ui_state.tool
        if tool == Tool.DRAW:
            self.box_drawing.move(x, y)
        elif tool == Tool.POLYGON:
            self.polygon_drawing.move(x, y)
        elif tool == Tool.SELECT:
            self.select_drag.move(x, y)

    def mouse_release(self) -> None:
        tool = self.ui_state.tool
        if tool == Tool.DRAW:
            self.box_drawing.release()
        elif tool == Tool.SELECT:
            self.select_drag.release()

    def mouse_double_click(self) -> None:
        if self.ui_state.tool == Tool.POLYGON and not self.locked:
            self.polygon_drawing.double_click()

    # === Import / export ===

    def export_all(self) -> List[ExportData]:
        """Export every annotated image in the configured YOLO format."""
        return export_all(self.images, self.store, self.labels, self.config.yolo_format)

    def _export_shortcut(self) -> None:
        self.exported.emit(self.export_all())

    def import_yolo(self, image_id: str, txt: str, fmt: Optional[str] = None) -> List[Annotation]:
        """
        Replace the annotations of an image with parsed YOLO text.

        The replacement is a single undoable change.

        Args:
            image_id: Image to import into
            txt: YOLO text
            fmt: Line format; defaults to the configured format

        Returns:
            The imported annotations
        """
        fmt = fmt or self.config.yolo_format
        parser = YOLO_PARSERS.get(fmt)
        if parser is None:
            raise ValueError(f"Unknown YOLO format: {fmt}")

        image = next((img for img in self.images if img.id == image_id), None)
        if image is None:
            raise KeyError(f"Unknown image: {image_id}")

        width, height = self.image_size(image)
        annotations = parser(txt, self.labels, width, height, image_id)
        self.store.set_annotations(image_id, annotations)
        logger.info(f"Imported {len(annotations)} annotations into {image.name}")
        return annotations

    def to_dict(self) -> Dict[str, object]:
        """Snapshot of the annotations and favourites, for persistence."""
        return {
            "annotations": self.store.to_dict(),
            "favoriteLabelIds": list(self.ui_state.favorite_label_ids),
        }
