"""Tests for the annotation session wiring."""

import asyncio
import re

import pytest
from PyQt6.QtGui import QImage

from annotator_engine.core.config import AppConfig
from annotator_engine.core.image_cache import ImageCache
from annotator_engine.core.models import AnnotationType, BoundingBox, Label, PolygonPoint
from annotator_engine.core.session import AnnotationSession
from annotator_engine.core.shortcuts import KeyEvent
from annotator_engine.core.tags import TagManager
from annotator_engine.core.ui_state import Tool


@pytest.fixture
def session(qapp, images, labels):
    return AnnotationSession(images, labels)


class TestSessionSetup:
    """Tests for the initial session state."""

    def test_first_label_is_active(self, session):
        assert session.ui_state.active_label_id == "cat"

    def test_no_labels(self, qapp, images):
        assert AnnotationSession(images, []).ui_state.active_label_id is None

    def test_current_image(self, session):
        assert session.current_image.id == "img1"
        assert session.current_annotations() == []

    def test_unknown_size_uses_default_canvas(self, session, images):
        assert session.image_size(images[2]) == (800, 600)

    def test_next_id_is_unique(self, session):
        first = session.next_id()
        second = session.next_id()

        assert re.fullmatch(r"ann-\d+-1", first)
        assert first != second

    def test_favorites_from_config(self, qapp, images, labels):
        session = AnnotationSession(images, labels, AppConfig(favorite_label_ids=["dog"]))

        assert session.ui_state.favorite_label_ids == ["dog"]


class TestAnnotationCommands:
    """Tests for adding, updating and deleting annotations."""

    def test_commit_box(self, session):
        changes = []
        session.annotations_changed.connect(lambda image_id, items: changes.append((image_id, items)))

        annotation = session.commit_box(BoundingBox(1, 2, 30, 40))

        assert annotation.label_id == "cat"
        assert annotation.image_id == "img1"
        assert annotation.type is None
        assert session.current_annotations() == [annotation]
        assert changes == [("img1", [annotation])]

    def test_commit_polygon(self, session):
        points = [PolygonPoint(0, 0), PolygonPoint(10, 0), PolygonPoint(10, 10)]

        annotation = session.commit_polygon(points, BoundingBox(0, 0, 10, 10))

        assert annotation.type == AnnotationType.POLYGON
        assert annotation.polygon == tuple(points)

    def test_commit_blocked_when_locked(self, session):
        session.ui_state.set_locked(True)

        assert session.commit_box(BoundingBox(0, 0, 10, 10)) is None
        assert session.current_annotations() == []

    def test_commit_needs_active_label(self, session):
        session.ui_state.set_active_label(None)

        assert session.commit_box(BoundingBox(0, 0, 10, 10)) is None

    def test_update_box(self, session):
        annotation = session.commit_box(BoundingBox(0, 0, 10, 10))

        assert session.update_box(annotation.id, "img1", BoundingBox(5, 5, 10, 10)) is True
        assert session.current_annotations()[0].box == BoundingBox(5, 5, 10, 10)

    def test_update_blocked_when_locked(self, session):
        annotation = session.commit_box(BoundingBox(0, 0, 10, 10))
        session.ui_state.set_locked(True)

        assert session.update_box(annotation.id, "img1", BoundingBox(5, 5, 10, 10)) is False
        assert session.current_annotations()[0].box == BoundingBox(0, 0, 10, 10)

    def test_delete_clears_selection(self, session):
        annotation = session.commit_box(BoundingBox(0, 0, 10, 10))
        session.ui_state.set_selected_annotation(annotation.id)

        assert session.delete_annotation(annotation.id, "img1") is True
        assert session.current_annotations() == []
        assert session.ui_state.selected_annotation_id is None

    def test_toggle_classification(self, session):
        assert session.toggle_classification("dog") is True

        annotation = session.current_annotations()[0]
        assert annotation.type == AnnotationType.CLASSIFICATION
        assert annotation.box == BoundingBox(0, 0, 100, 100)

        assert session.toggle_classification("dog") is False
        assert session.current_annotations() == []

    def test_toggle_ignores_boxes_with_same_label(self, session):
        session.commit_box(BoundingBox(0, 0, 10, 10))

        assert session.toggle_classification("cat") is True
        assert len(session.current_annotations()) == 2

    def test_toggle_blocked_when_locked(self, session):
        session.ui_state.set_locked(True)

        assert session.toggle_classification("dog") is None


class TestMouseInput:
    """Tests for mouse-driven drawing."""

    def test_draw_box(self, session):
        session.mouse_press(10, 10)
        session.mouse_move(40, 30)
        session.mouse_release()

        annotations = session.current_annotations()
        assert len(annotations) == 1
        assert annotations[0].box == BoundingBox(10, 10, 30, 20)

    def test_box_uses_zoom_and_pan(self, session):
        session.ui_state.set_zoom(2.0)
        session.ui_state.set_pan(10, 10)

        session.mouse_press(30, 30)
        session.mouse_move(70, 50)
        session.mouse_release()

        assert session.current_annotations()[0].box == BoundingBox(10, 10, 20, 10)

    def test_no_drawing_when_locked(self, session):
        session.ui_state.set_locked(True)

        session.mouse_press(10, 10)
        session.mouse_move(40, 30)
        session.mouse_release()

        assert session.current_annotations() == []

    def test_polygon_double_click(self, session):
        session.handle_key(KeyEvent("p"))

        for x, y in [(0, 0), (50, 0), (50, 50)]:
            session.mouse_press(x, y)
        session.mouse_double_click()

        annotation = session.current_annotations()[0]
        assert annotation.type == AnnotationType.POLYGON
        assert annotation.box == BoundingBox(0, 0, 50, 50)

    def test_polygon_points_clamped_to_image(self, session):
        session.handle_key(KeyEvent("p"))

        for x, y in [(0, 0), (500, 0), (500, 500)]:
            session.mouse_press(x, y)
        session.mouse_double_click()

        assert session.current_annotations()[0].box == BoundingBox(0, 0, 100, 100)


class TestSelectTool:
    """Tests for selecting, moving and resizing with the select tool."""

    @pytest.fixture
    def box(self, session):
        annotation = session.commit_box(BoundingBox(10, 10, 40, 40))
        session.ui_state.set_tool(Tool.SELECT)
        return annotation

    def test_drag_corner_resizes(self, session, box):
        session.mouse_press(50, 50)
        session.mouse_move(70, 70)
        session.mouse_release()

        assert session.ui_state.selected_annotation_id == box.id
        assert session.current_annotations()[0].box == BoundingBox(10, 10, 60, 60)

    def test_drag_inside_moves(self, session, box):
        session.mouse_press(30, 30)
        session.mouse_move(35, 40)
        session.mouse_release()

        assert session.current_annotations()[0].box == BoundingBox(15, 20, 40, 40)

    def test_drag_is_one_undo_step(self, session, box):
        session.mouse_press(30, 30)
        for x in range(31, 40):
            session.mouse_move(x, 30)
        session.mouse_release()

        session.store.undo()

        assert session.current_annotations() == [box]

    def test_drag_uses_zoom_and_pan(self, session, box):
        session.ui_state.set_zoom(2.0)
        session.ui_state.set_pan(10, 10)

        session.mouse_press(70, 70)
        session.mouse_move(90, 110)
        session.mouse_release()

        assert session.current_annotations()[0].box == BoundingBox(20, 30, 40, 40)

    def test_click_selects_without_change(self, session, box):
        session.mouse_press(30, 30)
        session.mouse_release()

        assert session.ui_state.selected_annotation_id == box.id
        session.store.undo()
        assert session.current_annotations() == []

    def test_click_on_empty_space_deselects(self, session, box):
        session.ui_state.set_selected_annotation(box.id)

        session.mouse_press(90, 90)
        session.mouse_release()

        assert session.ui_state.selected_annotation_id is None

    def test_locked_session_does_not_edit(self, session, box):
        session.ui_state.set_locked(True)

        session.mouse_press(30, 30)
        session.mouse_move(60, 60)
        session.mouse_release()

        assert session.current_annotations() == [box]

    def test_switching_tool_cancels_drag(self, session, box):
        session.mouse_press(30, 30)
        session.mouse_move(40, 40)

        session.handle_key(KeyEvent("d"))
        session.mouse_release()

        assert not session.select_drag.is_dragging
        assert session.current_annotations() == [box]


class TestKeyInput:
    """Tests for key routing."""

    def _start_polygon(self, session):
        session.handle_key(KeyEvent("p"))
        for x, y in [(0, 0), (50, 0), (50, 50)]:
            session.mouse_press(x, y)

    def test_enter_finishes_polygon(self, session):
        self._start_polygon(session)

        assert session.handle_key(KeyEvent("Enter")) == "polygon.finish"
        assert len(session.current_annotations()) == 1
        assert session.current_image.id == "img1"

    def test_escape_cancels_polygon(self, session):
        self._start_polygon(session)

        assert session.handle_key(KeyEvent("Escape")) == "polygon.cancel"
        assert session.current_annotations() == []
        assert not session.polygon_drawing.is_drawing

    def test_enter_without_polygon_confirms_image(self, session):
        assert session.handle_key(KeyEvent("Enter")) == "image.confirm"
        assert session.current_image.id == "img2"

    def test_switching_tool_cancels_polygon(self, session):
        self._start_polygon(session)

        session.handle_key(KeyEvent("v"))

        assert session.ui_state.tool == Tool.SELECT
        assert not session.polygon_drawing.is_drawing

    def test_undo_shortcut(self, session):
        session.commit_box(BoundingBox(0, 0, 10, 10))

        assert session.handle_key(KeyEvent("z", ctrl=True)) == "history.undo"
        assert session.current_annotations() == []

    def test_navigation_updates_viewport(self, session):
        session.handle_key(KeyEvent("ArrowRight"))

        assert session.viewport.image_width == 200
        assert session.viewport.image_height == 100

    def test_export_shortcut(self, qapp, images, labels):
        payloads = []
        session = AnnotationSession(images, labels, on_export=payloads.append)
        session.commit_box(BoundingBox(0, 0, 50, 50))

        assert session.handle_key(KeyEvent("s", ctrl=True)) == "export"

        assert len(payloads) == 1
        assert payloads[0][0].yolo_txt == "0 0.250000 0.250000 0.500000 0.500000"

    def test_classify_mode_toggles_labels(self, qapp, images, labels):
        config = AppConfig(annotation_mode="classify", label_key_bindings={"dog": "g"})
        session = AnnotationSession(images, labels, config)

        session.handle_key(KeyEvent("1"))
        session.handle_key(KeyEvent("g"))

        assert {a.label_id for a in session.current_annotations()} == {"cat", "dog"}
        assert all(a.type == AnnotationType.CLASSIFICATION for a in session.current_annotations())


class TestImagesAndLabels:
    """Tests for image size, image list and label updates."""

    def test_set_image_size(self, session):
        session.set_image_size("img1", 640, 480)

        assert session.images[0].natural_width == 640
        assert session.viewport.image_width == 640

    def test_load_current_image(self, qapp, images, labels):
        cache = ImageCache(lambda src: QImage(30, 40, QImage.Format.Format_RGB32))
        session = AnnotationSession(images, labels, image_cache=cache)

        assert session.load_current_image() is True
        assert (session.images[0].natural_width, session.images[0].natural_height) == (30, 40)

    def test_load_current_image_failure(self, qapp, images, labels):
        session = AnnotationSession(images, labels, image_cache=ImageCache(lambda src: None))

        assert session.load_current_image() is False
        assert session.images[0].natural_width == 100

    def test_set_images_clamps_index(self, session, images):
        session.ui_state.set_current_image_index(2)

        session.set_images(images[:1])

        assert session.current_image.id == "img1"
        assert session.dispatcher.image_count == 1

    def test_set_labels_resets_missing_active_label(self, session, labels):
        session.set_labels(labels[1:])

        assert session.ui_state.active_label_id == "dog"
        assert session.tags.labels == labels[1:]


class TestTagManagement:
    """Tests for tag CRUD keeping the session labels in sync."""

    @pytest.fixture
    def tag_session(self, qapp, images, labels):
        async def create(name, color=None):
            return Label(id=f"new-{name}", name=name, color=color or "#999999", class_id=2)

        async def delete(label_id):
            return None

        async def update(label_id, updates):
            return Label(id=label_id, name=updates["name"], color="#ff0000", class_id=0)

        tags = TagManager(labels, create=create, delete=delete, update=update)
        return AnnotationSession(images, labels, tag_manager=tags)

    def test_created_tag_is_usable(self, tag_session):
        bird = asyncio.run(tag_session.create_tag("bird"))

        assert [label.id for label in tag_session.labels] == ["cat", "dog", "new-bird"]
        assert tag_session.dispatcher.labels == tag_session.labels
        tag_session.ui_state.set_active_label(bird.id)
        tag_session.commit_box(BoundingBox(0, 0, 50, 50))
        assert tag_session.export_all()[0].yolo_txt == "2 0.250000 0.250000 0.500000 0.500000"

    def test_deleted_tag_leaves_labels(self, tag_session):
        asyncio.run(tag_session.delete_tag("cat"))

        assert [label.id for label in tag_session.labels] == ["dog"]
        assert tag_session.dispatcher.labels == tag_session.labels
        assert tag_session.ui_state.active_label_id == "dog"

    def test_updated_tag_replaces_label(self, tag_session):
        asyncio.run(tag_session.update_tag("cat", {"name": "Kitten"}))

        assert tag_session.labels[0].name == "Kitten"
        assert tag_session.dispatcher.labels[0].name == "Kitten"

    def test_failed_create_keeps_labels(self, qapp, images, labels):
        async def create(name, color=None):
            raise ConnectionError("backend down")

        session = AnnotationSession(images, labels, tag_manager=TagManager(labels, create=create))

        with pytest.raises(ConnectionError):
            asyncio.run(session.create_tag("bird"))
        assert session.labels == labels


class TestImportExport:
    """Tests for YOLO import and export through the session."""

    def test_import_replaces_annotations(self, session):
        session.commit_box(BoundingBox(0, 0, 10, 10))

        imported = session.import_yolo("img1", "1 0.5 0.5 0.5 0.5\n")

        assert [a.label_id for a in session.current_annotations()] == ["dog"]
        assert imported[0].box == BoundingBox(25, 25, 50, 50)

    def test_import_is_undoable(self, session):
        original = session.commit_box(BoundingBox(0, 0, 10, 10))
        session.import_yolo("img1", "1 0.5 0.5 0.5 0.5")

        session.store.undo()

        assert session.current_annotations() == [original]

    def test_import_uses_image_size(self, session):
        imported = session.import_yolo("img2", "1 0.5 0.5 0.5 0.5")

        assert imported[0].box == BoundingBox(50, 25, 100, 50)

    def test_import_classification(self, session):
        imported = session.import_yolo("img1", "0\n1\n0\n", "classification")

        assert [a.label_id for a in imported] == ["cat", "dog"]
        assert all(a.type == AnnotationType.CLASSIFICATION for a in imported)

    def test_import_unknown_format(self, session):
        with pytest.raises(ValueError):
            session.import_yolo("img1", "0 0.5 0.5 1 1", "coco")

    def test_import_unknown_image(self, session):
        with pytest.raises(KeyError):
            session.import_yolo("missing", "0 0.5 0.5 1 1")

    def test_export_all_uses_configured_format(self, qapp, images, labels):
        session = AnnotationSession(images, labels, AppConfig(yolo_format="classification"))
        session.toggle_classification("dog")

        exported = session.export_all()

        assert exported[0].yolo_txt == "1"
        assert exported[0].format == "classification"

    def test_to_dict(self, session):
        session.commit_box(BoundingBox(0, 0, 10, 10))

        data = session.to_dict()

        assert list(data["annotations"]) == ["img1"]
        assert data["favoriteLabelIds"] == []
