"""Keyboard shortcut table and dispatch to store and view actions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QKeyEvent, QKeySequence

from .annotation_store import AnnotationStore
from .models import Label
from .ui_state import Tool, UIState

logger = logging.getLogger(__name__)

DEFAULT_SHORTCUTS: Dict[str, str] = {
    "tool.draw": "d",
    "tool.select": "v",
    "tool.polygon": "p",
    "tool.pan": "h",
    "annotation.delete": "Delete",
    "history.undo": "ctrl+z",
    "history.redo": "ctrl+shift+z",
    "image.next": "ArrowRight",
    "image.prev": "ArrowLeft",
    "zoom.in": "ctrl+=",
    "zoom.out": "ctrl+-",
    "label.quick": "1-9",
    "export": "ctrl+s",
    "view.lock": "l",
    "image.confirm": "Enter",
}

QUICK_LABEL_KEYS = "123456789"

# Qt keys whose DOM-style names differ from their text
_QT_KEY_NAMES = {
    Qt.Key.Key_Left: "ArrowLeft",
    Qt.Key.Key_Right: "ArrowRight",
    Qt.Key.Key_Up: "ArrowUp",
    Qt.Key.Key_Down: "ArrowDown",
    Qt.Key.Key_Delete: "Delete",
    Qt.Key.Key_Backspace: "Backspace",
    Qt.Key.Key_Escape: "Escape",
    Qt.Key.Key_Return: "Enter",
    Qt.Key.Key_Enter: "Enter",
    Qt.Key.Key_Tab: "Tab",
    Qt.Key.Key_Space: " ",
    Qt.Key.Key_Home: "Home",
    Qt.Key.Key_End: "End",
}

_MODIFIER_KEYS = {
    Qt.Key.Key_Control.value: "Control",
    Qt.Key.Key_Shift.value: "Shift",
    Qt.Key.Key_Alt.value: "Alt",
    Qt.Key.Key_Meta.value: "Meta",
}


@dataclass(frozen=True)
class KeyEvent:
    """
    A key press, independent of the toolkit that produced it.

    ``key`` uses DOM names ("z", "Enter", "ArrowRight"); ``code`` is the
    physical key ("KeyZ") when known.
    """

    key: str
    code: str = ""
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False

    @classmethod
    def from_qt(cls, event: QKeyEvent) -> KeyEvent:
        """Convert a Qt key event."""
        key = event.key()
        modifiers = event.modifiers()

        code = ""
        if Qt.Key.Key_A.value <= key <= Qt.Key.Key_Z.value:
            name = chr(key).lower()
            code = f"Key{chr(key)}"
        elif Qt.Key.Key_0.value <= key <= Qt.Key.Key_9.value:
            name = chr(key)
            code = f"Digit{chr(key)}"
        elif key in _MODIFIER_KEYS:
            name = _MODIFIER_KEYS[key]
        else:
            try:
                name = _QT_KEY_NAMES.get(Qt.Key(key)) or ""
            except ValueError:
                name = ""
            if not name:
                text = event.text()
                name = text if text and text.isprintable() else QKeySequence(key).toString()

        return cls(
            key=name,
            code=code,
            ctrl=bool(modifiers & Qt.KeyboardModifier.ControlModifier),
            shift=bool(modifiers & Qt.KeyboardModifier.ShiftModifier),
            alt=bool(modifiers & Qt.KeyboardModifier.AltModifier),
            meta=bool(modifiers & Qt.KeyboardModifier.MetaModifier),
        )


def matches_shortcut(event: KeyEvent, shortcut: str) -> bool:
    """
    Check if a key event matches a chord such as ``"ctrl+shift+z"``.

    ``ctrl`` in a chord is satisfied by either Control or Meta so chords
    work with the primary modifier on every platform. Control, Meta or
    Shift held without being named in the chord prevent a match.
    """
    parts = shortcut.lower().split("+")
    key = parts[-1]
    need_ctrl = "ctrl" in parts
    need_shift = "shift" in parts
    need_alt = "alt" in parts
    need_meta = "meta" in parts

    ctrl_or_meta = event.ctrl or event.meta

    if need_ctrl and not ctrl_or_meta:
        return False
    if need_shift and not event.shift:
        return False
    if need_alt and not event.alt:
        return False
    if need_meta and not event.meta:
        return False
    if not (need_ctrl or need_meta) and ctrl_or_meta and key not in ("ctrl", "meta"):
        return False
    if not need_shift and event.shift and key != "shift":
        return False

    return event.key.lower() == key or event.code.lower() == f"key{key}"


def quick_label_id(
    index: int,
    favorite_label_ids: Sequence[str],
    labels: Sequence[Label]
) -> Optional[str]:
    """
    Resolve a zero-based quick-select index to a label ID.

    When any favorites exist the index refers to the favorites only;
    otherwise it refers to the full label list.
    """
    if favorite_label_ids:
        return favorite_label_ids[index] if 0 <= index < len(favorite_label_ids) else None
    return labels[index].id if 0 <= index < len(labels) else None


class ShortcutDispatcher:
    """
    Maps key events to annotation and view actions.

    Handlers are tried in a fixed order and the first match wins. While
    the view is locked, actions that would change annotations are ignored.
    In classify mode the drawing tools are disabled and the number keys
    (plus any custom label bindings) toggle classification labels.
    """

    def __init__(
        self,
        store: AnnotationStore,
        ui_state: UIState,
        labels: Optional[Sequence[Label]] = None,
        shortcuts: Optional[Mapping[str, str]] = None,
        image_count: int = 0,
        zoom_step: float = 1.2,
        classify_mode: bool = False,
        label_key_bindings: Optional[Mapping[str, str]] = None,
        on_export: Optional[Callable[[], None]] = None,
        on_toggle_classification: Optional[Callable[[str], None]] = None
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            store: Annotation store receiving delete/undo/redo
            ui_state: View state receiving tool, image and zoom changes
            labels: Label list used for quick select without favorites
            shortcuts: Overrides for DEFAULT_SHORTCUTS
            image_count: Number of images, bounds image navigation
            zoom_step: Multiplier for zoom in/out
            classify_mode: Whether the annotator classifies whole images
            label_key_bindings: Label ID to key, used in classify mode
            on_export: Called for the export shortcut
            on_toggle_classification: Called with a label ID in classify mode
        """
        self.store = store
        self.ui_state = ui_state
        self.labels: List[Label] = list(labels or [])
        self.shortcuts: Dict[str, str] = {**DEFAULT_SHORTCUTS, **(shortcuts or {})}
        self.image_count = image_count
        self.zoom_step = zoom_step
        self.classify_mode = classify_mode
        self.on_export = on_export
        self.on_toggle_classification = on_toggle_classification
        self._key_to_label_id: Dict[str, str] = {}
        self.set_label_key_bindings(label_key_bindings or {})

    def set_label_key_bindings(self, bindings: Mapping[str, str]) -> None:
        """Set the label ID to key bindings used in classify mode."""
        self._key_to_label_id = {key.lower(): label_id for label_id, key in bindings.items()}

    def _matches(self, event: KeyEvent, action: str) -> bool:
        return matches_shortcut(event, self.shortcuts[action])

    def handle(self, event: KeyEvent) -> Optional[str]:
        """
        Apply the action bound to a key event.

        Returns:
            The name of the action that was applied, or None when the
            event should be left to the host
        """
        action = self._dispatch(event)
        if action:
            logger.debug(f"Shortcut {event.key!r} -> {action}")
        return action

    def _dispatch(self, event: KeyEvent) -> Optional[str]:
        ui = self.ui_state
        locked = ui.locked

        if self._matches(event, "view.lock"):
            ui.set_locked(not ui.locked)
            return "view.lock"

        if self._matches(event, "image.confirm"):
            self._next_image()
            return "image.confirm"

        if not self.classify_mode:
            if self._matches(event, "tool.draw"):
                if locked:
                    return None
                ui.set_tool(Tool.DRAW)
                return "tool.draw"
            if self._matches(event, "tool.polygon"):
                if locked:
                    return None
                ui.set_tool(Tool.POLYGON)
                return "tool.polygon"

        if self._matches(event, "tool.select"):
            ui.set_tool(Tool.SELECT)
            return "tool.select"
        if self._matches(event, "tool.pan"):
            ui.set_tool(Tool.PAN)
            return "tool.pan"
        if self._matches(event, "annotation.delete") or event.key == "Backspace":
            if locked or not ui.selected_annotation_id:
                return None
            return self._delete_selected()
        if self._matches(event, "history.undo"):
            if locked:
                return None
            self.store.undo()
            return "history.undo"
        if self._matches(event, "history.redo"):
            if locked:
                return None
            self.store.redo()
            return "history.redo"
        if self._matches(event, "image.next"):
            self._next_image()
            return "image.next"
        if self._matches(event, "image.prev"):
            if ui.current_image_index > 0:
                ui.set_current_image_index(ui.current_image_index - 1)
            return "image.prev"
        if self._matches(event, "zoom.in"):
            ui.set_zoom(ui.zoom * self.zoom_step)
            return "zoom.in"
        if self._matches(event, "zoom.out"):
            ui.set_zoom(ui.zoom / self.zoom_step)
            return "zoom.out"
        if self._matches(event, "export"):
            if self.on_export:
                self.on_export()
            return "export"

        if len(event.key) == 1 and event.key in QUICK_LABEL_KEYS and not event.ctrl and not event.meta:
            if locked:
                return None
            self._quick_label(int(event.key) - 1)
            return "label.quick"

        if self.classify_mode and self.on_toggle_classification and not event.ctrl and not event.meta:
            label_id = self._key_to_label_id.get(event.key.lower())
            if label_id and not locked:
                self.on_toggle_classification(label_id)
                return "label.toggle"

        return None

    def _next_image(self) -> None:
        ui = self.ui_state
        if ui.current_image_index < self.image_count - 1:
            ui.set_current_image_index(ui.current_image_index + 1)

    def _delete_selected(self) -> Optional[str]:
        ui = self.ui_state
        annotation = self.store.find_annotation(ui.selected_annotation_id)
        if annotation:
            self.store.remove_annotation(annotation.id, annotation.image_id)
        ui.set_selected_annotation(None)
        return "annotation.delete"

    def _quick_label(self, index: int) -> None:
        label_id = quick_label_id(index, self.ui_state.favorite_label_ids, self.labels)
        if label_id is None:
            return
        if self.classify_mode and self.on_toggle_classification:
            self.on_toggle_classification(label_id)
        else:
            self.ui_state.set_active_label(label_id)
