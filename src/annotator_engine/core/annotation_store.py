"""Annotation store with snapshot-based undo/redo."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from PyQt6.QtCore import QObject, pyqtSignal

from .models import Annotation, AnnotationCollection

logger = logging.getLogger(__name__)

MAX_HISTORY = 50


@dataclass(frozen=True)
class AnnotationState:
    """
    Immutable store state.

    Each history entry is a full snapshot of the annotation collection.
    Collections are never mutated in place, so snapshots can share the
    per-image tuples.
    """

    annotations: AnnotationCollection = field(default_factory=dict)
    undo_stack: Tuple[AnnotationCollection, ...] = ()
    redo_stack: Tuple[AnnotationCollection, ...] = ()


def _freeze(annotations: Mapping[str, Sequence[Annotation]]) -> AnnotationCollection:
    return {image_id: tuple(items) for image_id, items in annotations.items()}


def _commit(
    state: AnnotationState,
    annotations: AnnotationCollection,
    max_history: int
) -> AnnotationState:
    """Record the current collection in history and switch to a new one."""
    kept = state.undo_stack[-(max_history - 1):] if max_history > 1 else ()
    return AnnotationState(
        annotations=annotations,
        undo_stack=(*kept, state.annotations),
        redo_stack=(),
    )


def create_state(initial: Optional[Mapping[str, Sequence[Annotation]]] = None) -> AnnotationState:
    """Create a state with optional initial annotations and empty history."""
    return AnnotationState(annotations=_freeze(initial or {}))


def get_annotations(state: AnnotationState, image_id: str) -> Tuple[Annotation, ...]:
    """Annotations for an image; empty for unknown images."""
    return state.annotations.get(image_id, ())


def add_annotation(
    state: AnnotationState,
    annotation: Annotation,
    max_history: int = MAX_HISTORY
) -> AnnotationState:
    """Append an annotation to its image."""
    current = state.annotations.get(annotation.image_id, ())
    annotations = {**state.annotations, annotation.image_id: (*current, annotation)}
    return _commit(state, annotations, max_history)


def update_annotation(
    state: AnnotationState,
    annotation_id: str,
    image_id: str,
    updates: Mapping[str, Any],
    max_history: int = MAX_HISTORY
) -> AnnotationState:
    """
    Merge field updates into one annotation of one image.

    Only the given image is searched. When no annotation matches, the
    state is returned unchanged and no history entry is recorded.
    """
    current = state.annotations.get(image_id, ())
    if not any(a.id == annotation_id for a in current):
        return state

    updated = tuple(
        dataclasses.replace(a, **updates) if a.id == annotation_id else a
        for a in current
    )
    annotations = {**state.annotations, image_id: updated}
    return _commit(state, annotations, max_history)


def remove_annotation(
    state: AnnotationState,
    annotation_id: str,
    image_id: str,
    max_history: int = MAX_HISTORY
) -> AnnotationState:
    """Remove an annotation from one image."""
    current = state.annotations.get(image_id, ())
    annotations = {
        **state.annotations,
        image_id: tuple(a for a in current if a.id != annotation_id),
    }
    return _commit(state, annotations, max_history)


def set_annotations(
    state: AnnotationState,
    image_id: str,
    annotations: Sequence[Annotation],
    max_history: int = MAX_HISTORY
) -> AnnotationState:
    """Replace every annotation of one image."""
    collection = {**state.annotations, image_id: tuple(annotations)}
    return _commit(state, collection, max_history)


def load_annotations(
    state: AnnotationState,
    annotations: Mapping[str, Sequence[Annotation]]
) -> AnnotationState:
    """Replace the whole collection and clear undo and redo history."""
    return AnnotationState(annotations=_freeze(annotations))


def undo(state: AnnotationState) -> AnnotationState:
    """Restore the latest snapshot. Returns ``state`` itself when there is none."""
    if not state.undo_stack:
        return state
    return AnnotationState(
        annotations=state.undo_stack[-1],
        undo_stack=state.undo_stack[:-1],
        redo_stack=(*state.redo_stack, state.annotations),
    )


def redo(state: AnnotationState) -> AnnotationState:
    """Re-apply the latest undone snapshot. Returns ``state`` itself when there is none."""
    if not state.redo_stack:
        return state
    return AnnotationState(
        annotations=state.redo_stack[-1],
        undo_stack=(*state.undo_stack, state.annotations),
        redo_stack=state.redo_stack[:-1],
    )


class AnnotationStore(QObject):
    """
    Owns the annotation state for one annotator instance.

    Applies transitions in call order and emits signals so views can
    refresh and undo/redo actions can update their enabled state.
    """

    state_changed = pyqtSignal()  # Emitted after every effective transition
    annotations_changed = pyqtSignal(str)  # Image ID, or "" when every image may have changed

    def __init__(
        self,
        initial: Optional[Mapping[str, Sequence[Annotation]]] = None,
        max_history: int = MAX_HISTORY
    ) -> None:
        """
        Initialize the store.

        Args:
            initial: Initial annotations per image
            max_history: Maximum number of undo snapshots to keep
        """
        super().__init__()
        self._state = create_state(initial)
        self._max_history = max(1, max_history)

    def _apply(self, new_state: AnnotationState, image_id: str, description: str) -> None:
        if new_state is self._state:
            return
        self._state = new_state
        logger.debug(f"{description} (undo: {self.undo_count}, redo: {self.redo_count})")
        self.annotations_changed.emit(image_id)
        self.state_changed.emit()

    @property
    def state(self) -> AnnotationState:
        """Current immutable state."""
        return self._state

    @property
    def annotations(self) -> AnnotationCollection:
        """The current collection; do not mutate."""
        return self._state.annotations

    def get_annotations(self, image_id: str) -> List[Annotation]:
        """Get a copy of the annotations of an image."""
        return list(get_annotations(self._state, image_id))

    def find_annotation(self, annotation_id: str) -> Optional[Annotation]:
        """Find an annotation by ID across all images."""
        for items in self._state.annotations.values():
            for annotation in items:
                if annotation.id == annotation_id:
                    return annotation
        return None

    def add_annotation(self, annotation: Annotation) -> None:
        self._apply(
            add_annotation(self._state, annotation, self._max_history),
            annotation.image_id,
            f"Added annotation {annotation.id}",
        )

    def update_annotation(self, annotation_id: str, image_id: str, updates: Mapping[str, Any]) -> None:
        """
        Update fields of an annotation.

        Args:
            annotation_id: Annotation to update
            image_id: Image the annotation belongs to
            updates: Field names (``label_id``, ``box``, ``polygon`` ...) and values
        """
        self._apply(
            update_annotation(self._state, annotation_id, image_id, updates, self._max_history),
            image_id,
            f"Updated annotation {annotation_id}",
        )

    def remove_annotation(self, annotation_id: str, image_id: str) -> None:
        self._apply(
            remove_annotation(self._state, annotation_id, image_id, self._max_history),
            image_id,
            f"Removed annotation {annotation_id}",
        )

    def set_annotations(self, image_id: str, annotations: Sequence[Annotation]) -> None:
        self._apply(
            set_annotations(self._state, image_id, annotations, self._max_history),
            image_id,
            f"Set {len(annotations)} annotations on {image_id}",
        )

    def load_annotations(self, annotations: Mapping[str, Sequence[Annotation]]) -> None:
        """Replace everything and reset history."""
        self._apply(load_annotations(self._state, annotations), "", "Loaded annotations")

    def undo(self) -> bool:
        """
        Undo the last change.

        Returns:
            True if a change was undone
        """
        previous = self._state
        self._apply(undo(previous), "", "Undone")
        return self._state is not previous

    def redo(self) -> bool:
        """
        Redo the last undone change.

        Returns:
            True if a change was redone
        """
        previous = self._state
        self._apply(redo(previous), "", "Redone")
        return self._state is not previous

    def can_undo(self) -> bool:
        """Check if undo is available."""
        return len(self._state.undo_stack) > 0

    def can_redo(self) -> bool:
        """Check if redo is available."""
        return len(self._state.redo_stack) > 0

    @property
    def undo_count(self) -> int:
        """Get the number of changes that can be undone."""
        return len(self._state.undo_stack)

    @property
    def redo_count(self) -> int:
        """Get the number of changes that can be redone."""
        return len(self._state.redo_stack)

    @property
    def max_history(self) -> int:
        return self._max_history

    def set_max_history(self, max_history: int) -> None:
        """
        Update the maximum history size.

        Args:
            max_history: New maximum number of snapshots to keep
        """
        self._max_history = max(1, max_history)

        if len(self._state.undo_stack) > self._max_history:
            self._state = dataclasses.replace(
                self._state,
                undo_stack=self._state.undo_stack[-self._max_history:],
            )
            self.state_changed.emit()

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        """Serialize the current collection with camelCase annotation keys."""
        return {
            image_id: [a.to_dict() for a in items]
            for image_id, items in self._state.annotations.items()
        }
