"""View state shared by the canvas, toolbar and keyboard shortcuts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

MAX_FAVORITES = 9
MIN_ZOOM = 0.1
MAX_ZOOM = 10.0


class Tool(str, Enum):
    """Active canvas tool."""

    DRAW = "draw"
    POLYGON = "polygon"
    SELECT = "select"
    PAN = "pan"


@dataclass
class UIState:
    """
    Mutable view state for one annotator instance.

    Favorites are an ordered list of at most nine label IDs used by the
    numeric quick-select shortcuts.
    """

    tool: Tool = Tool.DRAW
    active_label_id: Optional[str] = None
    selected_annotation_id: Optional[str] = None
    current_image_index: int = 0
    zoom: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0
    locked: bool = False
    show_data_preview: bool = False
    favorite_label_ids: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.tool = Tool(self.tool)
        self.favorite_label_ids = list(self.favorite_label_ids)[:MAX_FAVORITES]

    def set_tool(self, tool: Tool) -> None:
        self.tool = Tool(tool)

    def set_active_label(self, label_id: Optional[str]) -> None:
        self.active_label_id = label_id

    def set_selected_annotation(self, annotation_id: Optional[str]) -> None:
        self.selected_annotation_id = annotation_id

    def set_current_image_index(self, index: int) -> None:
        """Switch image; the selection belongs to the previous image and is cleared."""
        self.current_image_index = index
        self.selected_annotation_id = None

    def set_zoom(self, zoom: float) -> None:
        self.zoom = max(MIN_ZOOM, min(MAX_ZOOM, zoom))

    def set_pan(self, x: float, y: float) -> None:
        self.pan_x = x
        self.pan_y = y

    def reset_view(self) -> None:
        self.zoom = 1.0
        self.pan_x = 0.0
        self.pan_y = 0.0

    def set_locked(self, locked: bool) -> None:
        """Lock or unlock editing. Drawing tools fall back to select while locked."""
        self.locked = locked
        if locked and self.tool in (Tool.DRAW, Tool.POLYGON):
            self.tool = Tool.SELECT

    def set_favorite_label_ids(self, ids: Sequence[str]) -> None:
        self.favorite_label_ids = list(ids)[:MAX_FAVORITES]

    def add_favorite_label(self, label_id: str) -> bool:
        """
        Append a label to the favorites.

        Returns:
            False if the list is full or already contains the label
        """
        if len(self.favorite_label_ids) >= MAX_FAVORITES or label_id in self.favorite_label_ids:
            return False
        self.favorite_label_ids.append(label_id)
        return True

    def remove_favorite_label(self, label_id: str) -> None:
        self.favorite_label_ids = [fid for fid in self.favorite_label_ids if fid != label_id]
