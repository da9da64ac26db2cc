"""Data models for annotator engine annotations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from PyQt6.QtCore import QPointF, QRectF


class AnnotationType(str, Enum):
    """Type of annotation geometry."""

    BOX = "box"
    POLYGON = "polygon"
    OBB = "obb"
    CLASSIFICATION = "classification"


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned pixel-space rectangle."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def to_qrectf(self) -> QRectF:
        """Convert to a QRectF for painting code."""
        return QRectF(self.x, self.y, self.width, self.height)

    @classmethod
    def from_qrectf(cls, rect: QRectF) -> BoundingBox:
        return cls(rect.x(), rect.y(), rect.width(), rect.height())

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BoundingBox:
        return cls(
            x=float(data.get("x", 0)),
            y=float(data.get("y", 0)),
            width=float(data.get("width", 0)),
            height=float(data.get("height", 0)),
        )


@dataclass(frozen=True)
class PolygonPoint:
    """Pixel-space polygon vertex."""

    x: float
    y: float

    def to_qpointf(self) -> QPointF:
        return QPointF(self.x, self.y)

    @classmethod
    def from_qpointf(cls, point: QPointF) -> PolygonPoint:
        return cls(point.x(), point.y())

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> PolygonPoint:
        return cls(float(data.get("x", 0)), float(data.get("y", 0)))


@dataclass(frozen=True)
class Label:
    """
    A class label.

    ``id`` is the stable identity used for joins; ``class_id`` is only
    used by the exported/imported text format.
    """

    id: str
    name: str
    color: str
    class_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color, "classId": self.class_id}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Label:
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            color=data.get("color", "#999999"),
            class_id=int(data.get("classId", 0)),
        )


@dataclass(frozen=True)
class Annotation:
    """
    Data model for a single annotation on one image.

    ``box`` is always present. For polygon and OBB annotations it is the
    cached bound of ``polygon`` and must be supplied by the producer
    whenever the polygon changes.
    """

    id: str
    image_id: str
    label_id: str
    box: BoundingBox
    type: Optional[AnnotationType] = None
    polygon: Optional[Tuple[PolygonPoint, ...]] = None

    def __post_init__(self) -> None:
        """Coerce loose inputs (plain strings, lists) into value types."""
        if self.type is not None and not isinstance(self.type, AnnotationType):
            object.__setattr__(self, "type", AnnotationType(self.type))
        if self.polygon is not None and not isinstance(self.polygon, tuple):
            object.__setattr__(self, "polygon", tuple(self.polygon))

    @property
    def effective_type(self) -> AnnotationType:
        """The annotation type with the legacy default applied."""
        return resolve_type(self)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase dictionary used by hosts."""
        data: Dict[str, Any] = {
            "id": self.id,
            "imageId": self.image_id,
            "labelId": self.label_id,
            "box": self.box.to_dict(),
        }
        if self.type is not None:
            data["type"] = self.type.value
        if self.polygon is not None:
            data["polygon"] = [p.to_dict() for p in self.polygon]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Annotation:
        """Create an annotation from a camelCase dictionary."""
        polygon = data.get("polygon")
        return cls(
            id=str(data["id"]),
            image_id=str(data["imageId"]),
            label_id=str(data["labelId"]),
            box=BoundingBox.from_dict(data.get("box", {})),
            type=AnnotationType(data["type"]) if data.get("type") else None,
            polygon=tuple(PolygonPoint.from_dict(p) for p in polygon) if polygon is not None else None,
        )


def resolve_type(annotation: Annotation) -> AnnotationType:
    """
    Resolve the effective type of an annotation.

    Annotations created before typed geometry existed carry no type and
    are treated as boxes.
    """
    return annotation.type if annotation.type is not None else AnnotationType.BOX


def to_points(points: Iterable[Any]) -> Tuple[PolygonPoint, ...]:
    """Convert QPointF, (x, y) tuples or PolygonPoints into PolygonPoints."""
    result = []
    for p in points:
        if isinstance(p, PolygonPoint):
            result.append(p)
        elif isinstance(p, QPointF):
            result.append(PolygonPoint.from_qpointf(p))
        else:
            x, y = p
            result.append(PolygonPoint(float(x), float(y)))
    return tuple(result)


@dataclass(frozen=True)
class ImageData:
    """An image known to the host; natural size is known once loaded."""

    id: str
    src: str
    name: str
    natural_width: Optional[int] = None
    natural_height: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "src": self.src,
            "name": self.name,
            "naturalWidth": self.natural_width,
            "naturalHeight": self.natural_height,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> ImageData:
        return cls(
            id=str(data["id"]),
            src=data.get("src", ""),
            name=data.get("name", ""),
            natural_width=data.get("naturalWidth"),
            natural_height=data.get("naturalHeight"),
        )


AnnotationCollection = Dict[str, Tuple[Annotation, ...]]


