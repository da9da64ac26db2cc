"""YOLO annotation text format reading and writing."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .geometry import polygon_bounds
from .models import Annotation, AnnotationType, BoundingBox, Label, PolygonPoint

logger = logging.getLogger(__name__)

_SIX_PLACES = Decimal("0.000001")
# Wide enough to quantize any finite float exactly
_QUANTIZE_CONTEXT = Context(prec=400)
_LEADING_INT = re.compile(r"^[+-]?\d+")


class YoloFormat(str, Enum):
    """YOLO text line flavours."""

    DETECTION = "detection"
    SEGMENTATION = "segmentation"
    OBB = "obb"


@dataclass(frozen=True)
class YoloAnnotation:
    """Detection entry: normalized center and size."""

    class_id: int
    center_x: float
    center_y: float
    width: float
    height: float


@dataclass(frozen=True)
class YoloSegmentation:
    """Segmentation entry: normalized polygon vertices."""

    class_id: int
    points: Tuple[PolygonPoint, ...]


@dataclass(frozen=True)
class YoloOBB:
    """Oriented box entry: exactly four normalized corners."""

    class_id: int
    points: Tuple[PolygonPoint, PolygonPoint, PolygonPoint, PolygonPoint]


def format_float(value: float) -> str:
    """
    Format a coordinate with exactly six decimals.

    Rounds half up on the exact binary value so output matches other YOLO
    tooling byte for byte.
    """
    if value == 0:
        return "0.000000"
    if not math.isfinite(value):
        return "NaN" if math.isnan(value) else ("Infinity" if value > 0 else "-Infinity")
    return str(Decimal(value).quantize(_SIX_PLACES, rounding=ROUND_HALF_UP, context=_QUANTIZE_CONTEXT))


def _parse_class_id(token: str) -> Optional[int]:
    """Parse the leading integer of a token, ignoring any trailing text."""
    match = _LEADING_INT.match(token)
    return int(match.group()) if match else None


def _label_to_class_id(labels: Sequence[Label]) -> Dict[str, int]:
    mapping: Dict[str, int] = {}
    for label in labels:
        mapping.setdefault(label.id, label.class_id)
    return mapping


def _class_id_to_label_id(labels: Sequence[Label]) -> Dict[int, str]:
    mapping: Dict[int, str] = {}
    for label in labels:
        mapping.setdefault(label.class_id, label.id)
    return mapping


def _split_lines(txt: str) -> List[str]:
    """Non-blank lines; line indices in generated ids count only these."""
    return [line for line in txt.strip().split("\n") if line.strip()]


def _parse_points(
    tokens: Sequence[str],
    img_width: float,
    img_height: float
) -> Tuple[PolygonPoint, ...]:
    return tuple(
        PolygonPoint(float(tokens[j]) * img_width, float(tokens[j + 1]) * img_height)
        for j in range(0, len(tokens) - 1, 2)
    )


def _format_points(points: Sequence[PolygonPoint], img_width: float, img_height: float) -> str:
    return " ".join(
        f"{format_float(p.x / img_width)} {format_float(p.y / img_height)}"
        for p in points
    )


# === Detection ===

def to_yolo_annotation(
    box: BoundingBox,
    class_id: int,
    img_width: float,
    img_height: float
) -> YoloAnnotation:
    """
    Convert a pixel box to normalized center coordinates.

    Args:
        box: Pixel-space box
        class_id: Class ID to attach
        img_width: Image width in pixels
        img_height: Image height in pixels

    Returns:
        YoloAnnotation normalized to the image size
    """
    return YoloAnnotation(
        class_id=class_id,
        center_x=(box.x + box.width / 2) / img_width,
        center_y=(box.y + box.height / 2) / img_height,
        width=box.width / img_width,
        height=box.height / img_height,
    )


def from_yolo_annotation(
    yolo: YoloAnnotation,
    img_width: float,
    img_height: float
) -> Tuple[BoundingBox, int]:
    """
    Convert a normalized detection entry back to a pixel box.

    Returns:
        Tuple of (box, class_id)
    """
    width = yolo.width * img_width
    height = yolo.height * img_height
    box = BoundingBox(
        x=yolo.center_x * img_width - width / 2,
        y=yolo.center_y * img_height - height / 2,
        width=width,
        height=height,
    )
    return box, yolo.class_id


def _format_detection_line(yolo: YoloAnnotation) -> str:
    return (
        f"{yolo.class_id} {format_float(yolo.center_x)} {format_float(yolo.center_y)} "
        f"{format_float(yolo.width)} {format_float(yolo.height)}"
    )


def to_yolo_txt(
    annotations: Sequence[Annotation],
    labels: Sequence[Label],
    img_width: float,
    img_height: float
) -> str:
    """
    Serialize annotations to YOLO text, choosing the line format per annotation.

    Polygons become segmentation lines, OBBs with four points become OBB
    lines and everything else becomes a detection line. Annotations whose
    label is unknown are dropped.
    """
    class_ids = _label_to_class_id(labels)
    lines = []
    for annotation in annotations:
        class_id = class_ids.get(annotation.label_id)
        if class_id is None:
            continue

        annotation_type = annotation.effective_type
        if annotation_type == AnnotationType.POLYGON and annotation.polygon:
            lines.append(_format_polygon_line(class_id, annotation.polygon, img_width, img_height))
        elif (
            annotation_type == AnnotationType.OBB
            and annotation.polygon
            and len(annotation.polygon) == 4
        ):
            lines.append(_format_polygon_line(class_id, annotation.polygon, img_width, img_height))
        else:
            yolo = to_yolo_annotation(annotation.box, class_id, img_width, img_height)
            lines.append(_format_detection_line(yolo))
    return "\n".join(lines)


def parse_yolo_txt(
    txt: str,
    labels: Sequence[Label],
    img_width: float,
    img_height: float,
    image_id: str
) -> List[Annotation]:
    """
    Parse detection lines (``class cx cy w h``) into box annotations.

    Lines with fewer than five values, unknown class IDs or non-numeric
    values are skipped.
    """
    label_ids = _class_id_to_label_id(labels)
    results: List[Annotation] = []
    for i, line in enumerate(_split_lines(txt)):
        parts = line.split()
        if len(parts) < 5:
            continue
        annotation = _parse_detection(parts, label_ids, img_width, img_height, image_id, i)
        if annotation:
            results.append(annotation)
    return results


def _parse_detection(
    parts: Sequence[str],
    label_ids: Dict[int, str],
    img_width: float,
    img_height: float,
    image_id: str,
    index: int
) -> Optional[Annotation]:
    class_id = _parse_class_id(parts[0])
    label_id = label_ids.get(class_id) if class_id is not None else None
    if not label_id:
        return None

    try:
        yolo = YoloAnnotation(class_id, *(float(v) for v in parts[1:5]))
    except ValueError:
        logger.debug(f"Skipping malformed detection line {index}: {' '.join(parts)}")
        return None

    box, _ = from_yolo_annotation(yolo, img_width, img_height)
    return Annotation(
        id=f"imported-{image_id}-{index}",
        image_id=image_id,
        label_id=label_id,
        type=AnnotationType.BOX,
        box=box,
    )


# === Segmentation ===

def to_yolo_segmentation(
    polygon: Sequence[PolygonPoint],
    class_id: int,
    img_width: float,
    img_height: float
) -> YoloSegmentation:
    """Normalize polygon vertices by the image size."""
    return YoloSegmentation(
        class_id=class_id,
        points=tuple(PolygonPoint(p.x / img_width, p.y / img_height) for p in polygon),
    )


def from_yolo_segmentation(
    seg: YoloSegmentation,
    img_width: float,
    img_height: float
) -> Tuple[Tuple[PolygonPoint, ...], BoundingBox, int]:
    """
    Convert a normalized polygon back to pixels.

    Returns:
        Tuple of (polygon, bounding box, class_id)
    """
    polygon = tuple(PolygonPoint(p.x * img_width, p.y * img_height) for p in seg.points)
    return polygon, polygon_bounds(polygon), seg.class_id


def _format_polygon_line(
    class_id: int,
    points: Sequence[PolygonPoint],
    img_width: float,
    img_height: float
) -> str:
    return f"{class_id} {_format_points(points, img_width, img_height)}"


def to_yolo_segmentation_txt(
    annotations: Sequence[Annotation],
    labels: Sequence[Label],
    img_width: float,
    img_height: float
) -> str:
    """Serialize every annotation with at least three polygon points as a segmentation line."""
    class_ids = _label_to_class_id(labels)
    lines = []
    for annotation in annotations:
        class_id = class_ids.get(annotation.label_id)
        if class_id is None:
            continue
        if not annotation.polygon or len(annotation.polygon) < 3:
            continue
        lines.append(_format_polygon_line(class_id, annotation.polygon, img_width, img_height))
    return "\n".join(lines)


def parse_yolo_segmentation_txt(
    txt: str,
    labels: Sequence[Label],
    img_width: float,
    img_height: float,
    image_id: str
) -> List[Annotation]:
    """
    Parse segmentation lines (``class x1 y1 ... xn yn``) into polygon annotations.

    A line needs an odd number of values and at least three vertices.
    """
    label_ids = _class_id_to_label_id(labels)
    results: List[Annotation] = []
    for i, line in enumerate(_split_lines(txt)):
        parts = line.split()
        if len(parts) < 7 or len(parts) % 2 == 0:
            continue
        annotation = _parse_polygon(
            parts, label_ids, img_width, img_height,
            AnnotationType.POLYGON, f"imported-seg-{image_id}-{i}", image_id
        )
        if annotation:
            results.append(annotation)
    return results


def _parse_polygon(
    parts: Sequence[str],
    label_ids: Dict[int, str],
    img_width: float,
    img_height: float,
    annotation_type: AnnotationType,
    annotation_id: str,
    image_id: str
) -> Optional[Annotation]:
    class_id = _parse_class_id(parts[0])
    label_id = label_ids.get(class_id) if class_id is not None else None
    if not label_id:
        return None

    try:
        points = _parse_points(parts[1:], img_width, img_height)
    except ValueError:
        logger.debug(f"Skipping malformed {annotation_type.value} line: {' '.join(parts)}")
        return None

    return Annotation(
        id=annotation_id,
        image_id=image_id,
        label_id=label_id,
        type=annotation_type,
        box=polygon_bounds(points),
        polygon=points,
    )


# === Oriented bounding boxes ===

def to_yolo_obb(
    points: Sequence[PolygonPoint],
    class_id: int,
    img_width: float,
    img_height: float
) -> YoloOBB:
    """Normalize the four OBB corners by the image size."""
    if len(points) != 4:
        raise ValueError("An oriented bounding box needs exactly 4 points")
    normalized = tuple(PolygonPoint(p.x / img_width, p.y / img_height) for p in points)
    return YoloOBB(class_id=class_id, points=normalized)  # type: ignore[arg-type]


def from_yolo_obb(
    obb: YoloOBB,
    img_width: float,
    img_height: float
) -> Tuple[Tuple[PolygonPoint, ...], BoundingBox, int]:
    """
    Convert normalized OBB corners back to pixels.

    Returns:
        Tuple of (polygon, bounding box, class_id)
    """
    polygon = tuple(PolygonPoint(p.x * img_width, p.y * img_height) for p in obb.points)
    return polygon, polygon_bounds(polygon), obb.class_id


def to_yolo_obb_txt(
    annotations: Sequence[Annotation],
    labels: Sequence[Label],
    img_width: float,
    img_height: float
) -> str:
    """Serialize every annotation with exactly four polygon points as an OBB line."""
    class_ids = _label_to_class_id(labels)
    lines = []
    for annotation in annotations:
        class_id = class_ids.get(annotation.label_id)
        if class_id is None:
            continue
        if not annotation.polygon or len(annotation.polygon) != 4:
            continue
        lines.append(_format_polygon_line(class_id, annotation.polygon, img_width, img_height))
    return "\n".join(lines)


def parse_yolo_obb_txt(
    txt: str,
    labels: Sequence[Label],
    img_width: float,
    img_height: float,
    image_id: str
) -> List[Annotation]:
    """Parse OBB lines (exactly nine values) into OBB annotations."""
    label_ids = _class_id_to_label_id(labels)
    results: List[Annotation] = []
    for i, line in enumerate(_split_lines(txt)):
        parts = line.split()
        if len(parts) != 9:
            continue
        annotation = _parse_polygon(
            parts, label_ids, img_width, img_height,
            AnnotationType.OBB, f"imported-obb-{image_id}-{i}", image_id
        )
        if annotation:
            results.append(annotation)
    return results


# === Auto-detection ===

def detect_yolo_format(line: str) -> Optional[YoloFormat]:
    """
    Guess the format of a line from its number of values.

    5 values is detection, 9 is OBB and any larger odd count is
    segmentation. A four-vertex segmentation polygon also has 9 values and
    is reported as OBB; the text format carries nothing that tells them
    apart.
    """
    count = len(line.split())
    if count == 5:
        return YoloFormat.DETECTION
    if count == 9:
        return YoloFormat.OBB
    if count > 9 and count % 2 == 1:
        return YoloFormat.SEGMENTATION
    return None


def parse_yolo_auto_txt(
    txt: str,
    labels: Sequence[Label],
    img_width: float,
    img_height: float,
    image_id: str
) -> List[Annotation]:
    """Parse text that may mix detection, segmentation and OBB lines."""
    label_ids = _class_id_to_label_id(labels)
    results: List[Annotation] = []
    for i, line in enumerate(_split_lines(txt)):
        fmt = detect_yolo_format(line)
        if fmt is None:
            continue

        parts = line.split()
        if fmt == YoloFormat.DETECTION:
            annotation = _parse_detection(parts, label_ids, img_width, img_height, image_id, i)
        elif fmt == YoloFormat.OBB:
            annotation = _parse_polygon(
                parts, label_ids, img_width, img_height,
                AnnotationType.OBB, f"imported-obb-{image_id}-{i}", image_id
            )
        else:
            annotation = _parse_polygon(
                parts, label_ids, img_width, img_height,
                AnnotationType.POLYGON, f"imported-seg-{image_id}-{i}", image_id
            )
        if annotation:
            results.append(annotation)
    return results


# === Classification ===

def to_yolo_classification_txt(
    annotations: Sequence[Annotation],
    labels: Sequence[Label]
) -> str:
    """Write one class ID per line for each classification annotation."""
    class_ids = _label_to_class_id(labels)
    lines = []
    for annotation in annotations:
        if annotation.effective_type != AnnotationType.CLASSIFICATION:
            continue
        class_id = class_ids.get(annotation.label_id)
        if class_id is None:
            continue
        lines.append(str(class_id))
    return "\n".join(lines)


def parse_yolo_classification_txt(
    txt: str,
    labels: Sequence[Label],
    img_width: float,
    img_height: float,
    image_id: str
) -> List[Annotation]:
    """
    Parse one class ID per line into whole-image classification annotations.

    Repeated class IDs produce a single annotation.
    """
    label_ids = _class_id_to_label_id(labels)
    results: List[Annotation] = []
    seen = set()
    for i, line in enumerate(_split_lines(txt)):
        class_id = _parse_class_id(line.split()[0])
        label_id = label_ids.get(class_id) if class_id is not None else None
        if label_id is None or label_id in seen:
            continue
        seen.add(label_id)
        results.append(Annotation(
            id=f"imported-cls-{image_id}-{i}",
            image_id=image_id,
            label_id=label_id,
            box=BoundingBox(0, 0, img_width, img_height),
            type=AnnotationType.CLASSIFICATION,
        ))
    return results


# Parsers by configured format name
YOLO_PARSERS: Dict[str, Callable[..., List[Annotation]]] = {
    "auto": parse_yolo_auto_txt,
    YoloFormat.DETECTION.value: parse_yolo_txt,
    YoloFormat.SEGMENTATION.value: parse_yolo_segmentation_txt,
    YoloFormat.OBB.value: parse_yolo_obb_txt,
    "classification": parse_yolo_classification_txt,
}

def _write_classification(
    annotations: Sequence[Annotation],
    labels: Sequence[Label],
    img_width: float,
    img_height: float
) -> str:
    return to_yolo_classification_txt(annotations, labels)


# Writers by configured format name; auto picks the line format per annotation
YOLO_WRITERS: Dict[str, Callable[..., str]] = {
    "auto": to_yolo_txt,
    YoloFormat.DETECTION.value: to_yolo_txt,
    YoloFormat.SEGMENTATION.value: to_yolo_segmentation_txt,
    YoloFormat.OBB.value: to_yolo_obb_txt,
    "classification": _write_classification,
}


def select_for_format(annotations: Sequence[Annotation], fmt: str) -> List[Annotation]:
    """
    Annotations a format can carry.

    The classification format keeps only classification annotations;
    every other format leaves them out.
    """
    if fmt == "classification":
        return [a for a in annotations if a.effective_type == AnnotationType.CLASSIFICATION]
    return [a for a in annotations if a.effective_type != AnnotationType.CLASSIFICATION]


# === Files ===

class YOLOAnnotationReader:
    """
    Reader for YOLO format annotation files.

    Dispatches to the parser of the given format, or detects the format
    line by line when none is given.
    """

    def __init__(self, labels: Optional[Sequence[Label]] = None) -> None:
        """
        Initialize the reader.

        Args:
            labels: Labels used to resolve class IDs
        """
        self.labels: List[Label] = list(labels or [])

    def set_labels(self, labels: Sequence[Label]) -> None:
        """Update the label list."""
        self.labels = list(labels)

    def read(
        self,
        txt_path: Path,
        img_width: float,
        img_height: float,
        image_id: str,
        fmt: Optional[str] = None
    ) -> List[Annotation]:
        """
        Read annotations from a YOLO text file.

        Args:
            txt_path: Path to the annotation file
            img_width: Image width in pixels
            img_height: Image height in pixels
            image_id: Image the annotations belong to
            fmt: Format name (a YoloFormat, "classification" or "auto");
                None detects the format per line

        Returns:
            List of annotations; empty if the file is missing or unreadable

        Raises:
            ValueError: If the format name is unknown
        """
        parser = YOLO_PARSERS.get(fmt or "auto")
        if parser is None:
            raise ValueError(f"Unknown YOLO format: {fmt}")

        txt_path = Path(txt_path)
        if not txt_path.exists():
            logger.debug(f"Annotation file not found: {txt_path}")
            return []

        try:
            txt = txt_path.read_text()
        except OSError as e:
            logger.error(f"Error reading annotation file {txt_path}: {e}")
            return []

        annotations = parser(txt, self.labels, img_width, img_height, image_id)
        logger.info(f"Loaded {len(annotations)} annotations from {txt_path}")
        return annotations


class YOLOAnnotationWriter:
    """
    Writer for YOLO format annotation files.

    Writes annotations with normalized, six-decimal coordinates.
    """

    def __init__(self, labels: Optional[Sequence[Label]] = None) -> None:
        """
        Initialize the writer.

        Args:
            labels: Labels used to resolve class IDs
        """
        self.labels: List[Label] = list(labels or [])

    def set_labels(self, labels: Sequence[Label]) -> None:
        """Update the label list."""
        self.labels = list(labels)

    def write(
        self,
        txt_path: Path,
        annotations: Sequence[Annotation],
        img_width: float,
        img_height: float,
        fmt: Optional[str] = None
    ) -> bool:
        """
        Write annotations to a YOLO text file.

        Only the annotations the format can carry are written. An existing
        file is deleted when nothing would be written.

        Args:
            fmt: Format name (a YoloFormat, "classification" or "auto");
                None picks the line format per annotation

        Returns:
            True if write was successful

        Raises:
            ValueError: If the format name is unknown
        """
        fmt = fmt or "auto"
        writer = YOLO_WRITERS.get(fmt)
        if writer is None:
            raise ValueError(f"Unknown YOLO format: {fmt}")

        txt_path = Path(txt_path)
        annotations = select_for_format(annotations, fmt)
        txt = writer(annotations, self.labels, img_width, img_height)

        if not txt:
            if txt_path.exists():
                try:
                    txt_path.unlink()
                    logger.info(f"Deleted empty annotation file: {txt_path}")
                except OSError as e:
                    logger.error(f"Error deleting annotation file: {e}")
                    return False
            return True

        try:
            txt_path.write_text(txt + "\n")
            logger.info(f"Saved {len(annotations)} annotations to {txt_path}")
            return True
        except OSError as e:
            logger.error(f"Error writing annotation file {txt_path}: {e}")
            return False


def get_annotation_path(image_path: Path) -> Path:
    """
    Get the annotation file path for an image.

    Args:
        image_path: Path to the image file

    Returns:
        Path to the corresponding .txt file
    """
    return Path(image_path).with_suffix(".txt")


def has_annotation(image_path: Path) -> bool:
    """
    Check if an image has a YOLO annotation file with at least one usable line.

    Args:
        image_path: Path to the image file
    """
    txt_path = get_annotation_path(image_path)
    if not txt_path.exists():
        return False

    try:
        with open(txt_path, "r") as f:
            for line in f:
                parts = line.split()
                if not parts:
                    continue
                # A classification line is a lone class ID
                if _parse_class_id(parts[0]) is None:
                    continue
                if len(parts) == 1 or detect_yolo_format(line) is not None:
                    return True
        return False
    except OSError:
        return False
