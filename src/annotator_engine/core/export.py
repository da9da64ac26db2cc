"""Bulk YOLO export of every annotated image."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .annotation_store import AnnotationStore
from .models import Annotation, ImageData, Label
from .yolo_format import YOLO_WRITERS, select_for_format

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExportData:
    """Exported YOLO text of one image."""

    image_id: str
    image_name: str
    yolo_txt: str
    annotations: List[Annotation] = field(default_factory=list)
    format: str = "auto"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imageId": self.image_id,
            "imageName": self.image_name,
            "yoloTxt": self.yolo_txt,
            "annotations": [a.to_dict() for a in self.annotations],
            "format": self.format,
        }


def export_all(
    images: Sequence[ImageData],
    store: AnnotationStore,
    labels: Sequence[Label],
    yolo_format: str = "auto"
) -> List[ExportData]:
    """
    Export the annotations of every image.

    Spatial formats leave out classification annotations; the
    classification format exports only those. Images with nothing to
    export are omitted. Unknown image sizes are treated as 1x1.

    Args:
        images: Images in export order
        store: Store holding the annotations
        labels: Labels used to resolve class IDs
        yolo_format: auto, detection, segmentation, obb or classification

    Returns:
        One entry per exported image
    """
    writer = YOLO_WRITERS.get(yolo_format)
    if writer is None:
        raise ValueError(f"Unknown export format: {yolo_format}")

    exported = []
    for image in images:
        annotations = select_for_format(store.get_annotations(image.id), yolo_format)
        if not annotations:
            continue

        width = image.natural_width if image.natural_width is not None else 1
        height = image.natural_height if image.natural_height is not None else 1
        exported.append(ExportData(
            image_id=image.id,
            image_name=image.name,
            yolo_txt=writer(annotations, labels, width, height),
            annotations=annotations,
            format=yolo_format,
        ))

    logger.info(f"Exported {len(exported)} of {len(images)} images as {yolo_format}")
    return exported
