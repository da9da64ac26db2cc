"""Application bootstrap for the annotator engine."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from PyQt6.QtGui import QGuiApplication

from .core.config import ConfigManager, DEFAULT_CONFIG_PATH, YOLODataConfigManager
from .core.image_cache import ImageCache
from .core.models import ImageData
from .core.session import AnnotationSession
from .core.yolo_format import YOLOAnnotationReader, get_annotation_path

logger = logging.getLogger(__name__)

# Supported image extensions
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".gif", ".webp"}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure root logging to stdout."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


def scan_images(directory: Path) -> List[ImageData]:
    """
    List the images of a directory, sorted by file name.

    Image IDs are the file names.
    """
    directory = Path(directory)
    return [
        ImageData(id=entry.name, src=str(entry), name=entry.name)
        for entry in sorted(directory.iterdir())
        if entry.is_file() and entry.suffix.lower() in IMAGE_EXTENSIONS
    ]


def create_session(
    directory: Path,
    config_path: Path = DEFAULT_CONFIG_PATH,
    image_cache: Optional[ImageCache] = None
) -> AnnotationSession:
    """
    Open a YOLO dataset directory.

    Labels come from ``data.yaml``; existing ``.txt`` annotation files are
    loaded as the initial annotations, with no undo history.

    Args:
        directory: Directory holding the images, their .txt files and data.yaml
        config_path: Annotator settings file
        image_cache: Cache used to read image sizes

    Returns:
        The session for the directory
    """
    directory = Path(directory)
    config = ConfigManager(config_path).config
    labels = YOLODataConfigManager(directory).get_labels()
    cache = image_cache if image_cache is not None else ImageCache()

    images = []
    initial = {}
    reader = YOLOAnnotationReader(labels)
    for image in scan_images(directory):
        loaded = cache.load(image.src)
        if loaded is None:
            images.append(image)
            continue
        image = ImageData(
            id=image.id,
            src=image.src,
            name=image.name,
            natural_width=loaded.natural_width,
            natural_height=loaded.natural_height,
        )
        images.append(image)
        annotations = reader.read(
            get_annotation_path(Path(image.src)),
            loaded.natural_width,
            loaded.natural_height,
            image.id,
            config.yolo_format,
        )
        if annotations:
            initial[image.id] = annotations

    logger.info(f"Opened {directory} with {len(images)} images and {len(labels)} labels")
    return AnnotationSession(images, labels, config=config, initial_annotations=initial, image_cache=cache)


def run(argv: Sequence[str]) -> int:
    """
    Open a dataset directory and print its YOLO export.

    Returns:
        Exit code
    """
    if len(argv) < 2:
        logger.error("Usage: annotator-engine <dataset-directory> [config.yaml]")
        return 2

    app = QGuiApplication(list(argv))
    app.setApplicationName("Annotator Engine")
    app.setApplicationVersion("1.0.0")

    config_path = Path(argv[2]) if len(argv) > 2 else DEFAULT_CONFIG_PATH
    try:
        session = create_session(Path(argv[1]), config_path)
    except OSError as e:
        logger.error(f"Cannot open dataset: {e}", exc_info=True)
        return 1

    for data in session.export_all():
        print(f"# {data.image_name}")
        print(data.yolo_txt)
    return 0


def main() -> None:
    """Main entry point for the application."""
    configure_logging()
    sys.exit(run(sys.argv))


if __name__ == "__main__":
    main()
