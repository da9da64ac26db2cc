"""In-memory cache of decoded images keyed by source path or URL."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

from PyQt6.QtGui import QImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedImage:
    """A decoded image and its natural size."""

    image: QImage
    natural_width: int
    natural_height: int


def load_qimage(src: str) -> Optional[QImage]:
    """Decode an image file with Qt. Returns None if it cannot be read."""
    image = QImage(src)
    return None if image.isNull() else image


class ImageCache:
    """
    Cache of decoded images for one application instance.

    Successful loads are kept until evicted. Failures are not cached as
    images; the last error per source is recorded instead so a later
    ``load`` can retry.
    """

    def __init__(self, loader: Optional[Callable[[str], Optional[QImage]]] = None) -> None:
        """
        Initialize the cache.

        Args:
            loader: Decodes a source into a QImage, returning None on
                failure. Defaults to reading the file with QImage.
        """
        self._loader = loader or load_qimage
        self._images: Dict[str, LoadedImage] = {}
        self._errors: Dict[str, str] = {}
        self._lock = Lock()

    def get(self, src: str) -> Optional[LoadedImage]:
        """Get a cached image without loading it."""
        with self._lock:
            return self._images.get(src)

    def load(self, src: str) -> Optional[LoadedImage]:
        """
        Get an image, decoding and caching it on first use.

        Returns:
            The loaded image, or None if decoding failed
        """
        cached = self.get(src)
        if cached is not None:
            return cached

        try:
            image = self._loader(src)
        except OSError as e:
            logger.error(f"Failed to load image {src}: {e}")
            image = None

        with self._lock:
            if image is None:
                self._errors[src] = f"Failed to load image: {src}"
                logger.warning(self._errors[src])
                return None

            loaded = LoadedImage(image=image, natural_width=image.width(), natural_height=image.height())
            self._images[src] = loaded
            self._errors.pop(src, None)

        logger.debug(f"Cached image {src} ({loaded.natural_width}x{loaded.natural_height})")
        return loaded

    def error(self, src: str) -> Optional[str]:
        """The last load error for a source, if any."""
        with self._lock:
            return self._errors.get(src)

    def evict(self, src: str) -> bool:
        """
        Drop a source from the cache.

        Returns:
            True if an image was cached for it
        """
        with self._lock:
            self._errors.pop(src, None)
            return self._images.pop(src, None) is not None

    def clear(self) -> int:
        """
        Drop every cached image and error.

        Returns:
            Number of images removed
        """
        with self._lock:
            removed = len(self._images)
            self._images.clear()
            self._errors.clear()
        logger.info(f"Image cache cleared: removed {removed} images")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._images)

    def __contains__(self, src: object) -> bool:
        with self._lock:
            return src in self._images
