"""Core business logic modules for the annotator engine."""

from .models import Annotation, AnnotationType, BoundingBox, ImageData, Label, PolygonPoint
from .annotation_store import AnnotationState, AnnotationStore
from .config import AppConfig, ConfigManager
from .export import ExportData, export_all
from .session import AnnotationSession
from .shortcuts import DEFAULT_SHORTCUTS, KeyEvent, ShortcutDispatcher, matches_shortcut
from .yolo_format import YOLOAnnotationReader, YOLOAnnotationWriter

__all__ = [
    "Annotation",
    "AnnotationType",
    "BoundingBox",
    "ImageData",
    "Label",
    "PolygonPoint",
    "AnnotationState",
    "AnnotationStore",
    "AppConfig",
    "ConfigManager",
    "ExportData",
    "export_all",
    "AnnotationSession",
    "DEFAULT_SHORTCUTS",
    "KeyEvent",
    "ShortcutDispatcher",
    "matches_shortcut",
    "YOLOAnnotationReader",
    "YOLOAnnotationWriter",
]
