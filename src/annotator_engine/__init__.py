"""
Annotator Engine - headless core of an image annotation tool for YOLO datasets.

Built on PyQt6 value types and signals. Provides box, polygon, OBB and
classification annotations with undo/redo, keyboard shortcuts and YOLO
import/export.
"""

__version__ = "1.0.0"
__author__ = "Annotator Engine Team"
