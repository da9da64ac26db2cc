"""Pytest configuration and fixtures."""

import os
import pytest
import sys
from pathlib import Path

# Use an offscreen Qt platform so tests run without a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from annotator_engine.core.models import Annotation, BoundingBox, ImageData, Label


@pytest.fixture(scope="session")
def qapp():
    """Create a QApplication for tests that need it."""
    from PyQt6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])

    yield app


@pytest.fixture
def labels():
    """Two labels with class IDs 0 and 1."""
    return [
        Label(id="cat", name="Cat", color="#ff0000", class_id=0),
        Label(id="dog", name="Dog", color="#00ff00", class_id=1),
    ]


@pytest.fixture
def images():
    """Three images; the last one has no known size yet."""
    return [
        ImageData(id="img1", src="/data/img1.jpg", name="img1.jpg", natural_width=100, natural_height=100),
        ImageData(id="img2", src="/data/img2.jpg", name="img2.jpg", natural_width=200, natural_height=100),
        ImageData(id="img3", src="/data/img3.jpg", name="img3.jpg"),
    ]


@pytest.fixture
def make_annotation():
    """Factory for box annotations."""
    def _make(annotation_id="a1", image_id="img1", label_id="cat", box=(0, 0, 50, 50), **kwargs):
        return Annotation(
            id=annotation_id,
            image_id=image_id,
            label_id=label_id,
            box=BoundingBox(*box),
            **kwargs,
        )
    return _make


@pytest.fixture
def sample_annotation_file(tmp_path):
    """Create a sample YOLO annotation file."""
    txt_path = tmp_path / "sample.txt"
    txt_path.write_text(
        "0 0.5 0.5 0.2 0.1\n"
        "1 0.3 0.3 0.1 0.15\n"
    )
    return txt_path


@pytest.fixture
def sample_data_yaml(tmp_path):
    """Create a sample data.yaml file."""
    yaml_path = tmp_path / "data.yaml"
    yaml_path.write_text(
        "train: /path/to/train\n"
        "val: /path/to/val\n"
        "nc: 2\n"
        "names: ['cat', 'dog']\n"
    )
    return yaml_path
