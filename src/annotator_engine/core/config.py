"""Configuration management for the annotator engine."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from PyQt6.QtGui import QColor

from .models import Label

logger = logging.getLogger(__name__)

# Default configuration file path
DEFAULT_CONFIG_PATH = Path("config.yaml")

ANNOTATION_MODES = ("box", "classify")
YOLO_FORMATS = ("auto", "detection", "segmentation", "obb", "classification")


@dataclass
class AppConfig:
    """
    Annotator configuration settings.

    Holds editing limits, tag search behaviour and per-user key bindings.
    """

    max_history_entries: int = 50  # Maximum undo snapshots
    handle_size: int = 8  # Resize handle hit area in pixels
    min_box_size: float = 2  # Boxes must be larger than this on both axes
    polygon_close_threshold: float = 12  # Screen pixels from the first point that close a polygon
    zoom_step: float = 1.2
    tag_search_limit: int = 20
    tag_search_debounce_ms: int = 300
    yolo_format: str = "auto"  # auto, detection, segmentation, obb, classification
    annotation_mode: str = "box"  # box or classify
    keyboard_shortcuts: Dict[str, str] = field(default_factory=dict)  # Action name -> chord overrides
    label_key_bindings: Dict[str, str] = field(default_factory=dict)  # Label ID -> key, classify mode
    favorite_label_ids: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.annotation_mode not in ANNOTATION_MODES:
            raise ValueError(f"Unknown annotation mode: {self.annotation_mode}")
        if self.yolo_format not in YOLO_FORMATS:
            raise ValueError(f"Unknown YOLO format: {self.yolo_format}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            "maxHistoryEntries": self.max_history_entries,
            "handleSize": self.handle_size,
            "minBoxSize": self.min_box_size,
            "polygonCloseThreshold": self.polygon_close_threshold,
            "zoomStep": self.zoom_step,
            "tagSearchLimit": self.tag_search_limit,
            "tagSearchDebounceMs": self.tag_search_debounce_ms,
            "yoloFormat": self.yolo_format,
            "annotationMode": self.annotation_mode,
            "keyboardShortcuts": dict(self.keyboard_shortcuts),
            "labelKeyBindings": dict(self.label_key_bindings),
            "favoriteLabelIds": list(self.favorite_label_ids),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AppConfig:
        """Create config from dictionary."""
        return cls(
            max_history_entries=data.get("maxHistoryEntries", 50),
            handle_size=data.get("handleSize", 8),
            min_box_size=data.get("minBoxSize", 2),
            polygon_close_threshold=data.get("polygonCloseThreshold", 12),
            zoom_step=data.get("zoomStep", 1.2),
            tag_search_limit=data.get("tagSearchLimit", 20),
            tag_search_debounce_ms=data.get("tagSearchDebounceMs", 300),
            yolo_format=data.get("yoloFormat", "auto"),
            annotation_mode=data.get("annotationMode", "box"),
            keyboard_shortcuts=dict(data.get("keyboardShortcuts") or {}),
            label_key_bindings=dict(data.get("labelKeyBindings") or {}),
            favorite_label_ids=list(data.get("favoriteLabelIds") or []),
        )


def label_color(index: int) -> str:
    """Distinct hex colour for the label at ``index``, spread around the hue wheel."""
    return QColor.fromHsv((index * 137) % 360, 200, 230).name()


@dataclass
class YOLODataConfig:
    """
    YOLO dataset configuration (data.yaml).

    Stores paths and class information for YOLO training.
    """

    train_path: str = "/path/to/train/images"
    val_path: str = "/path/to/valid/images"
    test_path: str = "/path/to/test/images"
    num_classes: int = 0
    class_names: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "train": self.train_path,
            "val": self.val_path,
            "test": self.test_path,
            "nc": self.num_classes,
            "names": self.class_names,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> YOLODataConfig:
        """Create config from dictionary."""
        names = data.get("names", [])
        if isinstance(names, str):
            names = [n.strip() for n in names.split(",")]
        elif isinstance(names, dict):
            # Ultralytics style {0: name, 1: name}
            names = [names[k] for k in sorted(names, key=int)]

        return cls(
            train_path=data.get("train", "/path/to/train/images"),
            val_path=data.get("val", "/path/to/valid/images"),
            test_path=data.get("test", "/path/to/test/images"),
            num_classes=data.get("nc", len(names)),
            class_names=list(names),
        )


class ConfigManager:
    """
    Manager for loading and saving annotator configuration.

    Handles YAML serialization and provides a clean interface
    for configuration access.
    """

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> AppConfig:
        """
        Load configuration from file.

        Returns:
            AppConfig instance with loaded or default values
        """
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            return AppConfig()

        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {self.config_path}")
            return AppConfig.from_dict(data)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing config file: {e}")
            return AppConfig()
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Error loading config: {e}")
            return AppConfig()

    def save(self, config: Optional[AppConfig] = None) -> bool:
        """
        Save configuration to file.

        Args:
            config: Configuration to save, or use current config

        Returns:
            True if save was successful
        """
        if config is not None:
            self._config = config

        if self._config is None:
            logger.warning("No configuration to save")
            return False

        try:
            with open(self.config_path, "w") as f:
                yaml.safe_dump(self._config.to_dict(), f, default_flow_style=False)
            logger.info(f"Saved configuration to {self.config_path}")
            return True
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error saving config: {e}")
            return False

    def update(self, **kwargs: Any) -> None:
        """
        Update configuration with new values.

        Args:
            **kwargs: Key-value pairs to update
        """
        config = self.config
        for key, value in kwargs.items():
            if hasattr(config, key):
                setattr(config, key, value)
            else:
                logger.warning(f"Unknown config key: {key}")
        self.save()


class YOLODataConfigManager:
    """Manager for YOLO data.yaml configuration files."""

    def __init__(self, directory: Path) -> None:
        """
        Initialize with a directory path.

        Args:
            directory: Directory containing data.yaml
        """
        self.directory = Path(directory)
        self.config_path = self.directory / "data.yaml"
        self._config: Optional[YOLODataConfig] = None

    @property
    def config(self) -> YOLODataConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> YOLODataConfig:
        """Load YOLO data configuration from file."""
        if not self.config_path.exists():
            logger.info(f"data.yaml not found at {self.config_path}, using defaults")
            return YOLODataConfig()

        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            return YOLODataConfig.from_dict(data)
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.error(f"Error loading data.yaml: {e}")
            return YOLODataConfig()

    def save(self, config: Optional[YOLODataConfig] = None) -> bool:
        """Save YOLO data configuration to file."""
        if config is not None:
            self._config = config

        if self._config is None:
            return False

        try:
            with open(self.config_path, "w") as f:
                f.write("# Dataset configuration for YOLO training.\n")
                yaml.safe_dump(self._config.to_dict(), f, default_flow_style=False, sort_keys=False)
            return True
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error saving data.yaml: {e}")
            return False

    def get_labels(self) -> List[Label]:
        """
        Build labels from the class names.

        Label IDs are ``class-<index>`` and class IDs follow the file order.
        """
        return [
            Label(id=f"class-{i}", name=name, color=label_color(i), class_id=i)
            for i, name in enumerate(self.config.class_names)
        ]

    def update_labels(self, labels: Sequence[Label]) -> None:
        """
        Update class names from a label list.

        Args:
            labels: Labels to store, ordered by class ID
        """
        ordered = sorted(labels, key=lambda label: label.class_id)
        self._config = YOLODataConfig(
            train_path=self.config.train_path,
            val_path=self.config.val_path,
            test_path=self.config.test_path,
            num_classes=len(ordered),
            class_names=[label.name for label in ordered],
        )
        self.save()
