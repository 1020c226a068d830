"""Tunable thresholds for marker detection, rectification and fill classification."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple

from omr_types import ConfigError


@dataclass(frozen=True)
class ScanConfig:
    # Marker detection runs on a copy whose long side is at most this many
    # pixels (0 keeps full resolution)
    marker_working_size: int = 1000
    marker_blur_kernel: int = 5
    marker_block_size: int = 11
    marker_c: float = 1.5
    marker_epsilon: float = 0.02
    marker_min_area: float = 80.0
    marker_max_area: float = 8000.0
    marker_min_aspect: float = 0.7
    marker_max_aspect: float = 1.3
    marker_min_circularity: float = 0.6
    marker_max_circularity: float = 1.3
    marker_density_radius: int = 10
    marker_min_density: float = 0.25
    marker_merge_distance: float = 4.0

    # Rectification
    canonical_width: int = 595
    canonical_height: int = 842

    # Fill classification
    fill_blur_kernel: int = 7
    fill_blur_sigma: float = 2.0
    fill_block_size: int = 15
    fill_c: float = 4.0
    window_margin: float = 1.5
    fill_threshold: float = 0.52
    mark_min_aspect: float = 0.75
    mark_max_aspect: float = 1.3
    mark_min_area: int = 70
    mark_max_area: int = 450

    def __post_init__(self) -> None:
        for name in ("marker_blur_kernel", "marker_block_size", "fill_blur_kernel", "fill_block_size"):
            value = getattr(self, name)
            if value <= 0 or value % 2 == 0:
                raise ConfigError(f"{name} must be a positive odd number, got {value}")
        if self.marker_block_size < 3 or self.fill_block_size < 3:
            raise ConfigError("Adaptive threshold block sizes must be at least 3")
        if not 0 < self.fill_threshold <= 1:
            raise ConfigError(f"fill_threshold must be in (0, 1], got {self.fill_threshold}")
        if not 0 <= self.marker_min_density <= 1:
            raise ConfigError("marker_min_density must be in [0, 1]")
        if self.canonical_width <= 0 or self.canonical_height <= 0:
            raise ConfigError("Canonical size must be positive")
        if self.marker_working_size < 0:
            raise ConfigError("marker_working_size cannot be negative")
        if self.marker_density_radius <= 0:
            raise ConfigError("marker_density_radius must be positive")
        if self.window_margin < 0 or self.marker_merge_distance < 0:
            raise ConfigError("Margins and distances cannot be negative")

        bands = [
            ("marker_min_area", "marker_max_area"),
            ("marker_min_aspect", "marker_max_aspect"),
            ("marker_min_circularity", "marker_max_circularity"),
            ("mark_min_aspect", "mark_max_aspect"),
            ("mark_min_area", "mark_max_area"),
        ]
        for low, high in bands:
            if getattr(self, low) > getattr(self, high):
                raise ConfigError(f"{low} must not exceed {high}")

    @property
    def canonical_size(self) -> Tuple[int, int]:
        return self.canonical_width, self.canonical_height

    def replace(self, **overrides: Any) -> "ScanConfig":
        unknown = set(overrides) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


DEFAULT_CONFIG = ScanConfig()


def load_config(path: Path, base: ScanConfig = DEFAULT_CONFIG) -> ScanConfig:
    """Apply the JSON object stored at ``path`` on top of ``base``."""

    try:
        with Path(path).open("r", encoding="utf-8") as f:
            overrides = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Unable to read config {path}: {exc}") from exc

    if not isinstance(overrides, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")
    return base.replace(**overrides)
