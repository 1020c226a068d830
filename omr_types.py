"""Value types and errors shared by the OMR scan pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np


class ScanError(RuntimeError):
    """Base class for failures that abort a whole scan."""


class InsufficientMarkersError(ScanError):
    """Fewer than four fiducial markers were found in the capture."""

    def __init__(self, found: int, candidates: Sequence["Point2D"] = ()):
        self.found = found
        self.candidates = list(candidates)
        super().__init__(f"Found {found} marker candidates, need at least 4")


class DegenerateCornerSetError(ScanError):
    """The selected corners cannot define a perspective transform."""


class CaptureError(ScanError):
    """The captured photograph could not be read."""


class ScanCancelledError(ScanError):
    """The caller abandoned the scan between two stages."""


class ConfigError(ValueError):
    """Invalid scan configuration."""


@dataclass(frozen=True)
class Point2D:
    x: float
    y: float

    def distance_to(self, other: "Point2D") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def as_tuple(self) -> Tuple[float, float]:
        return (self.x, self.y)

    def as_int(self) -> Tuple[int, int]:
        return (int(round(self.x)), int(round(self.y)))


@dataclass(frozen=True)
class CornerSet:
    """Four sheet corners tagged by role."""

    top_left: Point2D
    top_right: Point2D
    bottom_left: Point2D
    bottom_right: Point2D

    def __post_init__(self) -> None:
        points = self.points()
        for i in range(len(points)):
            for j in range(i + 1, len(points)):
                if points[i].distance_to(points[j]) < 1e-6:
                    raise DegenerateCornerSetError(
                        f"Corner points coincide at ({points[i].x:.1f}, {points[i].y:.1f})"
                    )

    def points(self) -> List[Point2D]:
        return [self.top_left, self.top_right, self.bottom_left, self.bottom_right]

    def as_array(self) -> np.ndarray:
        """Corners as a float32 (4, 2) array in TL, TR, BR, BL polygon order."""

        return np.array(
            [
                self.top_left.as_tuple(),
                self.top_right.as_tuple(),
                self.bottom_right.as_tuple(),
                self.bottom_left.as_tuple(),
            ],
            dtype=np.float32,
        )

    def labelled(self) -> Dict[str, Point2D]:
        return {
            "TL": self.top_left,
            "TR": self.top_right,
            "BL": self.bottom_left,
            "BR": self.bottom_right,
        }


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one scan: one entry per question plus the annotated sheet."""

    answers: Tuple[Optional[str], ...]
    annotated: np.ndarray = field(repr=False, compare=False)
    corners: Optional[CornerSet] = None
    fill_ratios: Tuple[Tuple[float, ...], ...] = ()

    @property
    def question_count(self) -> int:
        return len(self.answers)

    @property
    def answered_count(self) -> int:
        return sum(1 for answer in self.answers if answer is not None)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "answers": list(self.answers),
            "question_count": self.question_count,
            "answered": self.answered_count,
            "fill_ratios": [[round(r, 4) for r in row] for row in self.fill_ratios],
        }
        if self.corners is not None:
            payload["corners"] = {
                label: [round(p.x, 2), round(p.y, 2)]
                for label, p in self.corners.labelled().items()
            }
        return payload
