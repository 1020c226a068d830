"""Annotated copies of scanned sheets for human review."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from omr_types import CornerSet, Point2D

Color = Tuple[int, int, int]


@dataclass(frozen=True)
class AnnotationStyle:
    # BGR
    reference_color: Color = (211, 211, 211)
    reference_thickness: int = 1
    correct_color: Color = (0, 255, 0)
    incorrect_color: Color = (0, 0, 255)
    expected_color: Color = (160, 160, 160)
    ring_thickness: int = 2
    ring_padding: float = 4.0
    corner_color: Color = (0, 255, 0)


DEFAULT_STYLE = AnnotationStyle()


def new_canvas(image: np.ndarray) -> np.ndarray:
    """A color copy of ``image`` to draw on."""

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return image.copy()


def _center(point: Point2D) -> Tuple[int, int]:
    return point.as_int()


def draw_reference(canvas: np.ndarray, center: Point2D, radius: float, style: AnnotationStyle = DEFAULT_STYLE) -> None:
    """Faint circle marking every sampled bubble window."""

    cv2.circle(canvas, _center(center), max(1, int(round(radius))), style.reference_color,
               style.reference_thickness, cv2.LINE_AA)


def ring_radius(bubble_radius: float, scale_x: float, style: AnnotationStyle = DEFAULT_STYLE) -> int:
    return max(2, int(round((bubble_radius + style.ring_padding) * scale_x)))


def draw_selection(
    canvas: np.ndarray,
    center: Point2D,
    radius: int,
    correct: bool = True,
    style: AnnotationStyle = DEFAULT_STYLE,
) -> None:
    color = style.correct_color if correct else style.incorrect_color
    cv2.circle(canvas, _center(center), radius, color, style.ring_thickness, cv2.LINE_AA)


def draw_expected(canvas: np.ndarray, center: Point2D, radius: int, style: AnnotationStyle = DEFAULT_STYLE) -> None:
    """Ring the key's answer on a question left blank."""

    cv2.circle(canvas, _center(center), radius, style.expected_color, style.ring_thickness, cv2.LINE_AA)


def draw_corners(image: np.ndarray, corners: CornerSet, style: AnnotationStyle = DEFAULT_STYLE) -> np.ndarray:
    """Copy of a raw capture with the detected sheet quad and labelled corners."""

    vis_image = new_canvas(image)
    quad = corners.as_array().astype(np.int32)
    cv2.polylines(vis_image, [quad], True, style.corner_color, 3)
    for label, point in corners.labelled().items():
        x, y = point.as_int()
        cv2.circle(vis_image, (x, y), 5, style.corner_color, -1)
        cv2.putText(vis_image, label, (x + 10, y - 10), cv2.FONT_HERSHEY_SIMPLEX, 0.6, style.corner_color, 2)
    return vis_image

