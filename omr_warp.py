"""Perspective rectification of a capture into the canonical sheet image."""

from __future__ import annotations

import logging
from typing import Sequence, Tuple

import cv2
import numpy as np

from omr_layout import DEFAULT_LAYOUT, LayoutDescriptor
from omr_types import CornerSet, DegenerateCornerSetError, Point2D

logger = logging.getLogger(__name__)


def canonical_corners(size: Tuple[int, int], layout: LayoutDescriptor = DEFAULT_LAYOUT) -> CornerSet:
    """Where the marker centres land in a canonical image of ``size``.

    The markers sit ``marker_inset`` template units inside the page corners, so
    the destination quad is inset by the same amount and the bubble grid is
    never clipped.
    """

    width, height = size
    inset_x = layout.marker_inset * width / layout.template_width
    inset_y = layout.marker_inset * height / layout.template_height
    return CornerSet(
        top_left=Point2D(inset_x, inset_y),
        top_right=Point2D(width - inset_x, inset_y),
        bottom_left=Point2D(inset_x, height - inset_y),
        bottom_right=Point2D(width - inset_x, height - inset_y),
    )


def compute_homography(
    corners: CornerSet,
    size: Tuple[int, int],
    layout: LayoutDescriptor = DEFAULT_LAYOUT,
) -> np.ndarray:
    """3x3 transform from capture pixels to canonical pixels."""

    src_points = corners.as_array()
    dst_points = canonical_corners(size, layout).as_array()

    # Three collinear corners leave the transform undefined
    if abs(cv2.contourArea(src_points)) < 1.0:
        raise DegenerateCornerSetError("Corner quadrilateral has no area")
    try:
        matrix = cv2.getPerspectiveTransform(src_points, dst_points)
    except cv2.error as exc:
        raise DegenerateCornerSetError(f"Cannot compute perspective transform: {exc}") from exc
    if not np.all(np.isfinite(matrix)) or abs(np.linalg.det(matrix)) < 1e-12:
        raise DegenerateCornerSetError("Perspective transform is singular")
    return matrix


def rectify(
    image: np.ndarray,
    corners: CornerSet,
    size: Tuple[int, int] = (595, 842),
    layout: LayoutDescriptor = DEFAULT_LAYOUT,
) -> np.ndarray:
    """Warp the capture to a top-down canonical image of ``size`` (width, height)."""

    matrix = compute_homography(corners, size, layout)
    width, height = size
    warped = cv2.warpPerspective(
        image,
        matrix,
        (width, height),
        flags=cv2.INTER_LINEAR,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=(255, 255, 255),
    )
    logger.info("Step 4: Warped capture to %dx%d", width, height)
    return warped


def project_points(points: Sequence[Point2D], matrix: np.ndarray) -> list:
    """Map points through a perspective transform."""

    if not points:
        return []
    src = np.array([[p.x, p.y] for p in points], dtype=np.float32).reshape(-1, 1, 2)
    dst = cv2.perspectiveTransform(src, matrix).reshape(-1, 2)
    return [Point2D(float(x), float(y)) for x, y in dst]
