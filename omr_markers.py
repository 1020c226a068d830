"""Fiducial marker detection and corner selection.

The printed sheet carries four solid square markers near its corners. They are
located on the raw photograph, reduced to exactly four points and labelled
top-left, top-right, bottom-left and bottom-right.
"""

from __future__ import annotations

import itertools
import logging
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from omr_config import DEFAULT_CONFIG, ScanConfig
from omr_types import CornerSet, InsufficientMarkersError, Point2D

logger = logging.getLogger(__name__)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def binarize_for_markers(image: np.ndarray, config: ScanConfig = DEFAULT_CONFIG) -> np.ndarray:
    """Blur and adaptively threshold a capture; dark ink becomes 255."""

    gray = to_grayscale(image)
    kernel = config.marker_blur_kernel
    blurred = cv2.GaussianBlur(gray, (kernel, kernel), 0)
    return cv2.adaptiveThreshold(
        blurred,
        255,
        cv2.ADAPTIVE_THRESH_MEAN_C,
        cv2.THRESH_BINARY_INV,
        config.marker_block_size,
        config.marker_c,
    )


def resize_for_detection(image: np.ndarray, long_side: int) -> Tuple[np.ndarray, float]:
    """Shrink a capture so max(H, W) <= long_side.

    Returns (resized, factor) where factor maps original pixels to resized ones.
    """

    height, width = image.shape[:2]
    longest = max(height, width)
    if long_side <= 0 or longest <= long_side:
        return image, 1.0
    factor = long_side / float(longest)
    size = (max(1, int(round(width * factor))), max(1, int(round(height * factor))))
    return cv2.resize(image, size, interpolation=cv2.INTER_AREA), factor


def circularity(contour: np.ndarray) -> float:
    """Compactness 4*pi*area / perimeter^2 (1.0 for a disc, ~0.785 for a square)."""

    perimeter = cv2.arcLength(contour, True)
    if perimeter == 0:
        return 0.0
    return 4 * np.pi * cv2.contourArea(contour) / (perimeter * perimeter)


def local_density(binary: np.ndarray, center: Point2D, radius: int) -> float:
    """Fraction of set pixels in a square window around ``center``."""

    rows, cols = binary.shape[:2]
    x = max(0, int(center.x) - radius)
    y = max(0, int(center.y) - radius)
    width = min(cols - x, radius * 2)
    height = min(rows - y, radius * 2)
    if width <= 0 or height <= 0:
        return 0.0
    roi = binary[y:y + height, x:x + width]
    return cv2.countNonZero(roi) / float(width * height)


def contour_centroid(contour: np.ndarray, approx: np.ndarray) -> Point2D:
    moments = cv2.moments(contour)
    if moments["m00"] != 0:
        return Point2D(moments["m10"] / moments["m00"], moments["m01"] / moments["m00"])
    pts = approx.reshape(-1, 2).astype(np.float64)
    return Point2D(float(pts[:, 0].mean()), float(pts[:, 1].mean()))


def find_marker_candidates(image: np.ndarray, config: ScanConfig = DEFAULT_CONFIG) -> List[Point2D]:
    """Return the centres of every marker-like outline in a raw capture.

    Filters run on a copy shrunk to ``config.marker_working_size``, so the pixel
    thresholds hold for any camera resolution. Centres are returned in the
    coordinates of ``image``.
    """

    working, factor = resize_for_detection(image, config.marker_working_size)
    logger.info(
        "Step 1: Binarizing capture %dx%d for marker search (working size %dx%d)",
        image.shape[1], image.shape[0], working.shape[1], working.shape[0],
    )
    binary = binarize_for_markers(working, config)

    contours, _ = cv2.findContours(binary, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)
    logger.info("Step 2: Found %d contours", len(contours))

    debug_info = {"quad": 0, "area": 0, "aspect": 0, "circular": 0, "dense": 0}
    candidates: List[Point2D] = []

    for contour in contours:
        peri = cv2.arcLength(contour, True)
        approx = cv2.approxPolyDP(contour, config.marker_epsilon * peri, True)
        if len(approx) != 4:
            continue
        debug_info["quad"] += 1

        area = cv2.contourArea(approx)
        if not config.marker_min_area <= area <= config.marker_max_area:
            continue
        debug_info["area"] += 1

        _, _, w, h = cv2.boundingRect(approx)
        if h == 0:
            continue
        aspect_ratio = w / float(h)
        if not config.marker_min_aspect <= aspect_ratio <= config.marker_max_aspect:
            continue
        debug_info["aspect"] += 1

        compactness = circularity(contour)
        if not config.marker_min_circularity <= compactness <= config.marker_max_circularity:
            continue
        debug_info["circular"] += 1

        center = contour_centroid(contour, approx)
        density = local_density(binary, center, config.marker_density_radius)
        if density < config.marker_min_density:
            logger.debug("Rejected faint marker at (%.1f, %.1f) density=%.2f", center.x, center.y, density)
            continue
        debug_info["dense"] += 1

        if any(center.distance_to(existing) < config.marker_merge_distance for existing in candidates):
            continue
        logger.debug("Marker candidate at (%.1f, %.1f) area=%.0f circularity=%.2f", center.x, center.y, area, compactness)
        candidates.append(center)

    logger.debug(
        "Marker filter: %d quads -> %d area OK -> %d aspect OK -> %d circular OK -> %d dense OK",
        debug_info["quad"], debug_info["area"], debug_info["aspect"], debug_info["circular"], debug_info["dense"],
    )
    logger.info("  - Marker candidates: %d", len(candidates))
    if factor != 1.0:
        # Back to capture pixels, pixel centres aligned as cv2.resize places them
        candidates = [Point2D((p.x + 0.5) / factor - 0.5, (p.y + 0.5) / factor - 0.5) for p in candidates]
    return candidates


def spread(points: Sequence[Point2D]) -> float:
    """Sum of pairwise distances."""

    return sum(a.distance_to(b) for a, b in itertools.combinations(points, 2))


def pick_best_four(points: Sequence[Point2D]) -> List[Point2D]:
    """The four points with the largest total pairwise distance.

    Ties keep the first combination in input order.
    """

    if len(points) <= 4:
        return list(points)

    best: Optional[Sequence[Point2D]] = None
    max_spread = -1.0
    for combo in itertools.combinations(points, 4):
        total = spread(combo)
        if total > max_spread:
            max_spread = total
            best = combo
    return list(best) if best is not None else []


def order_corners(points: Sequence[Point2D]) -> CornerSet:
    """Label four points by role, independent of input order."""

    if len(points) != 4:
        raise InsufficientMarkersError(len(points), points)

    ordered = sorted(points, key=lambda p: (p.y, p.x))
    top = sorted(ordered[:2], key=lambda p: (p.x, p.y))
    bottom = sorted(ordered[2:], key=lambda p: (p.x, p.y))
    return CornerSet(
        top_left=top[0],
        top_right=top[1],
        bottom_left=bottom[0],
        bottom_right=bottom[1],
    )


def select_corners(points: Sequence[Point2D]) -> CornerSet:
    if len(points) < 4:
        raise InsufficientMarkersError(len(points), points)

    corners = pick_best_four(points)
    if len(corners) != 4:
        raise InsufficientMarkersError(len(corners), points)
    return order_corners(corners)


def detect_markers(image: np.ndarray, config: ScanConfig = DEFAULT_CONFIG) -> CornerSet:
    """Locate and label the four sheet corners in a raw capture."""

    candidates = find_marker_candidates(image, config)
    if len(candidates) < 4:
        logger.warning("Only detected %d potential markers", len(candidates))
        raise InsufficientMarkersError(len(candidates), candidates)

    corners = select_corners(candidates)
    logger.info("Step 3: Selected corners")
    for label, point in corners.labelled().items():
        logger.info("    %s: (%.1f, %.1f)", label, point.x, point.y)
    return corners
