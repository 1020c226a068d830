"""Bubble fill classification on the canonical sheet image, and answer-key grading."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

import omr_annotate
from omr_config import DEFAULT_CONFIG, ScanConfig
from omr_layout import (
    DEFAULT_LAYOUT,
    LayoutDescriptor,
    bubble_grid,
    measure_scale,
    sampling_window,
)
from omr_markers import to_grayscale

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BubbleMeasurement:
    fill_ratio: float
    plausible: bool


EMPTY_MEASUREMENT = BubbleMeasurement(fill_ratio=0.0, plausible=False)


@dataclass(frozen=True)
class GradedSheet:
    answers: Tuple[Optional[str], ...]
    fill_ratios: Tuple[Tuple[float, ...], ...]


@dataclass(frozen=True)
class GradeSummary:
    score: int
    total: int
    passed: bool


def binarize_sheet(canonical: np.ndarray, config: ScanConfig = DEFAULT_CONFIG) -> np.ndarray:
    """Binarize the whole canonical image once; marks become 255."""

    gray = to_grayscale(canonical)
    kernel = config.fill_blur_kernel
    blurred = cv2.GaussianBlur(gray, (kernel, kernel), config.fill_blur_sigma)
    return cv2.adaptiveThreshold(
        blurred,
        255,
        cv2.ADAPTIVE_THRESH_GAUSSIAN_C,
        cv2.THRESH_BINARY_INV,
        config.fill_block_size,
        config.fill_c,
    )


def is_plausible_mark(window: np.ndarray, config: ScanConfig = DEFAULT_CONFIG) -> bool:
    """True when some blob in the window is roughly square and bubble sized."""

    contours, _ = cv2.findContours(window.copy(), cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    for contour in contours:
        _, _, w, h = cv2.boundingRect(contour)
        if h == 0:
            continue
        aspect_ratio = w / float(h)
        area = w * h
        if config.mark_min_aspect <= aspect_ratio <= config.mark_max_aspect and \
                config.mark_min_area <= area <= config.mark_max_area:
            return True
    return False


def measure_bubble(
    binary: np.ndarray,
    window: Tuple[int, int, int, int],
    config: ScanConfig = DEFAULT_CONFIG,
) -> BubbleMeasurement:
    left, top, right, bottom = window
    roi = binary[top:bottom, left:right]
    if roi.size == 0:
        return EMPTY_MEASUREMENT

    # Otsu has no split point in a flat window
    if int(roi.min()) == int(roi.max()):
        local = roi.copy()
    else:
        _, local = cv2.threshold(roi, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)

    fill_ratio = cv2.countNonZero(local) / float(local.size)
    return BubbleMeasurement(fill_ratio=fill_ratio, plausible=is_plausible_mark(local, config))


def _key_for(answer_key: Optional[Sequence[Optional[str]]], index: int) -> Optional[str]:
    if not answer_key or index >= len(answer_key):
        return None
    return answer_key[index]


def classify_answers(
    canonical: np.ndarray,
    question_count: int,
    layout: LayoutDescriptor = DEFAULT_LAYOUT,
    config: ScanConfig = DEFAULT_CONFIG,
    answer_key: Optional[Sequence[Optional[str]]] = None,
    canvas: Optional[np.ndarray] = None,
) -> GradedSheet:
    """Pick at most one filled choice per question.

    A choice is selected when its window holds a plausible mark, its fill ratio
    exceeds ``config.fill_threshold`` and it beats every earlier choice of the
    same question. Exact ties keep the earlier choice.
    """

    logger.info("Step 5: Classifying bubbles for %d questions", question_count)
    binary = binarize_sheet(canonical, config)
    scale = measure_scale(binary.shape, layout)
    ring = omr_annotate.ring_radius(layout.bubble_radius, scale[0])

    answers: List[Optional[str]] = []
    all_ratios: List[Tuple[float, ...]] = []

    for i, bubbles in enumerate(bubble_grid(layout, question_count, scale, config.window_margin)):
        selected = None
        max_fill_ratio = 0.0
        ratios = []

        for bubble in bubbles:
            window = sampling_window(bubble.center, bubble.radius, binary.shape)
            measurement = measure_bubble(binary, window, config)
            ratios.append(measurement.fill_ratio)

            if canvas is not None:
                omr_annotate.draw_reference(canvas, bubble.center, bubble.radius)

            if measurement.plausible and measurement.fill_ratio > config.fill_threshold \
                    and measurement.fill_ratio > max_fill_ratio:
                max_fill_ratio = measurement.fill_ratio
                selected = bubble

        answers.append(selected.choice if selected is not None else None)
        all_ratios.append(tuple(ratios))

        correct_choice = _key_for(answer_key, i)
        if canvas is not None:
            if selected is not None:
                is_correct = correct_choice is None or correct_choice.upper() == selected.choice.upper()
                omr_annotate.draw_selection(canvas, selected.center, ring, correct=is_correct)
            elif correct_choice is not None:
                correct_index = layout.choice_index(correct_choice)
                if correct_index != -1:
                    omr_annotate.draw_expected(canvas, bubbles[correct_index].center, ring)

        logger.debug("Q%d: selected=%s ratios=%s", i + 1, answers[-1], ["%.2f" % r for r in ratios])

    logger.info("  - Detected answers: %s", format_answers(answers))
    return GradedSheet(answers=tuple(answers), fill_ratios=tuple(all_ratios))


def grade_answers(answers: Sequence[Optional[str]], answer_key: Sequence[Optional[str]]) -> GradeSummary:
    """Score detected answers against a key; half the questions or more passes."""

    score = 0
    for given, correct in zip(answers, answer_key):
        if given is not None and correct is not None and given.upper() == correct.upper():
            score += 1
    total = len(answers)
    return GradeSummary(score=score, total=total, passed=score >= total // 2)


def format_answers(answers: Sequence[Optional[str]]) -> str:
    """Compact answers string, one character per question and "-" for a blank."""

    return "".join(answer if answer is not None else "-" for answer in answers)
