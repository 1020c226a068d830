"""Synthetic answer sheets drawn with OpenCV for the scanner tests."""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence, Tuple

import cv2
import numpy as np
import pytest

from omr_layout import DEFAULT_LAYOUT, LayoutDescriptor, bubble_center, capped_question_count, question_bubbles
from omr_sheet_generator import BUBBLE_INK
from omr_types import Point2D

BLACK = (0, 0, 0)
PENCIL = (30, 30, 30)


class SheetPainter:
    """Draws sheets that follow a layout at a given pixel scale."""

    def __init__(self, layout: LayoutDescriptor = DEFAULT_LAYOUT, scale: float = 1.0):
        self.layout = layout
        self.scale = scale
        self.width = int(round(layout.template_width * scale))
        self.height = int(round(layout.template_height * scale))

    def blank(self) -> np.ndarray:
        return np.full((self.height, self.width, 3), 255, dtype=np.uint8)

    def marker_centers(self) -> Dict[str, Point2D]:
        inset = self.layout.marker_inset * self.scale
        return {
            "TL": Point2D(inset, inset),
            "TR": Point2D(self.width - inset, inset),
            "BL": Point2D(inset, self.height - inset),
            "BR": Point2D(self.width - inset, self.height - inset),
        }

    def add_markers(self, image: np.ndarray, which: Iterable[str] = ("TL", "TR", "BL", "BR")) -> np.ndarray:
        half = int(round(self.layout.marker_size * self.scale / 2))
        centers = self.marker_centers()
        for label in which:
            x, y = centers[label].as_int()
            cv2.rectangle(image, (x - half, y - half), (x + half, y + half), BLACK, -1)
        return image

    def _ink_width(self, points: float) -> int:
        return max(1, int(round(points * self.scale)))

    def print_template(self, image: np.ndarray, question_count: Optional[int] = None) -> np.ndarray:
        """Draw what the PDF generator prints besides the markers."""

        layout = self.layout
        s = self.scale
        count = capped_question_count(layout.max_questions if question_count is None else question_count, layout)

        title = "Answer Sheet"
        (title_w, _), _ = cv2.getTextSize(title, cv2.FONT_HERSHEY_SIMPLEX, 0.6 * s, self._ink_width(1))
        cv2.putText(image, title, ((self.width - title_w) // 2, int(66 * s)),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.6 * s, BLACK, self._ink_width(1))
        cv2.putText(image, "Name :", (int(50 * s), int(100 * s)),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.45 * s, BLACK, self._ink_width(1))
        cv2.line(image, (int(100 * s), int(105 * s)), (int(349 * s), int(105 * s)), BLACK, self._ink_width(1))

        gray = int(round(BUBBLE_INK.red * 255))
        outline = int(round(layout.bubble_radius * s))
        for i in range(count):
            label = f"{i + 1}."
            right_x, baseline_y = layout.label_anchor(i)
            (label_w, _), _ = cv2.getTextSize(label, cv2.FONT_HERSHEY_PLAIN, 0.55 * s, self._ink_width(1))
            cv2.putText(image, label, (int(right_x * s) - label_w, int(baseline_y * s)),
                        cv2.FONT_HERSHEY_PLAIN, 0.55 * s, BLACK, self._ink_width(1))
            for bubble in question_bubbles(layout, i, (s, s)):
                cv2.circle(image, bubble.center.as_int(), outline, (gray, gray, gray), self._ink_width(0.8))
        return image

    def fill(self, image: np.ndarray, question_index: int, choice_index: int) -> np.ndarray:
        """Pencil in one bubble, slightly past its printed outline."""

        center = bubble_center(self.layout, question_index, choice_index, (self.scale, self.scale))
        radius = int(round((self.layout.bubble_radius + 0.5) * self.scale))
        cv2.circle(image, center.as_int(), radius, PENCIL, -1)
        return image

    def sheet(
        self,
        answers: Sequence[Optional[int]] = (),
        markers: bool = True,
        printed: bool = True,
    ) -> np.ndarray:
        """A canonical sheet with one filled choice index (or None) per question."""

        image = self.blank()
        if markers:
            self.add_markers(image)
        if printed:
            self.print_template(image)
        for question_index, choice_index in enumerate(answers):
            if choice_index is not None:
                self.fill(image, question_index, choice_index)
        return image

    def photograph(
        self,
        sheet: np.ndarray,
        quad: Sequence[Tuple[float, float]],
        canvas_size: Tuple[int, int],
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Project the sheet onto ``quad`` (TL, TR, BR, BL) of a white canvas."""

        src = np.float32([[0, 0], [self.width, 0], [self.width, self.height], [0, self.height]])
        dst = np.float32(quad)
        matrix = cv2.getPerspectiveTransform(src, dst)
        photo = cv2.warpPerspective(
            sheet,
            matrix,
            canvas_size,
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=(255, 255, 255),
        )
        return photo, matrix


SKEWED_QUAD = [(40, 30), (700, 60), (730, 960), (20, 930)]
PHOTO_SIZE = (760, 1000)


@pytest.fixture
def painter() -> SheetPainter:
    return SheetPainter()


@pytest.fixture
def skewed_quad():
    return SKEWED_QUAD, PHOTO_SIZE


@pytest.fixture
def hires_painter() -> SheetPainter:
    """Sheets at roughly the pixel size of a phone photograph."""

    return SheetPainter(scale=3.0)
