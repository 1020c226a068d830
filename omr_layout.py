"""Answer sheet template geometry and the bubble grid derived from it.

All template values are in template units, which are PDF points on the printed
A4 sheet (595 x 842). A rectified capture is mapped back to template units with
a per-axis scale factor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple

from omr_types import Point2D


@dataclass(frozen=True)
class LayoutDescriptor:
    """Immutable geometry of the printed answer sheet."""

    template_width: float = 595.0
    template_height: float = 842.0

    # Origin of the first question row
    start_x: float = 56.0
    start_y: float = 140.0

    col_width: float = 129.8
    row_height: float = 23.8
    questions_per_column: int = 25

    bubble_size: float = 8.9
    bubble_spacing: float = 8.2

    # Distance from the question number to the first bubble
    bubble_offset_x: float = 21.0
    bubble_offset_y: float = 2.8

    choices: Tuple[str, ...] = ("A", "B", "C", "D")
    max_questions: int = 100

    # Fiducial squares, centred this far in from each page corner
    marker_inset: float = 21.0
    marker_size: float = 16.0

    def __post_init__(self) -> None:
        positive = {
            "template_width": self.template_width,
            "template_height": self.template_height,
            "col_width": self.col_width,
            "row_height": self.row_height,
            "bubble_size": self.bubble_size,
            "bubble_spacing": self.bubble_spacing,
            "marker_size": self.marker_size,
        }
        for name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
        if self.questions_per_column <= 0:
            raise ValueError("questions_per_column must be positive")
        if self.max_questions <= 0:
            raise ValueError("max_questions must be positive")
        if self.start_x < 0 or self.start_y < 0 or self.marker_inset < 0:
            raise ValueError("Template offsets cannot be negative")
        if not self.choices:
            raise ValueError("At least one choice label is required")
        if len(set(c.upper() for c in self.choices)) != len(self.choices):
            raise ValueError(f"Duplicate choice labels: {self.choices}")

    @property
    def bubble_radius(self) -> float:
        return self.bubble_size / 2.0

    @property
    def bubble_pitch(self) -> float:
        """Horizontal distance between neighbouring bubble centres."""

        return self.bubble_size + self.bubble_spacing

    def choice_index(self, label: str) -> int:
        """Index of a choice label (case-insensitive), -1 when unknown."""

        wanted = label.upper()
        for index, choice in enumerate(self.choices):
            if choice.upper() == wanted:
                return index
        return -1

    def cell_origin(self, question_index: int) -> Tuple[float, float]:
        """Template coordinates of a question's row origin."""

        column = question_index // self.questions_per_column
        row = question_index % self.questions_per_column
        return (
            self.start_x + column * self.col_width,
            self.start_y + row * self.row_height,
        )

    def label_anchor(self, question_index: int) -> Tuple[float, float]:
        """Right edge and baseline of a printed question number.

        The number ends a full bubble width left of choice A, so its ink stays
        outside the first sampling window.
        """

        origin_x, origin_y = self.cell_origin(question_index)
        return (
            origin_x + self.bubble_offset_x - self.bubble_size - 1.0,
            origin_y + self.bubble_offset_y + self.bubble_radius * 0.5,
        )


DEFAULT_LAYOUT = LayoutDescriptor()


@dataclass(frozen=True)
class BubblePosition:
    question_index: int
    choice_index: int
    choice: str
    center: Point2D
    radius: float


def measure_scale(image_shape: Sequence[int], layout: LayoutDescriptor = DEFAULT_LAYOUT) -> Tuple[float, float]:
    """Scale from template units to pixels of a canonical image."""

    height, width = image_shape[:2]
    return width / layout.template_width, height / layout.template_height


def capped_question_count(question_count: int, layout: LayoutDescriptor = DEFAULT_LAYOUT) -> int:
    return max(0, min(question_count, layout.max_questions))


def bubble_center(
    layout: LayoutDescriptor,
    question_index: int,
    choice_index: int,
    scale: Tuple[float, float],
) -> Point2D:
    scale_x, scale_y = scale
    origin_x, origin_y = layout.cell_origin(question_index)
    base_x = origin_x * scale_x
    base_y = origin_y * scale_y
    return Point2D(
        base_x + (layout.bubble_offset_x + choice_index * layout.bubble_pitch) * scale_x,
        base_y + layout.bubble_offset_y * scale_y,
    )


def question_bubbles(
    layout: LayoutDescriptor,
    question_index: int,
    scale: Tuple[float, float],
    margin: float = 1.5,
) -> List[BubblePosition]:
    """Expected bubbles of one question, in choice order.

    ``radius`` is the sampling radius: the bubble radius plus ``margin``,
    scaled horizontally.
    """

    radius = (layout.bubble_radius + margin) * scale[0]
    return [
        BubblePosition(
            question_index=question_index,
            choice_index=j,
            choice=choice,
            center=bubble_center(layout, question_index, j, scale),
            radius=radius,
        )
        for j, choice in enumerate(layout.choices)
    ]


def bubble_grid(
    layout: LayoutDescriptor,
    question_count: int,
    scale: Tuple[float, float],
    margin: float = 1.5,
) -> Iterator[List[BubblePosition]]:
    """Yield the expected bubbles question by question."""

    for i in range(capped_question_count(question_count, layout)):
        yield question_bubbles(layout, i, scale, margin)


def sampling_window(center: Point2D, radius: float, image_shape: Sequence[int]) -> Tuple[int, int, int, int]:
    """Square window (left, top, right, bottom) around a bubble, clipped to the image.

    The returned window may be empty when the bubble lies outside the image.
    """

    height, width = image_shape[:2]
    left = min(max(int(center.x - radius), 0), width - 1)
    top = min(max(int(center.y - radius), 0), height - 1)
    size = max(int(radius * 2), 1)
    right = min(left + size, width)
    bottom = min(top + size, height)
    return left, top, right, bottom
