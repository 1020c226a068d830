import random

import numpy as np
import pytest

import omr_grader
from omr_grader import (
    BubbleMeasurement,
    classify_answers,
    format_answers,
    grade_answers,
    measure_bubble,
)


def test_blank_sheet_has_no_selections(painter):
    graded = classify_answers(painter.sheet(), 25)

    assert graded.answers == (None,) * 25


def test_single_filled_bubble_on_ten_question_sheet(painter):
    sheet = painter.sheet([None])
    painter.fill(sheet, 0, 1)

    graded = classify_answers(sheet, 10)

    assert graded.answers[0] == "B"
    assert graded.answers[1:] == (None,) * 9
    assert len(graded.answers) == 10


def test_recovers_one_mark_per_question(painter):
    rng = random.Random(1234)
    expected_indices = [rng.randrange(4) for _ in range(60)]
    sheet = painter.sheet(expected_indices)

    graded = classify_answers(sheet, 60)

    assert list(graded.answers) == ["ABCD"[i] for i in expected_indices]


def test_never_selects_more_than_one_choice(painter):
    sheet = painter.sheet()
    for choice in range(4):
        painter.fill(sheet, 0, choice)
    painter.fill(sheet, 1, 0)
    painter.fill(sheet, 1, 3)

    graded = classify_answers(sheet, 2)

    for answer in graded.answers:
        assert answer is not None
        assert len(answer) == 1


def test_equal_marks_favour_the_earlier_choice(painter):
    sheet = painter.sheet()
    painter.fill(sheet, 0, 0)
    painter.fill(sheet, 0, 2)

    graded = classify_answers(sheet, 1)

    assert graded.fill_ratios[0][0] == pytest.approx(graded.fill_ratios[0][2])
    assert graded.answers == ("A",)


def test_exact_tie_keeps_first_choice(painter, monkeypatch):
    monkeypatch.setattr(
        omr_grader, "measure_bubble",
        lambda binary, window, config: BubbleMeasurement(fill_ratio=0.8, plausible=True),
    )

    graded = classify_answers(painter.blank(), 3)

    assert graded.answers == ("A", "A", "A")


def test_implausible_mark_is_not_selected(painter, monkeypatch):
    monkeypatch.setattr(
        omr_grader, "measure_bubble",
        lambda binary, window, config: BubbleMeasurement(fill_ratio=0.95, plausible=False),
    )

    graded = classify_answers(painter.blank(), 2)

    assert graded.answers == (None, None)


def test_empty_window_degrades_to_unfilled():
    binary = np.zeros((10, 10), dtype=np.uint8)

    measurement = measure_bubble(binary, (5, 5, 5, 9))

    assert measurement == BubbleMeasurement(fill_ratio=0.0, plausible=False)


def test_fully_dark_window_counts_as_filled():
    binary = np.full((20, 20), 255, dtype=np.uint8)

    measurement = measure_bubble(binary, (0, 0, 10, 10))

    assert measurement.fill_ratio == pytest.approx(1.0)
    assert measurement.plausible


def test_annotates_selected_and_missing_answers(painter):
    sheet = painter.sheet([1, None])
    canvas = sheet.copy()

    graded = classify_answers(sheet, 2, answer_key=["C", "D"], canvas=canvas)

    assert graded.answers == ("B", None)
    # Wrong answer is ringed in red
    red = (canvas[:, :, 2] > 200) & (canvas[:, :, 1] < 80) & (canvas[:, :, 0] < 80)
    assert np.any(red)
    assert not np.array_equal(canvas, sheet)


def test_grade_counts_matching_answers():
    summary = grade_answers(["A", None, "c", "D"], ["A", "B", "C", "A"])

    assert summary.score == 2
    assert summary.total == 4
    assert summary.passed


def test_grade_fails_below_half():
    summary = grade_answers(["B", None, None], ["A", "B", "C"])

    assert summary.score == 0
    assert not summary.passed


def test_format_answers_marks_blanks_with_dash():
    assert format_answers(["A", "B", None, "D"]) == "AB-D"


def test_printed_outlines_are_not_marks(painter):
    sheet = painter.sheet([None, 1, None, None, 3, None, None, None, None, None])

    graded = classify_answers(sheet, 10)

    assert graded.answers == (None, "B", None, None, "D", None, None, None, None, None)


def test_printed_template_does_not_change_answers(painter):
    plain = classify_answers(painter.sheet([2, None, 0], printed=False), 3)
    printed = classify_answers(painter.sheet([2, None, 0]), 3)

    assert plain.answers == printed.answers == ("C", None, "A")
