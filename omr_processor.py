#!/usr/bin/env python3
"""
OMR Sheet Image Processor
Locates the corner markers of a photographed answer sheet, rectifies it and
reads the filled bubble of every question.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import cv2
import numpy as np

import omr_annotate
from omr_config import DEFAULT_CONFIG, ScanConfig, load_config
from omr_grader import classify_answers, format_answers, grade_answers
from omr_layout import DEFAULT_LAYOUT, LayoutDescriptor
from omr_markers import detect_markers
from omr_types import CaptureError, DetectionResult, ScanCancelledError, ScanError
from omr_warp import rectify

logger = logging.getLogger(__name__)


def validate_request(
    question_count: int,
    answer_key: Optional[Sequence[Optional[str]]],
    layout: LayoutDescriptor,
) -> None:
    if not 1 <= question_count <= layout.max_questions:
        raise ValueError(f"question_count must be between 1 and {layout.max_questions}, got {question_count}")
    if answer_key is None:
        return
    for index, label in enumerate(answer_key):
        if label is not None and layout.choice_index(label) == -1:
            raise ValueError(f"Answer key entry {index + 1} is not one of {layout.choices}: {label!r}")


def _check_cancelled(cancel_event: Optional[threading.Event], stage: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        logger.info("Scan cancelled before %s", stage)
        raise ScanCancelledError(f"Scan cancelled before {stage}")


def scan_sheet(
    image: np.ndarray,
    question_count: int,
    answer_key: Optional[Sequence[Optional[str]]] = None,
    layout: LayoutDescriptor = DEFAULT_LAYOUT,
    config: ScanConfig = DEFAULT_CONFIG,
    cancel_event: Optional[threading.Event] = None,
) -> DetectionResult:
    """Read one captured sheet.

    Raises ``InsufficientMarkersError`` when the sheet cannot be located and
    ``DegenerateCornerSetError`` when its corners cannot be rectified. A
    blank sheet is not an error: it yields a result with every answer ``None``.
    """

    if image is None or image.size == 0:
        raise CaptureError("Empty image")
    validate_request(question_count, answer_key, layout)

    _check_cancelled(cancel_event, "marker detection")
    corners = detect_markers(image, config)

    _check_cancelled(cancel_event, "rectification")
    canonical = rectify(image, corners, config.canonical_size, layout)

    _check_cancelled(cancel_event, "bubble classification")
    canvas = omr_annotate.new_canvas(canonical)
    graded = classify_answers(canonical, question_count, layout, config, answer_key, canvas)

    return DetectionResult(
        answers=graded.answers,
        annotated=canvas,
        corners=corners,
        fill_ratios=graded.fill_ratios,
    )


def load_image(image_path: Path) -> np.ndarray:
    """Load a capture from disk; EXIF orientation is applied by OpenCV."""

    image_path = Path(image_path)
    if not image_path.exists():
        raise CaptureError(f"Image not found: {image_path}")
    image = cv2.imread(str(image_path))
    if image is None:
        raise CaptureError(f"Could not load image: {image_path}")
    return image


def scan_file(
    image_path: Path,
    question_count: int,
    answer_key: Optional[Sequence[Optional[str]]] = None,
    layout: LayoutDescriptor = DEFAULT_LAYOUT,
    config: ScanConfig = DEFAULT_CONFIG,
) -> DetectionResult:
    return scan_sheet(load_image(image_path), question_count, answer_key, layout, config)


class ScanWorker:
    """Runs captures of one session in the background, one at a time."""

    def __init__(self, layout: LayoutDescriptor = DEFAULT_LAYOUT, config: ScanConfig = DEFAULT_CONFIG):
        self.layout = layout
        self.config = config
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="omr-scan")
        self._lock = threading.Lock()
        self._current: Optional[Future] = None
        self._cancel_event: Optional[threading.Event] = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._current is not None and not self._current.done()

    def submit(
        self,
        image: np.ndarray,
        question_count: int,
        answer_key: Optional[Sequence[Optional[str]]] = None,
    ) -> "Future[DetectionResult]":
        with self._lock:
            if self._current is not None and not self._current.done():
                raise RuntimeError("A scan is already running for this session")
            self._cancel_event = threading.Event()
            self._current = self._executor.submit(
                scan_sheet,
                image.copy(),
                question_count,
                list(answer_key) if answer_key is not None else None,
                self.layout,
                self.config,
                self._cancel_event,
            )
            return self._current

    def cancel(self) -> None:
        """Ask the running scan to stop at its next stage boundary."""

        with self._lock:
            if self._cancel_event is not None:
                self._cancel_event.set()

    def close(self, wait: bool = True) -> None:
        self.cancel()
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "ScanWorker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class OMRProcessor:
    """Scans image files and writes summaries and debug images."""

    def __init__(
        self,
        layout: LayoutDescriptor = DEFAULT_LAYOUT,
        config: ScanConfig = DEFAULT_CONFIG,
        debug_dir: Optional[Path] = None,
    ):
        self.layout = layout
        self.config = config
        self.debug_dir = Path(debug_dir) if debug_dir else None
        if self.debug_dir is not None:
            self.debug_dir.mkdir(parents=True, exist_ok=True)

    def _save(self, name: str, image: np.ndarray) -> None:
        if self.debug_dir is None:
            return
        path = self.debug_dir / name
        cv2.imwrite(str(path), image)
        logger.info("  - Saved: %s", path)

    def process_image(
        self,
        image_path: Path,
        question_count: int,
        answer_key: Optional[Sequence[Optional[str]]] = None,
        visualize: bool = False,
    ) -> Dict[str, object]:
        logger.info("Starting processing of: %s", image_path)
        original = load_image(image_path)
        self._save("original.jpg", original)

        result = scan_sheet(original, question_count, answer_key, self.layout, self.config)

        if result.corners is not None:
            self._save("corners.jpg", omr_annotate.draw_corners(original, result.corners))
        if visualize:
            self._save("annotated_results.png", result.annotated)

        summary: Dict[str, object] = {"image": str(image_path)}
        summary.update(result.to_dict())
        summary["answers_string"] = format_answers(result.answers)
        if answer_key is not None:
            grade = grade_answers(result.answers, answer_key)
            summary["grade"] = {"score": grade.score, "total": grade.total, "passed": grade.passed}
        summary["parameters"] = self.config.to_dict()
        return summary


def parse_answer_key(text: str) -> List[Optional[str]]:
    """Parse "ABCD", "AB-D" or "A,B,null,D" into a list of labels."""

    if "," in text:
        items = [item.strip() for item in text.split(",")]
        return [None if item.lower() in ("", "null", "none", "-") else item.upper() for item in items]
    return [None if ch in "-_" else ch.upper() for ch in text.strip()]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Process a photographed OMR sheet")
    parser.add_argument("image", type=Path, help="Path to the captured OMR sheet image")
    parser.add_argument(
        "--questions",
        type=int,
        default=None,
        help="Number of questions on the sheet (defaults to the answer key length)",
    )
    parser.add_argument(
        "--answer-key",
        type=str,
        default=None,
        help='Expected answers, e.g. "ABCD", "AB-D" or "A,B,null,D"',
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with threshold overrides",
    )
    parser.add_argument(
        "--fill-threshold",
        type=float,
        default=None,
        help="Fill ratio threshold for considering a bubble marked",
    )
    parser.add_argument(
        "--output-json",
        type=Path,
        default=None,
        help="Optional path to save the extracted data as JSON",
    )
    parser.add_argument(
        "--debug-dir",
        type=Path,
        default=None,
        help="Directory to store intermediate debug images",
    )
    parser.add_argument(
        "--visualize",
        action="store_true",
        help="Save an annotated image with detected selections",
    )
    parser.add_argument("--verbose", action="store_true", help="Log per-bubble details")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ScanConfig:
    config = load_config(args.config) if args.config else DEFAULT_CONFIG
    if args.fill_threshold is not None:
        config = config.replace(fill_threshold=args.fill_threshold)
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    answer_key = parse_answer_key(args.answer_key) if args.answer_key else None
    question_count = args.questions or (len(answer_key) if answer_key else DEFAULT_LAYOUT.max_questions)

    try:
        config = build_config(args)
        processor = OMRProcessor(config=config, debug_dir=args.debug_dir)
        summary = processor.process_image(args.image, question_count, answer_key, visualize=args.visualize)
    except (ScanError, ValueError) as exc:
        print(f"Scan failed: {exc}")
        return 1

    answers = summary["answers"]
    print("Questions evaluated:", len(answers))
    for index, answer in enumerate(answers, start=1):
        print(f"Q{index:02d}: {answer if answer is not None else '-'}")
    if "grade" in summary:
        grade = summary["grade"]
        status = "PASS" if grade["passed"] else "FAIL"
        print(f"Score: {grade['score']}/{grade['total']} ({status})")

    if args.output_json:
        args.output_json.parent.mkdir(parents=True, exist_ok=True)
        with args.output_json.open("w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2)
        print(f"Summary saved to {args.output_json}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
