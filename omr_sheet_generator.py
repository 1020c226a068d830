#!/usr/bin/env python3
"""
Generate a printable OMR answer sheet PDF using reportlab.

The page is drawn in template units (1 unit = 1 PDF point), so the printed
bubbles land exactly where the scanner samples them.
"""

import argparse
import logging
from pathlib import Path

from reportlab.lib import colors
from reportlab.pdfgen import canvas

from omr_layout import DEFAULT_LAYOUT, capped_question_count, question_bubbles

logger = logging.getLogger(__name__)

# Bubble outlines are printed light so an empty bubble never binarizes as a mark
BUBBLE_INK = colors.Color(0.8, 0.8, 0.8)


def create_omr_sheet_pdf(filename="sheets/omr_sheet.pdf", title="Answer Sheet", question_count=100,
                         layout=DEFAULT_LAYOUT):
    """
    Create an OMR answer sheet PDF with corner markers and answer bubbles.

    Args:
        filename (str): Output PDF filename
        title (str): Heading printed at the top of the sheet
        question_count (int): Number of questions to print (capped at the layout maximum)
        layout (LayoutDescriptor): Sheet geometry shared with the scanner
    """
    Path(filename).parent.mkdir(parents=True, exist_ok=True)
    width, height = layout.template_width, layout.template_height
    c = canvas.Canvas(str(filename), pagesize=(width, height))

    def pdf_y(y):
        # Template origin is top-left, PDF origin is bottom-left
        return height - y

    c.setFillColor(colors.black)
    c.setStrokeColor(colors.black)

    # Corner markers: solid squares centred marker_inset from each corner
    half = layout.marker_size / 2
    inset = layout.marker_inset
    for cx, cy in ((inset, inset), (width - inset, inset),
                   (inset, height - inset), (width - inset, height - inset)):
        c.rect(cx - half, pdf_y(cy) - half, layout.marker_size, layout.marker_size, stroke=0, fill=1)

    # Title and name line
    c.setFont("Helvetica-Bold", 22)
    c.drawCentredString(width / 2, pdf_y(66), title)
    c.setFont("Helvetica", 14)
    c.drawString(50, pdf_y(100), "Name :")
    c.setLineWidth(1)
    c.line(100, pdf_y(105), 349, pdf_y(105))

    # Question numbers and bubbles
    c.setLineWidth(0.8)
    c.setStrokeColor(BUBBLE_INK)
    c.setFont("Courier", 8)
    count = capped_question_count(question_count, layout)
    for i in range(count):
        label_x, label_y = layout.label_anchor(i)
        c.drawRightString(label_x, pdf_y(label_y), f"{i + 1}.")

        for bubble in question_bubbles(layout, i, (1.0, 1.0)):
            c.circle(bubble.center.x, pdf_y(bubble.center.y), layout.bubble_radius, stroke=1, fill=0)

    c.showPage()
    c.save()
    logger.info("PDF created: %s (%d questions)", filename, count)
    return Path(filename)


def main():
    parser = argparse.ArgumentParser(description="Generate a printable OMR answer sheet")
    parser.add_argument("output", type=Path, nargs="?", default=Path("sheets/omr_sheet.pdf"))
    parser.add_argument("--title", default="Answer Sheet")
    parser.add_argument("--questions", type=int, default=DEFAULT_LAYOUT.max_questions)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    path = create_omr_sheet_pdf(args.output, args.title, args.questions)
    print(f"PDF created: {path}")


if __name__ == "__main__":
    main()
