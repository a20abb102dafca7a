"""
PDF export of generated stories.
"""

from datetime import datetime
from typing import Optional

from fpdf import FPDF

PDF_TITLE = "AI Generated Story"


def _latin1(text: str) -> str:
    # The built-in PDF fonts only cover latin-1
    return text.encode("latin-1", "replace").decode("latin-1")


def write_story_pdf(
    path: str,
    story: str,
    theme: str,
    generated_on: Optional[datetime] = None,
) -> None:
    """Write a story to a PDF file.

    The page starts with a centered title, then the theme and generation
    date, then the story wrapped to the page width.

    Args:
        path: Destination file
        story: Story text
        theme: Theme the story was generated with
        generated_on: Date shown in the header (defaults to now)

    Raises:
        ValueError: If the story is empty
    """
    if not story or not story.strip():
        raise ValueError("No story available to export")
    generated_on = generated_on or datetime.now()

    pdf = FPDF()
    pdf.set_margins(20, 20, 20)
    pdf.add_page()

    pdf.set_font("Helvetica", "B", 20)
    pdf.cell(0, 10, PDF_TITLE, align="C", new_x="LMARGIN", new_y="NEXT")

    pdf.set_font("Helvetica", "", 12)
    pdf.cell(0, 8, _latin1(f"Theme: {theme}"), new_x="LMARGIN", new_y="NEXT")
    pdf.cell(0, 8, f"Generated on: {generated_on:%Y-%m-%d}", new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    pdf.set_font("Helvetica", "", 11)
    pdf.multi_cell(0, 6, _latin1(story))

    pdf.output(path)
