"""
Tests for PDF export of stories.
"""

from datetime import datetime
from unittest.mock import patch

import pytest

from narratoflow.core.pdf_export import PDF_TITLE, write_story_pdf


class TestWriteStoryPdf:
    """Test the exported PDF."""

    def test_writes_pdf_file(self, tmp_path):
        path = tmp_path / "story.pdf"

        write_story_pdf(str(path), "The North led the way.\n" * 80, "Playful Theme")

        data = path.read_bytes()
        assert data.startswith(b"%PDF")
        assert len(data) > 500

    def test_header_fields_and_body(self, tmp_path):
        with patch("narratoflow.core.pdf_export.FPDF") as mock_fpdf:
            pdf = mock_fpdf.return_value
            write_story_pdf(
                str(tmp_path / "story.pdf"),
                "Revenue rose.",
                "Professional Theme",
                generated_on=datetime(2026, 3, 15),
            )

        header = [call.args[2] for call in pdf.cell.call_args_list]
        assert header == [
            PDF_TITLE,
            "Theme: Professional Theme",
            "Generated on: 2026-03-15",
        ]
        assert pdf.cell.call_args_list[0].kwargs["align"] == "C"
        pdf.multi_cell.assert_called_once_with(0, 6, "Revenue rose.")
        pdf.output.assert_called_once_with(str(tmp_path / "story.pdf"))

    def test_non_latin1_text_is_replaced(self, tmp_path):
        path = tmp_path / "story.pdf"

        write_story_pdf(str(path), "Sales → up \U0001F4C8, café open", "Playful Theme")

        assert path.read_bytes().startswith(b"%PDF")

    def test_empty_story_rejected(self, tmp_path):
        path = tmp_path / "story.pdf"

        with pytest.raises(ValueError, match="No story available"):
            write_story_pdf(str(path), "   ", "Playful Theme")

        assert not path.exists()
