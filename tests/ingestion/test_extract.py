"""Tests for PDF text extraction feeding the normalizer."""

import fitz
import pytest

from lexflow.ingestion.extract import extract_pages
from lexflow.ingestion.normalizer import ParagraphNormalizer


@pytest.fixture
def statute_pdf() -> bytes:
    doc = fitz.open()
    page = doc.new_page(width=612, height=792)
    page.insert_text((72, 72), "PART I GENERAL", fontsize=18)
    page.insert_text((20, 200), "The lessee shall keep the premises in good repair during the whole of the term.", fontsize=11)
    page.insert_text((20, 400), "The lessor may enter the premises on reasonable notice to inspect their state.", fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


class TestExtractPages:
    def test_runs_carry_geometry_and_font(self, statute_pdf):
        [page] = extract_pages(statute_pdf)

        assert page.page_number == 1
        assert page.width == pytest.approx(612)
        texts = [run for run in page.runs if run.text.strip()]
        assert texts[0].text.strip() == "PART I GENERAL"
        assert texts[0].font_size == pytest.approx(18, abs=0.5)
        assert texts[0].x is not None and texts[0].width > 0

    def test_large_heading_is_detected(self, statute_pdf):
        paragraphs = ParagraphNormalizer().normalize(extract_pages(statute_pdf))

        assert paragraphs[0].is_heading
        assert paragraphs[0].heading_level == 1
        assert paragraphs[0].text == "PART I GENERAL"
        assert paragraphs[1].text.startswith("The lessee")
        assert all(p.page == 1 for p in paragraphs)
