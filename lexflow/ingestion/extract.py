"""Extract positioned text runs from PDF bytes with PyMuPDF."""

from __future__ import annotations

import logging
from typing import List

import fitz

from lexflow.models.document import PageText, TextRun

logger = logging.getLogger(__name__)


def _line_run(line: dict) -> TextRun:
    spans = [span for span in line.get("spans", []) if span.get("text")]
    text = "".join(span["text"] for span in spans)
    if not spans:
        return TextRun(text=text)
    x0, y0, x1, y1 = line.get("bbox", (None, None, None, None))
    sizes = [span.get("size") for span in spans if span.get("size")]
    return TextRun(
        text=text,
        x=x0,
        y=y0,
        width=(x1 - x0) if x0 is not None and x1 is not None else None,
        height=(y1 - y0) if y0 is not None and y1 is not None else None,
        font_size=max(sizes) if sizes else None,
    )


def extract_pages(data: bytes) -> List[PageText]:
    """Return one PageText per page.

    Each text line becomes a run and every block ends with an empty run, so
    the normalizer sees block boundaries as paragraph breaks.
    """
    pages: List[PageText] = []
    with fitz.open(stream=data, filetype="pdf") as doc:
        for page_index in range(doc.page_count):
            page = doc[page_index]
            runs: List[TextRun] = []
            content = page.get_text("dict")
            blocks = [block for block in content.get("blocks", []) if block.get("type", 0) == 0]
            for block in sorted(blocks, key=lambda b: (b["bbox"][1], b["bbox"][0])):
                for line in block.get("lines", []):
                    run = _line_run(line)
                    if run.text.strip():
                        runs.append(run)
                runs.append(TextRun(text=""))
            pages.append(
                PageText(
                    page_number=page_index + 1,
                    width=page.rect.width,
                    height=page.rect.height,
                    runs=runs,
                )
            )
    logger.debug("Extracted %s pages", len(pages))
    return pages
