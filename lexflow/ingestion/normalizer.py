"""Group positioned text runs into paragraphs and headings."""

from __future__ import annotations

import logging
import re
from statistics import mean
from typing import Iterable, List, Optional

from lexflow.models.document import PageText, Paragraph, Rect, TextRun

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 12.0
LARGER_FONT_RATIO = 1.15
LEVEL_ONE_FONT_RATIO = 1.4
LEVEL_TWO_FONT_RATIO = 1.2
SHORT_LINE_CHARS = 100
CENTER_TOLERANCE = 0.15
CENTERED_MAX_WIDTH = 0.6

ALL_CAPS_PATTERN = re.compile(r"^[A-Z\s\d]+$")
NUMBERED_HEADING_PATTERN = re.compile(
    r"^(?:\d+\.|\([a-z]\)|\([ivx]+\)|[IVXLCDM]+\.|Article|Section|Part|Chapter)\s", re.IGNORECASE
)
LEVEL_ONE_PATTERN = re.compile(r"^(CHAPTER|PART|ARTICLE)\s", re.IGNORECASE)
LEVEL_TWO_PATTERN = re.compile(r"^(Section|\d+\.)\s", re.IGNORECASE)
SECTION_NUMBER_PATTERN = re.compile(r"^((?:\d+\.)+\d*|[IVXLCDM]+|\([a-z]\)|\([ivx]+\))\s")


def _has_geometry(run: TextRun) -> bool:
    return None not in (run.x, run.y, run.width, run.height)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class ParagraphNormalizer:
    """Turns per-page text runs into ordered Paragraphs.

    Runs are accumulated until an empty run or a heading run; consecutive heading
    runs form a single heading paragraph. Paragraphs never span pages.
    """

    def normalize(self, pages: Iterable[PageText]) -> List[Paragraph]:
        paragraphs: List[Paragraph] = []
        for page in pages:
            paragraphs.extend(self.normalize_page(page))
        logger.debug("Normalized %s paragraphs", len(paragraphs))
        return paragraphs

    def normalize_page(self, page: PageText) -> List[Paragraph]:
        sizes = [run.font_size for run in page.runs if run.font_size and run.text.strip()]
        average = mean(sizes) if sizes else DEFAULT_FONT_SIZE

        paragraphs: List[Paragraph] = []
        buffer: List[TextRun] = []
        buffer_is_heading = False

        def flush() -> None:
            nonlocal buffer
            if buffer:
                paragraph = self._build(buffer, page, average, buffer_is_heading)
                if paragraph.text:
                    paragraphs.append(paragraph)
            buffer = []

        for run in page.runs:
            if not run.text.strip():
                flush()
                continue
            heading = self.is_heading_run(run, page, average)
            if buffer and heading != buffer_is_heading:
                flush()
            buffer_is_heading = heading
            buffer.append(run)
        flush()
        return paragraphs

    def is_heading_run(self, run: TextRun, page: PageText, average: float) -> bool:
        text = run.text.strip()
        font = run.font_size or DEFAULT_FONT_SIZE
        short = len(text) < SHORT_LINE_CHARS

        if run.font_size and font > average * LARGER_FONT_RATIO:
            return True
        if short and ALL_CAPS_PATTERN.match(text) and len(text) > 3:
            return True
        if short and run.font_size and _has_geometry(run) and page.width:
            center = (run.x + run.width / 2) / page.width
            # full-width body lines are centered too; only narrow runs count
            if abs(center - 0.5) < CENTER_TOLERANCE and run.width / page.width < CENTERED_MAX_WIDTH:
                return True
        return bool(NUMBERED_HEADING_PATTERN.match(text))

    def _build(
        self,
        runs: List[TextRun],
        page: PageText,
        average: float,
        is_heading: bool,
    ) -> Paragraph:
        text = re.sub(r"\s+", " ", " ".join(run.text.strip() for run in runs)).strip()
        rects = [rect for rect in (self._rect(run, page) for run in runs) if rect]
        level: Optional[int] = None
        section_number: Optional[str] = None
        if is_heading:
            level = self._heading_level(runs[0], text, average)
            match = SECTION_NUMBER_PATTERN.match(text)
            if match:
                section_number = match.group(1)
        return Paragraph(
            text=text,
            page=page.page_number,
            rects=rects,
            is_heading=is_heading,
            heading_level=level,
            section_number=section_number,
        )

    @staticmethod
    def _heading_level(run: TextRun, text: str, average: float) -> int:
        font = run.font_size or DEFAULT_FONT_SIZE
        if font > average * LEVEL_ONE_FONT_RATIO or LEVEL_ONE_PATTERN.match(text):
            return 1
        if font > average * LEVEL_TWO_FONT_RATIO or LEVEL_TWO_PATTERN.match(text):
            return 2
        return 3

    @staticmethod
    def _rect(run: TextRun, page: PageText) -> Optional[Rect]:
        if run.font_size is None or not _has_geometry(run) or not page.width or not page.height:
            return None
        return Rect(
            left=_clamp(run.x / page.width),
            top=_clamp(run.y / page.height),
            width=_clamp(run.width / page.width),
            height=_clamp(run.height / page.height),
        )
