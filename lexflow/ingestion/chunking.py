"""Convert normalized paragraphs into bounded, overlapping evidence chunks."""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Union

from lexflow.ingestion.continuity import ContinuityScorer, LegalContinuityScorer
from lexflow.ingestion.metadata import LegalMetadataExtractor, MetadataExtractor, detect_argument_phase
from lexflow.ingestion.policies import DEFAULT_POLICY, ChunkPolicy, policy_for
from lexflow.models.chunk import Chunk
from lexflow.models.document import Paragraph, Rect, SourceType

logger = logging.getLogger(__name__)

HEADING_MAX_CHARS = 150
HEADING_TEXT_PATTERNS = [
    re.compile(r"^[A-Z\s\d.]+$"),
    re.compile(r"^\d+[.)]\s+[A-Z]"),
    re.compile(r"^(Chapter|Section|Part|Article)\s+\d+", re.IGNORECASE),
]
LEGAL_CITATION_PATTERN = re.compile(
    r"\(\d{4}\)|\[\d{4}\]|\bv\.|\bv\s|\bSee\s|\bCf\.|\bId\.|\bSupra\b|\bInfra\b", re.IGNORECASE
)
SECTION_START_PATTERNS = [
    re.compile(r"^(?:Section|§|Article|Part)\s+\d+", re.IGNORECASE),
    re.compile(r"^\(\d+\)\s"),
    re.compile(r"^\d+\.\s+[A-Z]"),
]
SENTENCE_END_PATTERN = re.compile(r"[.!?][\"'”’)\]]*\s")


@dataclass
class _Segment:
    text: str
    paragraph_index: int
    paragraph: Paragraph


@dataclass
class _Draft:
    overlap: str
    segments: List[_Segment] = field(default_factory=list)

    @property
    def core(self) -> str:
        return " ".join(segment.text for segment in self.segments)

    @property
    def text(self) -> str:
        core = self.core
        return f"{self.overlap} {core}" if self.overlap else core


def looks_like_heading(paragraph: Paragraph, text: str) -> bool:
    if paragraph.is_heading:
        return True
    return len(text) < HEADING_MAX_CHARS and any(p.search(text) for p in HEADING_TEXT_PATTERNS)


def has_legal_citation(text: str) -> bool:
    return bool(LEGAL_CITATION_PATTERN.search(text))


def opens_numbered_section(text: str) -> bool:
    return any(pattern.search(text) for pattern in SECTION_START_PATTERNS)


def split_long_text(text: str, limit: int) -> List[str]:
    """Split text into pieces of at most ``limit`` characters.

    Cuts prefer a sentence end in the second half of the window, then the last
    whitespace, then a hard cut. Pieces are stripped, so joining them with single
    spaces restores whitespace-normalized input.
    """
    pieces: List[str] = []
    remaining = text.strip()
    while len(remaining) > limit:
        window = remaining[: limit + 1]
        cut = None
        for match in SENTENCE_END_PATTERN.finditer(window):
            if match.end() - 1 >= limit // 2:
                cut = match.end() - 1
        if cut is None:
            space = window.rfind(" ")
            cut = space if space > 0 else limit
        pieces.append(remaining[:cut].strip())
        remaining = remaining[cut:].strip()
    if remaining:
        pieces.append(remaining)
    return pieces


def overlap_tail(segments: Sequence[_Segment], budget: int) -> str:
    """Return up to ``budget`` trailing characters of the joined segments.

    Whole segments are taken from the end while they fit; the next one
    contributes a word-aligned tail. The result is always a suffix of the
    segments joined with single spaces.
    """
    if budget <= 0:
        return ""
    parts: List[str] = []
    used = 0
    for segment in reversed(segments):
        separator = 1 if parts else 0
        if used + separator + len(segment.text) <= budget:
            parts.insert(0, segment.text)
            used += separator + len(segment.text)
            continue
        room = budget - used - separator
        if room > 0:
            tail = segment.text[-room:]
            if len(tail) < len(segment.text) and not segment.text[-room - 1].isspace():
                space = tail.find(" ")
                tail = tail[space + 1:] if space >= 0 else ""
            tail = tail.strip()
            if tail:
                parts.insert(0, tail)
        break
    return " ".join(parts)


class SemanticChunker:
    """Splits a document's paragraphs into chunks sized by a ChunkPolicy."""

    def __init__(
        self,
        policy: Optional[ChunkPolicy] = None,
        scorer: Optional[ContinuityScorer] = None,
        extractor: Optional[MetadataExtractor] = None,
    ) -> None:
        self.policy = policy or DEFAULT_POLICY
        self.scorer = scorer or LegalContinuityScorer()
        self.extractor = extractor or LegalMetadataExtractor()

    @classmethod
    def for_source_type(cls, source_type: Union[SourceType, str, None], **kwargs) -> "SemanticChunker":
        return cls(policy=policy_for(source_type), **kwargs)

    def chunk(self, paragraphs: Iterable[Paragraph]) -> List[Chunk]:
        segments = self._segments(paragraphs)
        if not segments:
            return []
        drafts = self._merge_undersized(self._draft(segments))
        chunks = self._finalize(drafts)
        logger.debug("Produced %s chunks from %s segments", len(chunks), len(segments))
        return chunks

    def _segments(self, paragraphs: Iterable[Paragraph]) -> List[_Segment]:
        segments: List[_Segment] = []
        for index, paragraph in enumerate(paragraphs):
            text = paragraph.text.strip()
            if not text:
                continue
            for piece in split_long_text(text, self.policy.max_chars):
                segments.append(_Segment(text=piece, paragraph_index=index, paragraph=paragraph))
        return segments

    def _should_break(self, draft: _Draft, segment: _Segment, phase_shift: bool) -> bool:
        policy = self.policy
        core = draft.core
        core_len = len(core)
        candidate_core = len(core) + 1 + len(segment.text)
        candidate_full = len(draft.text) + 1 + len(segment.text)

        if candidate_core > policy.max_chars or candidate_full > policy.max_chunk_chars:
            return True
        if core_len >= policy.min_chars and not self.scorer.is_continuous(
            draft.segments[-1].text, segment.text
        ):
            return True
        if core_len >= policy.min_chars and looks_like_heading(segment.paragraph, segment.text):
            return True
        if core_len >= 1.5 * policy.min_chars and has_legal_citation(segment.text):
            return True
        if (
            policy.numbered_sections
            and core_len >= 0.5 * policy.min_chars
            and opens_numbered_section(segment.text)
        ):
            return True
        return phase_shift and core_len >= policy.min_chars

    def _draft(self, segments: List[_Segment]) -> List[_Draft]:
        drafts: List[_Draft] = []
        current = _Draft(overlap="")
        current_phase: Optional[str] = None

        for segment in segments:
            phase = detect_argument_phase(segment.text) if self.policy.argument_phases else None
            if not current.segments:
                current.segments.append(segment)
                current_phase = phase or current_phase
                continue

            phase_shift = bool(phase and current_phase and phase != current_phase)
            if self._should_break(current, segment, phase_shift):
                drafts.append(current)
                current = _Draft(overlap=overlap_tail(current.segments, self.policy.overlap_chars))
                current_phase = None
            current.segments.append(segment)
            if phase:
                current_phase = phase

        drafts.append(current)
        return drafts

    def _merge_undersized(self, drafts: List[_Draft]) -> List[_Draft]:
        """Single pass folding chunks below min_chars into a neighbour.

        Non-final drafts merge forward; a short final draft merges backward. A
        merge that would exceed max_chunk_chars is skipped.
        """
        policy = self.policy
        merged: List[_Draft] = []
        pending: Optional[_Draft] = None
        for index, draft in enumerate(drafts):
            if pending is not None:
                combined = _Draft(overlap=pending.overlap, segments=pending.segments + draft.segments)
                if len(combined.text) <= policy.max_chunk_chars:
                    draft = combined
                else:
                    merged.append(pending)
                pending = None

            is_last = index == len(drafts) - 1
            if len(draft.core) < policy.min_chars and not is_last:
                pending = draft
                continue

            if is_last and merged and len(draft.core) < policy.min_chars:
                previous = merged[-1]
                combined = _Draft(overlap=previous.overlap, segments=previous.segments + draft.segments)
                if len(combined.text) <= policy.max_chunk_chars:
                    merged[-1] = combined
                    continue
            merged.append(draft)
        return merged

    def _finalize(self, drafts: List[_Draft]) -> List[Chunk]:
        chunks: List[Chunk] = []
        cursor = 0
        for index, draft in enumerate(drafts):
            first = draft.segments[0]
            core = draft.core
            text = draft.text
            paragraphs: List[Paragraph] = []
            rects: List[Rect] = []
            for segment in draft.segments:
                if not any(existing is segment.paragraph for existing in paragraphs):
                    paragraphs.append(segment.paragraph)
                    rects.extend(segment.paragraph.rects)
            chunks.append(
                Chunk(
                    chunk_index=index,
                    page_number=first.paragraph.page,
                    paragraph_index=first.paragraph_index,
                    char_start=cursor,
                    char_end=cursor + len(core),
                    text=text,
                    overlap_chars=len(text) - len(core),
                    checksum=hashlib.sha256(text.encode("utf-8")).hexdigest(),
                    rects=rects,
                    metadata=self.extractor.extract(text, paragraphs),
                )
            )
            cursor += len(core) + 1
        return chunks
