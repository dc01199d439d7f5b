"""Chunk-level models used for embedding and persistence."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .document import Rect


class ChunkMetadata(BaseModel):
    """Legal metadata derived from a chunk's text."""

    section_header: Optional[str] = None
    case_citations: List[str] = Field(default_factory=list)
    statute_references: List[str] = Field(default_factory=list)
    detected_patterns: List[str] = Field(default_factory=list)
    heading_context: Optional[str] = None


class Chunk(BaseModel):
    """A bounded span of document text.

    ``text`` begins with ``overlap_chars`` characters copied from the end of the
    previous chunk; ``core_text`` is the remainder, and the core texts of all
    chunks of a document, joined by single spaces, give back the document text.
    """

    chunk_index: int
    page_number: int
    paragraph_index: int
    char_start: int
    char_end: int
    text: str
    overlap_chars: int = 0
    checksum: str
    rects: List[Rect] = Field(default_factory=list)
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)

    @property
    def core_text(self) -> str:
        return self.text[self.overlap_chars:]


class ChunkRow(Chunk):
    """A chunk with its vector, as written to the chunk store."""

    project_id: str
    source_id: str
    embedding: List[float]

    def payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude={"embedding"})
