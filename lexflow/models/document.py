"""Document-level data models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    """Kinds of legal source a PDF can be uploaded as."""

    CASE = "case"
    STATUTE = "statute"
    REGULATION = "regulation"
    CONSTITUTION = "constitution"
    TREATY = "treaty"
    JOURNAL_ARTICLE = "journal_article"
    BOOK = "book"
    COMMENTARY = "commentary"
    OTHER = "other"

    @property
    def label(self) -> str:
        return SOURCE_TYPE_LABELS[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "SourceType":
        """Map a free-form tag to a SourceType, defaulting to OTHER."""
        if not value:
            return cls.OTHER
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.OTHER


SOURCE_TYPE_LABELS = {
    SourceType.CASE: "Case Law",
    SourceType.STATUTE: "Statute / Act",
    SourceType.REGULATION: "Regulation / Rule",
    SourceType.CONSTITUTION: "Constitution",
    SourceType.TREATY: "Treaty / Convention",
    SourceType.JOURNAL_ARTICLE: "Journal Article",
    SourceType.BOOK: "Book / Treatise",
    SourceType.COMMENTARY: "Commentary / Practice Note",
    SourceType.OTHER: "Other",
}


class Rect(BaseModel):
    """Bounding box normalized to the page, all values in [0, 1]."""

    left: float
    top: float
    width: float
    height: float


class TextRun(BaseModel):
    """A positioned piece of text as reported by the PDF extractor.

    Coordinates use a top-left origin in PDF points. Geometry and font size are
    optional because extraction occasionally yields runs without them.
    """

    text: str
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    font_size: Optional[float] = None


class PageText(BaseModel):
    """All text runs of one page, in reading order."""

    page_number: int
    width: float
    height: float
    runs: List[TextRun] = Field(default_factory=list)


class Paragraph(BaseModel):
    """A normalized paragraph or heading ready for chunking."""

    text: str
    page: int
    rects: List[Rect] = Field(default_factory=list)
    is_heading: bool = False
    heading_level: Optional[int] = None
    section_number: Optional[str] = None


class SourceStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


class SourceRecord(BaseModel):
    """Persisted description of an uploaded source document."""

    source_id: str
    project_id: str
    owner_id: str
    title: str
    source_type: SourceType
    storage_path: str
    file_name: str
    file_size: int
    status: SourceStatus = SourceStatus.PENDING
    page_count: Optional[int] = None
    chunk_count: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
