"""Typed models shared across the application."""

from .chunk import Chunk, ChunkMetadata, ChunkRow
from .document import PageText, Paragraph, Rect, SourceRecord, SourceStatus, SourceType, TextRun
from .generation import EvidenceChunk, GenerationPayload, GenerationResult, QueuedTicket, QueueStatus
from .ingestion import FileResult, UploadedFile

__all__ = [
    "Chunk",
    "ChunkMetadata",
    "ChunkRow",
    "EvidenceChunk",
    "FileResult",
    "GenerationPayload",
    "GenerationResult",
    "PageText",
    "Paragraph",
    "QueueStatus",
    "QueuedTicket",
    "Rect",
    "SourceRecord",
    "SourceStatus",
    "SourceType",
    "TextRun",
    "UploadedFile",
]
