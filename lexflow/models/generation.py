"""Request and response models for evidence-grounded generation."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class EvidenceChunk(BaseModel):
    """A chunk of evidence supplied with a generation request."""

    id: str
    text: str
    source_title: Optional[str] = None
    page_number: Optional[int] = None


class GenerationPayload(BaseModel):
    """Inbound generation request body."""

    user_id: str
    project_id: str
    query_text: str
    chunks: List[EvidenceChunk] = Field(default_factory=list)


class GenerationResult(BaseModel):
    request_id: str
    text: str


class QueuedTicket(BaseModel):
    """Acknowledgment returned when a request is placed in the queue."""

    request_id: str
    queue_position: int
    estimated_wait_seconds: int
    message: str = "Request queued. Poll for the result."


class QueueStatus(BaseModel):
    in_queue: bool
    queue_position: Optional[int] = None
    estimated_wait_seconds: int = 0
    queue_mode_active: bool = False
    total_queue_length: int = 0
