"""Models describing uploaded files and their per-file outcome."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class UploadedFile(BaseModel):
    file_name: str
    content_type: Optional[str] = None
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class FileResult(BaseModel):
    """Outcome of ingesting one uploaded file."""

    file_name: str
    status: str
    source_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)
    chunk_count: int = 0
    lost_chunks: int = 0

    @property
    def ok(self) -> bool:
        return self.status == "ok"
