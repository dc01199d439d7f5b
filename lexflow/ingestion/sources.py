"""Local storage for uploaded PDFs and their source records."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from lexflow.config import settings
from lexflow.models.document import SourceRecord, SourceStatus

logger = logging.getLogger(__name__)


class SourceStorage:
    """Stores ``{project_id}/{source_id}.pdf`` plus a JSON record beside it."""

    def __init__(self, root: Optional[Path] = None) -> None:
        self.root = Path(root) if root else settings.storage_root_path

    def storage_path(self, project_id: str, source_id: str) -> str:
        return f"{project_id}/{source_id}.pdf"

    def _record_path(self, record: SourceRecord) -> Path:
        return self.root / record.project_id / f"{record.source_id}.json"

    def save_pdf(self, storage_path: str, data: bytes) -> None:
        target = self.root / storage_path
        target.parent.mkdir(parents=True, exist_ok=True)
        with target.open("xb") as handle:
            handle.write(data)

    def load_pdf(self, storage_path: str) -> bytes:
        return (self.root / storage_path).read_bytes()

    def delete_pdf(self, storage_path: str) -> None:
        (self.root / storage_path).unlink(missing_ok=True)

    def save_record(self, record: SourceRecord) -> None:
        path = self._record_path(record)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(record.model_dump_json(indent=2), encoding="utf-8")

    def load_record(self, project_id: str, source_id: str) -> Optional[SourceRecord]:
        path = self.root / project_id / f"{source_id}.json"
        if not path.exists():
            return None
        return SourceRecord.model_validate_json(path.read_text(encoding="utf-8"))

    def mark(self, record: SourceRecord, status: SourceStatus, **changes) -> SourceRecord:
        updated = record.model_copy(update={"status": status, **changes})
        self.save_record(updated)
        logger.debug("Source %s marked %s", record.source_id, status.value)
        return updated

    def delete_record(self, record: SourceRecord) -> None:
        self._record_path(record).unlink(missing_ok=True)
