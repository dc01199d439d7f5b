"""Ingest uploaded PDFs: store, extract, chunk, embed and persist."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Optional, Sequence

from lexflow.config import settings
from lexflow.errors import IngestionError, ValidationError
from lexflow.ingestion.chunk_store import QdrantChunkStore
from lexflow.ingestion.chunking import SemanticChunker
from lexflow.ingestion.embedding import EmbeddingCoordinator
from lexflow.ingestion.extract import extract_pages
from lexflow.ingestion.normalizer import ParagraphNormalizer
from lexflow.ingestion.sources import SourceStorage
from lexflow.models.chunk import ChunkRow
from lexflow.models.document import PageText, SourceRecord, SourceStatus, SourceType
from lexflow.models.ingestion import FileResult, UploadedFile

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"

SUGGESTIONS: Dict[str, List[str]] = {
    "INVALID_FILE_TYPE": [
        "Only PDF files are supported.",
        "Convert the document to PDF before uploading.",
    ],
    "FILE_TOO_LARGE": [
        "Split the document into smaller PDFs.",
        "Compress the PDF to reduce its size.",
    ],
    "FILE_CORRUPTED": [
        "The file appears to be empty or truncated.",
        "Re-export the PDF and upload it again.",
    ],
    "STORAGE_ERROR": [
        "The file could not be stored. Try the upload again.",
        "If the problem persists, rename the file and retry.",
    ],
    "DATABASE_ERROR": [
        "The source record could not be saved. Try again shortly.",
    ],
    "PDF_PARSE_ERROR": [
        "The PDF could not be read. Check that it is not password protected.",
        "Scanned PDFs need OCR before upload.",
    ],
    "EMBEDDING_ERROR": [
        "The embedding service is unavailable or rate limited. Try again in a few minutes.",
    ],
    "NO_TEXT": [
        "No extractable text was found. Run OCR on scanned documents.",
    ],
    "UNKNOWN_ERROR": [
        "Try the upload again.",
        "Contact support if the problem persists.",
    ],
}

Extractor = Callable[[bytes], List[PageText]]


def file_error(code: str, message: str) -> IngestionError:
    return IngestionError(code, message, SUGGESTIONS.get(code, SUGGESTIONS["UNKNOWN_ERROR"]))


class IngestionService:
    """Entry point for source uploads.

    Files are processed at most ``concurrency`` at a time and fail
    independently; a failed file leaves no record, stored PDF or chunk rows.
    """

    def __init__(
        self,
        storage: SourceStorage,
        chunk_store: QdrantChunkStore,
        embeddings: EmbeddingCoordinator,
        normalizer: Optional[ParagraphNormalizer] = None,
        extractor: Extractor = extract_pages,
        concurrency: Optional[int] = None,
    ) -> None:
        self.storage = storage
        self.chunk_store = chunk_store
        self.embeddings = embeddings
        self.normalizer = normalizer or ParagraphNormalizer()
        self.extractor = extractor
        self.concurrency = concurrency or settings.upload_concurrency

    @staticmethod
    def validate_request(
        files: Sequence[UploadedFile],
        project_id: Optional[str],
        source_type: Optional[str],
        title: Optional[str],
        user_id: Optional[str],
    ) -> None:
        if not user_id:
            raise ValidationError("Authentication required", field="user_id", code="MISSING_USER")
        if not files:
            raise ValidationError("No files provided", field="files", code="NO_FILES")
        if not project_id:
            raise ValidationError("Project ID is required", field="project_id", code="MISSING_PROJECT_ID")
        if not source_type:
            raise ValidationError("Source type is required", field="type", code="MISSING_TYPE")
        if not title or not title.strip():
            raise ValidationError("Title is required", field="title", code="MISSING_TITLE")

    @staticmethod
    def validate_file(upload: UploadedFile) -> None:
        if upload.content_type != PDF_CONTENT_TYPE:
            raise file_error("INVALID_FILE_TYPE", f"{upload.file_name} is not a PDF")
        if upload.size > settings.max_upload_bytes:
            raise file_error("FILE_TOO_LARGE", f"{upload.file_name} exceeds the upload size limit")
        if upload.size < settings.min_upload_bytes:
            raise file_error("FILE_CORRUPTED", f"{upload.file_name} is too small to be a valid PDF")

    async def ingest(
        self,
        files: Sequence[UploadedFile],
        project_id: Optional[str],
        source_type: Optional[str],
        title: Optional[str],
        user_id: Optional[str],
    ) -> List[FileResult]:
        self.validate_request(files, project_id, source_type, title, user_id)
        kind = SourceType.parse(source_type)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(upload: UploadedFile) -> FileResult:
            async with semaphore:
                file_title = f"{title} — {upload.file_name}" if len(files) > 1 else title
                return await self.ingest_file(upload, project_id, kind, file_title, user_id)

        results = await asyncio.gather(*(bounded(upload) for upload in files))
        logger.info(
            "Ingested %s of %s files into project %s",
            sum(1 for result in results if result.ok),
            len(files),
            project_id,
        )
        return list(results)

    async def ingest_file(
        self,
        upload: UploadedFile,
        project_id: str,
        source_type: SourceType,
        title: str,
        user_id: str,
    ) -> FileResult:
        source_id = str(uuid.uuid4())
        record: Optional[SourceRecord] = None
        stored = False
        try:
            self.validate_file(upload)
            record = SourceRecord(
                source_id=source_id,
                project_id=project_id,
                owner_id=user_id,
                title=title,
                source_type=source_type,
                storage_path=self.storage.storage_path(project_id, source_id),
                file_name=upload.file_name,
                file_size=upload.size,
            )
            try:
                self.storage.save_pdf(record.storage_path, upload.data)
            except OSError as exc:
                raise file_error("STORAGE_ERROR", f"Failed to store {upload.file_name}: {exc}") from exc
            stored = True
            try:
                self.storage.save_record(record)
            except OSError as exc:
                raise file_error("DATABASE_ERROR", f"Failed to save source record: {exc}") from exc

            rows, lost, page_count = await self._process(upload, record)
            record = self.storage.mark(
                record, SourceStatus.COMPLETE, chunk_count=len(rows), page_count=page_count
            )
            return FileResult(
                file_name=upload.file_name,
                status="ok",
                source_id=source_id,
                chunk_count=len(rows),
                lost_chunks=lost,
            )
        except IngestionError as exc:
            logger.warning("Ingestion of %s failed: %s", upload.file_name, exc)
            self._rollback(record, stored)
            return FileResult(
                file_name=upload.file_name,
                status="failed",
                error=exc.message,
                error_code=exc.code,
                suggestions=exc.suggestions,
            )
        except Exception as exc:
            logger.exception("Unexpected failure ingesting %s", upload.file_name)
            self._rollback(record, stored)
            return FileResult(
                file_name=upload.file_name,
                status="failed",
                error=str(exc),
                error_code="UNKNOWN_ERROR",
                suggestions=SUGGESTIONS["UNKNOWN_ERROR"],
            )

    async def _process(self, upload: UploadedFile, record: SourceRecord):
        try:
            pages = await asyncio.to_thread(self.extractor, upload.data)
        except Exception as exc:
            raise file_error("PDF_PARSE_ERROR", f"Failed to parse {upload.file_name}: {exc}") from exc

        paragraphs = self.normalizer.normalize(pages)
        chunker = SemanticChunker.for_source_type(record.source_type)
        chunks = [c for c in chunker.chunk(paragraphs) if len(c.text.strip()) >= settings.min_chunk_chars]
        if not chunks:
            raise file_error("NO_TEXT", f"No text could be extracted from {upload.file_name}")

        outcome = await self.embeddings.embed_chunks([(c.text, c.chunk_index) for c in chunks])
        rows = [
            ChunkRow(
                **chunk.model_dump(),
                project_id=record.project_id,
                source_id=record.source_id,
                embedding=outcome.vectors[chunk.chunk_index],
            )
            for chunk in chunks
            if chunk.chunk_index in outcome.vectors
        ]
        lost = len(chunks) - len(rows)
        if lost:
            logger.warning(
                "Partial ingestion of %s: %s of %s chunks have no embedding and were dropped",
                record.source_id,
                lost,
                len(chunks),
            )
        if not rows:
            raise file_error("EMBEDDING_ERROR", "No chunk could be embedded")

        try:
            await asyncio.to_thread(self.chunk_store.insert_rows, rows)
        except Exception as exc:
            raise file_error("DATABASE_ERROR", f"Failed to insert chunks: {exc}") from exc
        return rows, lost, len(pages)

    def _rollback(self, record: Optional[SourceRecord], stored: bool) -> None:
        if record is None:
            return
        cleanups = [
            ("chunk rows", lambda: self.chunk_store.delete_source(record.source_id)),
            ("source record", lambda: self.storage.delete_record(record)),
        ]
        if stored:
            cleanups.append(("stored PDF", lambda: self.storage.delete_pdf(record.storage_path)))
        for name, cleanup in cleanups:
            try:
                cleanup()
            except Exception as exc:
                logger.error("Rollback of %s for source %s failed: %s", name, record.source_id, exc)
