"""FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import List, Optional

from fastapi import FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from lexflow.admission import RequestAdmissionController, RequestState
from lexflow.config import settings
from lexflow.errors import ThrottledError, UserBusyError, ValidationError
from lexflow.ingestion.chunk_store import QdrantChunkStore
from lexflow.ingestion.embedding import EmbeddingCoordinator
from lexflow.ingestion.pipeline import IngestionService
from lexflow.ingestion.sources import SourceStorage
from lexflow.llm.answer_generator import AnswerGenerator
from lexflow.llm.openai_client import OpenAIEmbeddingClient
from lexflow.llm.retrying_client import RetryingModelClient
from lexflow.models.document import SourceRecord
from lexflow.models.generation import GenerationPayload, GenerationResult, QueueStatus
from lexflow.models.ingestion import UploadedFile

logger = logging.getLogger(__name__)


@dataclass
class Services:
    ingestion: IngestionService
    admission: RequestAdmissionController


def build_services() -> Services:
    retrying = RetryingModelClient()
    generator = AnswerGenerator(retrying=retrying)
    admission = RequestAdmissionController(
        lambda request: generator.generate(request.query_text, request.evidence)
    )
    retrying.on_throttle = admission.signal_throttle

    chunk_store = QdrantChunkStore()
    chunk_store.ensure_collection()
    ingestion = IngestionService(
        storage=SourceStorage(),
        chunk_store=chunk_store,
        embeddings=EmbeddingCoordinator(OpenAIEmbeddingClient()),
    )
    return Services(ingestion=ingestion, admission=admission)


def owned_source(service: IngestionService, project_id: str, source_id: str, user_id: Optional[str]) -> SourceRecord:
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required. Missing user id.")
    record = service.storage.load_record(project_id, source_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Source not found.")
    if record.owner_id != user_id:
        raise HTTPException(status_code=403, detail="Source not found or access denied.")
    return record


def create_app(services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=settings.log_level)
        app.state.services = services or build_services()
        yield
        await app.state.services.admission.aclose()

    app = FastAPI(
        title="lexflow",
        description="Legal source ingestion and evidence-grounded generation API",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        """Simple readiness probe."""
        return {"status": "ok"}

    @app.post("/sources/upload")
    async def upload_sources(
        request: Request,
        files: List[UploadFile] = File(default=[]),
        project_id: Optional[str] = Form(default=None),
        source_type: Optional[str] = Form(default=None, alias="type"),
        title: Optional[str] = Form(default=None),
        x_user_id: Optional[str] = Header(default=None),
    ):
        """Ingest one or more PDFs into a project."""
        uploads = [
            UploadedFile(file_name=item.filename or "upload.pdf", content_type=item.content_type, data=await item.read())
            for item in files
        ]
        service: IngestionService = request.app.state.services.ingestion
        try:
            results = await service.ingest(uploads, project_id, source_type, title, x_user_id)
        except ValidationError as exc:
            status_code = 401 if exc.code == "MISSING_USER" else 400
            return JSONResponse(
                status_code=status_code,
                content={"ok": False, "error": exc.message, "errorCode": exc.code},
            )
        return {
            "ok": True,
            "results": [
                {
                    "fileName": result.file_name,
                    "sourceId": result.source_id,
                    "status": result.status,
                    "error": result.error,
                    "errorCode": result.error_code,
                    "suggestions": result.suggestions,
                    "chunkCount": result.chunk_count,
                    "lostChunks": result.lost_chunks,
                }
                for result in results
            ],
        }

    @app.get("/sources/{source_id}/chunks")
    async def source_chunks(
        source_id: str,
        project_id: str,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ):
        """List a source's chunks with rects and metadata for highlighting."""
        service: IngestionService = request.app.state.services.ingestion
        record = owned_source(service, project_id, source_id, x_user_id)
        chunks = await asyncio.to_thread(service.chunk_store.list_source, source_id)
        return {
            "sourceId": record.source_id,
            "title": record.title,
            "sourceType": record.source_type.value,
            "sourceTypeLabel": record.source_type.label,
            "chunks": chunks,
        }

    @app.get("/sources/{source_id}/pdf")
    async def source_pdf(
        source_id: str,
        project_id: str,
        request: Request,
        x_user_id: Optional[str] = Header(default=None),
    ):
        """Serve the stored PDF of a source."""
        service: IngestionService = request.app.state.services.ingestion
        record = owned_source(service, project_id, source_id, x_user_id)
        try:
            data = await asyncio.to_thread(service.storage.load_pdf, record.storage_path)
        except FileNotFoundError as exc:
            logger.error("Stored PDF missing for source %s", source_id)
            raise HTTPException(status_code=404, detail="Stored PDF not found.") from exc
        return Response(
            content=data,
            media_type="application/pdf",
            headers={"Content-Disposition": f'inline; filename="{record.file_name}"'},
        )

    @app.post("/reasoning/generate")
    async def generate(payload: GenerationPayload, request: Request):
        """Run a generation now, queue it, or report that the user is busy."""
        admission: RequestAdmissionController = request.app.state.services.admission
        try:
            outcome = await admission.submit(
                payload.user_id, payload.project_id, payload.query_text, payload.chunks
            )
        except UserBusyError as exc:
            return JSONResponse(
                status_code=429,
                content={"error": exc.message, "retry_after": exc.retry_after},
                headers={"Retry-After": str(int(exc.retry_after))},
            )
        except ThrottledError as exc:
            logger.error("Generation throttled after %s attempts", exc.attempt)
            return JSONResponse(
                status_code=429,
                content={"error": "The model is rate limited. Please try again shortly."},
                headers={"Retry-After": str(settings.queue_wait_estimate_seconds)},
            )
        except Exception as exc:
            logger.error("Generation failed: %s", exc)
            raise HTTPException(status_code=500, detail="Generation failed.") from exc

        if isinstance(outcome, GenerationResult):
            return outcome.model_dump()
        return JSONResponse(status_code=202, content=outcome.model_dump())

    @app.get("/reasoning/generate/{request_id}")
    async def generation_status(request_id: str, request: Request):
        """Poll a queued generation request."""
        admission: RequestAdmissionController = request.app.state.services.admission
        tracked = admission.lookup(request_id)
        if tracked is None:
            raise HTTPException(status_code=404, detail="Unknown request id.")
        if not tracked.future.done():
            return {"request_id": request_id, "status": tracked.state.value}
        error = tracked.future.exception()
        if error is None:
            return {"request_id": request_id, "status": RequestState.COMPLETED.value, "text": tracked.future.result()}
        return {"request_id": request_id, "status": tracked.state.value, "error": str(error)}

    @app.get("/reasoning/queue-status", response_model=QueueStatus)
    async def queue_status(user_id: str, request: Request) -> QueueStatus:
        admission: RequestAdmissionController = request.app.state.services.admission
        return admission.queue_status(user_id)

    return app


app = create_app()
