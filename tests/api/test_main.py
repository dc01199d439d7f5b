"""Tests for the HTTP surface."""

import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import no_sleep
from lexflow.admission import RequestAdmissionController
from lexflow.api.main import Services, create_app
from lexflow.errors import ValidationError
from lexflow.ingestion.sources import SourceStorage
from lexflow.models.document import SourceRecord, SourceType
from lexflow.models.ingestion import FileResult


async def answer(request):
    return f"answer to {request.query_text}"


@pytest.fixture
def services(tmp_path) -> Services:
    ingestion = MagicMock()
    ingestion.storage = SourceStorage(tmp_path)
    ingestion.chunk_store = MagicMock()
    ingestion.ingest = AsyncMock(
        return_value=[FileResult(file_name="lease.pdf", status="ok", source_id="src-1", chunk_count=4)]
    )
    admission = RequestAdmissionController(
        answer, sleep=no_sleep, item_delay_seconds=0.0, queue_mode_item_delay_seconds=0.0
    )
    return Services(ingestion=ingestion, admission=admission)


@pytest.fixture
def client(services):
    with TestClient(create_app(services)) as test_client:
        yield test_client


PAYLOAD = {
    "user_id": "u1",
    "project_id": "p1",
    "query_text": "Is the covenant enforceable?",
    "chunks": [{"id": "c1", "text": "The covenant runs with the land.", "page_number": 3}],
}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestUpload:
    def test_upload_returns_per_file_results(self, client, services):
        response = client.post(
            "/sources/upload",
            data={"project_id": "p1", "type": "statute", "title": "Housing Act"},
            files=[("files", ("lease.pdf", b"%PDF-1.4 data", "application/pdf"))],
            headers={"X-User-Id": "u1"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["results"][0]["sourceId"] == "src-1"
        uploads, project_id, source_type, title, user_id = services.ingestion.ingest.call_args.args
        assert uploads[0].file_name == "lease.pdf"
        assert uploads[0].content_type == "application/pdf"
        assert (project_id, source_type, title, user_id) == ("p1", "statute", "Housing Act", "u1")

    def test_missing_user_is_unauthorized(self, client, services):
        services.ingestion.ingest.side_effect = ValidationError(
            "Authentication required", field="user_id", code="MISSING_USER"
        )

        response = client.post(
            "/sources/upload",
            data={"project_id": "p1", "type": "statute", "title": "Act"},
            files=[("files", ("lease.pdf", b"%PDF-1.4 data", "application/pdf"))],
        )

        assert response.status_code == 401
        assert response.json()["errorCode"] == "MISSING_USER"

    def test_other_validation_errors_are_bad_requests(self, client, services):
        services.ingestion.ingest.side_effect = ValidationError("No files provided", code="NO_FILES")

        response = client.post(
            "/sources/upload",
            data={"project_id": "p1"},
            files=[("files", ("lease.pdf", b"%PDF-1.4 data", "application/pdf"))],
            headers={"X-User-Id": "u1"},
        )

        assert response.status_code == 400
        assert response.json()["errorCode"] == "NO_FILES"


def stored_source(services, owner_id: str = "u1", with_pdf: bool = True) -> SourceRecord:
    record = SourceRecord(
        source_id="src-1",
        project_id="p1",
        owner_id=owner_id,
        title="Housing Act",
        source_type=SourceType.STATUTE,
        storage_path="p1/src-1.pdf",
        file_name="housing.pdf",
        file_size=13,
    )
    services.ingestion.storage.save_record(record)
    if with_pdf:
        services.ingestion.storage.save_pdf(record.storage_path, b"%PDF-1.4 data")
    return record


class TestSourceReads:
    def test_chunks_are_listed_with_source_details(self, client, services):
        stored_source(services)
        services.ingestion.chunk_store.list_source.return_value = [
            {"chunk_index": 0, "text": "Section 1 applies.", "rects": [{"left": 0.1, "top": 0.1, "width": 0.5, "height": 0.02}]},
        ]

        response = client.get("/sources/src-1/chunks", params={"project_id": "p1"}, headers={"X-User-Id": "u1"})

        assert response.status_code == 200
        body = response.json()
        assert body["sourceTypeLabel"] == "Statute / Act"
        assert body["chunks"][0]["rects"][0]["left"] == 0.1
        services.ingestion.chunk_store.list_source.assert_called_once_with("src-1")

    def test_pdf_is_served(self, client, services):
        stored_source(services)

        response = client.get("/sources/src-1/pdf", params={"project_id": "p1"}, headers={"X-User-Id": "u1"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == b"%PDF-1.4 data"

    def test_reads_require_a_user(self, client, services):
        stored_source(services)

        response = client.get("/sources/src-1/pdf", params={"project_id": "p1"})

        assert response.status_code == 401

    def test_other_owners_are_denied(self, client, services):
        stored_source(services, owner_id="someone-else")

        response = client.get("/sources/src-1/chunks", params={"project_id": "p1"}, headers={"X-User-Id": "u1"})

        assert response.status_code == 403
        services.ingestion.chunk_store.list_source.assert_not_called()

    @pytest.mark.parametrize("with_record", [False, True])
    def test_missing_source_or_file_is_404(self, client, services, with_record):
        if with_record:
            stored_source(services, with_pdf=False)

        response = client.get("/sources/src-1/pdf", params={"project_id": "p1"}, headers={"X-User-Id": "u1"})

        assert response.status_code == 404


class TestGeneration:
    def test_generate_returns_answer(self, client):
        response = client.post("/reasoning/generate", json=PAYLOAD)

        assert response.status_code == 200
        assert response.json()["text"] == "answer to Is the covenant enforceable?"

    def test_busy_user_gets_429_with_retry_after(self, client, services):
        lock = services.admission.state.lock_for("u1")
        lock.busy = True
        lock.started_at = time.monotonic()

        response = client.post("/reasoning/generate", json=PAYLOAD)

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0

    def test_queue_mode_returns_202_and_result_can_be_polled(self, client, services):
        services.admission.state.queue.throttle_detected = True

        response = client.post("/reasoning/generate", json=PAYLOAD)

        assert response.status_code == 202
        body = response.json()
        assert body["queue_position"] == 1
        assert body["estimated_wait_seconds"] == 0

        poll = client.get(f"/reasoning/generate/{body['request_id']}")
        assert poll.status_code == 200
        assert poll.json()["status"] in {"queued", "admitted", "completed"}

    def test_unknown_request_id_is_404(self, client):
        assert client.get("/reasoning/generate/does-not-exist").status_code == 404

    def test_queue_status(self, client):
        response = client.get("/reasoning/queue-status", params={"user_id": "u1"})

        assert response.status_code == 200
        assert response.json()["in_queue"] is False
        assert response.json()["queue_mode_active"] is False
