"""Тесты HTTP API (FastAPI TestClient, без Tesseract и pdftoppm)."""

import asyncio
import contextlib

import pytest
from fastapi.testclient import TestClient

from arabic_ocr import main
from arabic_ocr.config import Settings
from arabic_ocr.services.pipeline import DocumentPipeline
from arabic_ocr.services.result_store import ResultStore
from conftest import PDF_BYTES, FakeEngine, FakeRasterizer, page_text, set_age

DAY = 24 * 3600


@pytest.fixture
def pipeline():
    return DocumentPipeline(rasterizer=FakeRasterizer(pages=2), engine=FakeEngine())


@pytest.fixture
def client(tmp_path, monkeypatch, pipeline):
    monkeypatch.setattr(main.settings, "base_dir", tmp_path)
    main.app.dependency_overrides[main.get_pipeline] = lambda: pipeline
    main.limiter.reset()
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()
    main.limiter.reset()


def upload(client, content=PDF_BYTES, name="كتاب.pdf", content_type="application/pdf", **data):
    return client.post("/upload", files={"pdf": (name, content, content_type)}, data=data)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "OK"
        assert "timestamp" in body
        assert body["results"]["results_count"] == 0


class TestUpload:
    def test_upload_and_download_txt(self, client, tmp_path):
        response = upload(client)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["originalFilename"] == "كتاب.pdf"
        assert body["pageCount"] == 2
        assert page_text("page_001") in body["preview"]
        assert list((tmp_path / "temp").iterdir()) == []

        download = client.get(f"/download/{body['sessionId']}/txt")

        assert download.status_code == 200
        assert "attachment" in download.headers["content-disposition"]
        assert download.content.decode("utf-8").count("=== PAGE") == 2

    def test_download_docx(self, client, tmp_path):
        session_id = upload(client).json()["sessionId"]

        response = client.get(f"/download/{session_id}/docx")

        assert response.status_code == 200
        assert response.content[:2] == b"PK"
        assert not list((tmp_path / "output").glob("*.docx"))

    def test_language_forwarded(self, client, pipeline):
        response = upload(client, language="ara+eng")

        assert response.status_code == 200
        assert pipeline.engine.sessions[-1].language == "ara+eng"

    def test_preview_truncated(self, client, monkeypatch):
        monkeypatch.setattr(main, "PREVIEW_LENGTH", 10)

        preview = upload(client).json()["preview"]

        assert len(preview) == 13
        assert preview.endswith("...")

    def test_rejects_non_pdf_content_type(self, client):
        response = upload(client, name="notes.txt", content_type="text/plain")

        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Only PDF files are allowed!"

    def test_rejects_missing_signature(self, client):
        response = upload(client, content=b"not a pdf")

        assert response.status_code == 400

    def test_rejects_too_large(self, client, monkeypatch):
        monkeypatch.setattr(main.settings, "max_file_size_mb", 0)

        response = upload(client)

        assert response.status_code == 413

    def test_processing_failure_cleans_up(self, client, tmp_path):
        main.app.dependency_overrides[main.get_pipeline] = lambda: DocumentPipeline(
            rasterizer=FakeRasterizer(error=RuntimeError("broken pdf")),
            engine=FakeEngine(),
        )

        response = upload(client)

        assert response.status_code == 500
        detail = response.json()["detail"]
        assert detail["error"] == "Failed to process PDF"
        assert "broken pdf" in detail["message"]
        assert list((tmp_path / "uploads").iterdir()) == []
        assert list((tmp_path / "temp").iterdir()) == []


class TestDownload:
    def test_unknown_session(self, client):
        assert client.get("/download/unknown/txt").status_code == 404

    def test_invalid_format(self, client):
        session_id = upload(client).json()["sessionId"]

        assert client.get(f"/download/{session_id}/pdf").status_code == 400


class TestCleanup:
    def test_dry_run_then_real(self, client, tmp_path, now):
        old = tmp_path / "uploads" / "old.pdf"
        old.write_bytes(PDF_BYTES)
        set_age(old, 3 * DAY, now)

        dry = client.post("/cleanup", json={"dryRun": True})

        assert dry.status_code == 200
        assert dry.json()["stats"]["cleaned"]["uploads"] == 1
        assert dry.json()["stats"]["dry_run"] is True
        assert old.exists()

        real = client.post("/cleanup", json={"uploadsRetentionDays": 1})

        assert real.status_code == 200
        assert real.json()["stats"]["cleaned"]["uploads"] == 1
        assert not old.exists()

    def test_without_body(self, client):
        response = client.post("/cleanup")

        assert response.status_code == 200
        assert response.json()["success"] is True


class TestDiskUsage:
    def test_disk_usage(self, client, tmp_path):
        (tmp_path / "uploads" / "a.pdf").write_bytes(b"x" * 100)

        response = client.get("/disk-usage")

        assert response.status_code == 200
        usage = response.json()["usage"]
        assert usage["uploads"]["size"] == 100
        assert usage["logs"]["exists"] is False


class TestSecurity:
    def test_security_headers(self, client):
        response = client.get("/health")

        csp = response.headers["content-security-policy"]
        assert "default-src 'self'" in csp
        assert "object-src 'none'" in csp
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "SAMEORIGIN"

    def test_headers_on_error_response(self, client):
        response = client.get("/download/unknown/txt")

        assert response.status_code == 404
        assert response.headers["x-content-type-options"] == "nosniff"

    def test_rate_limit_per_client(self, client):
        limit = main.settings.rate_limit_development

        statuses = [client.get("/health").status_code for _ in range(limit)]
        blocked = client.get("/health")

        assert statuses == [200] * limit
        assert blocked.status_code == 429

    def test_rate_limit_by_environment(self):
        assert Settings(environment="production").rate_limit == "15 per 15 minutes"
        assert Settings(environment="development").rate_limit == "50 per 15 minutes"
        assert Settings(rate_limit_window_minutes=1).rate_limit == "50 per 1 minutes"


class Clock:
    def __init__(self, t=1_000_000.0):
        self.t = t

    def __call__(self):
        return self.t


class TestResultSweeper:
    def test_sweep_removes_entries_and_files(self, tmp_path):
        clock = Clock()
        store = ResultStore(ttl_seconds=60, clock=clock)
        output = tmp_path / "doc_ocr.txt"
        output.write_text("x")
        store.put("old", "doc", files=[output])
        clock.t += 61
        fresh_id = store.put("new", "doc2")

        removed = asyncio.run(main.sweep_expired_results(store))

        assert removed == 1
        assert not output.exists()
        assert len(store) == 1
        assert store.get(fresh_id).text == "new"

    def test_sweeper_survives_errors(self):
        class FlakyStore(ResultStore):
            calls = 0

            def pop_expired(self, now=None):
                FlakyStore.calls += 1
                if FlakyStore.calls == 1:
                    raise RuntimeError("boom")
                return super().pop_expired(now)

        async def run_briefly():
            task = asyncio.create_task(main._sweep_results(FlakyStore(), 0.001))
            await asyncio.sleep(0.05)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            return task

        task = asyncio.run(run_briefly())

        assert FlakyStore.calls >= 2
        assert task.cancelled()
