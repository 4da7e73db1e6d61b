"""
DocBridge Backend — API Integration Tests
===========================================

What:  End-to-end request handling through the FastAPI app: PDF endpoints,
       download links and their expiry, Google proxy routes, health and
       request ids.
How:   httpx AsyncClient over ASGITransport (see conftest.test_client);
       Google calls are stubbed on the service instance.
"""

import contextlib
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from app.exceptions import GoogleAPIError
from app.routes import files as files_routes


async def create_stored_pdf(client, **overrides):
    body = {"text": "Hello from the API", "title": "API test", "filename": "report.pdf"}
    body.update(overrides)
    response = await client.post("/pdf/create", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestPdfCreate:

    @pytest.mark.asyncio
    async def test_create_then_download(self, test_client):
        created = await create_stored_pdf(test_client)

        assert created["filename"] == "report.pdf"
        assert created["url"] == f"/files/{created['id']}/report.pdf"
        assert created["size"] > 0

        response = await test_client.get(created["url"])
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'attachment; filename="report.pdf"'
        assert response.headers["cache-control"] == "no-store"
        assert response.content.startswith(b"%PDF-")
        assert len(response.content) == created["size"]

    @pytest.mark.asyncio
    async def test_download_by_bare_id_and_repeatedly(self, test_client):
        created = await create_stored_pdf(test_client)

        first = await test_client.get(f"/files/{created['id']}")
        second = await test_client.get(created["url"])
        assert first.status_code == second.status_code == 200
        assert first.content == second.content

    @pytest.mark.asyncio
    async def test_name_segment_is_cosmetic(self, test_client):
        created = await create_stored_pdf(test_client)

        response = await test_client.get(f"/files/{created['id']}/something-else.pdf")
        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="report.pdf"'

    @pytest.mark.asyncio
    async def test_hostile_filename_is_sanitized(self, test_client):
        created = await create_stored_pdf(test_client, filename="../../etc/passwd")

        assert created["filename"] == "passwd.pdf"
        assert ".." not in created["url"]

    @pytest.mark.asyncio
    async def test_unstored_returns_bytes(self, test_client, store):
        response = await test_client.post(
            "/pdf/create", json={"text": "inline", "filename": "inline.pdf", "store": False}
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF-")
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_empty_document_rejected(self, test_client):
        response = await test_client.post("/pdf/create", json={"text": ""})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_font_size_bounds(self, test_client):
        response = await test_client.post("/pdf/create", json={"text": "x", "font_size": 500})
        assert response.status_code == 422


class TestPdfUploads:

    @pytest.mark.asyncio
    async def test_extract(self, test_client, sample_pdf):
        response = await test_client.post(
            "/pdf/extract",
            files={"file": ("report.pdf", sample_pdf, "application/pdf")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["page_count"] == 1
        assert "Quarterly summary" in data["text"]

    @pytest.mark.asyncio
    async def test_extract_rejects_non_pdf(self, test_client):
        response = await test_client.post(
            "/pdf/extract",
            files={"file": ("notes.txt", b"just some text", "text/plain")},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["details"] == {"field": "file"}

    @pytest.mark.asyncio
    async def test_add_text_stores_result(self, test_client, sample_pdf):
        response = await test_client.post(
            "/pdf/add-text",
            files={"file": ("contract.pdf", sample_pdf, "application/pdf")},
            data={"text": "SIGNED", "page": "1", "x": "100", "y": "100"},
        )

        assert response.status_code == 201, response.text
        created = response.json()
        assert created["filename"] == "contract-edited.pdf"

        download = await test_client.get(created["url"])
        assert download.status_code == 200

        extracted = await test_client.post(
            "/pdf/extract",
            files={"file": ("out.pdf", download.content, "application/pdf")},
        )
        assert "SIGNED" in extracted.json()["text"]

    @pytest.mark.asyncio
    async def test_add_text_inline(self, test_client, sample_pdf):
        response = await test_client.post(
            "/pdf/add-text",
            files={"file": ("contract.pdf", sample_pdf, "application/pdf")},
            data={"text": "SIGNED", "store": "false", "filename": "signed.pdf"},
        )

        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="signed.pdf"'
        assert response.content.startswith(b"%PDF-")

    @pytest.mark.asyncio
    async def test_add_text_page_out_of_range(self, test_client, sample_pdf):
        response = await test_client.post(
            "/pdf/add-text",
            files={"file": ("contract.pdf", sample_pdf, "application/pdf")},
            data={"text": "SIGNED", "page": "7"},
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "page"}


class TestFileLifecycle:

    @pytest.mark.asyncio
    async def test_delete_then_404(self, test_client):
        created = await create_stored_pdf(test_client)

        response = await test_client.delete(f"/files/{created['id']}")
        assert response.status_code == 204

        response = await test_client.get(created["url"])
        assert response.status_code == 404

        # Deleting again is indistinguishable from the first time
        response = await test_client.delete(f"/files/{created['id']}")
        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_link_expires(self, test_client, store, clock):
        created = await create_stored_pdf(test_client)

        clock.advance(299)
        assert (await test_client.get(created["url"])).status_code == 200

        clock.advance(1)
        await store.expire_due()
        assert (await test_client.get(created["url"])).status_code == 404
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_not_found_bodies_are_uniform(self, test_client, store, clock):
        created = await create_stored_pdf(test_client)
        clock.advance(300)
        await store.expire_due()

        expired = await test_client.get(created["url"])
        unknown = await test_client.get("/files/" + "Z" * 32)
        malformed = await test_client.get("/files/not-an-id")

        bodies = [r.json() for r in (expired, unknown, malformed)]
        assert {r.status_code for r in (expired, unknown, malformed)} == {404}
        assert len({(b["error"], b["message"]) for b in bodies}) == 1
        assert created["id"] not in expired.text

    @pytest.mark.asyncio
    async def test_download_releases_reader_when_client_is_gone(self, test_client, store, clock):
        created = await create_stored_pdf(test_client)
        response = await files_routes.download_file(created["id"], store)
        assert store._readers == {created["id"]: 1}

        async def receive():
            return {"type": "http.disconnect"}

        async def send(message):
            raise OSError("client went away")

        scope = {
            "type": "http",
            "asgi": {"version": "3.0", "spec_version": "2.4"},
            "method": "GET",
            "path": created["url"],
            "headers": [],
        }
        with contextlib.suppress(Exception):
            await response(scope, receive, send)

        assert store._readers == {}
        clock.advance(300)
        assert await store.expire_due() == 1
        assert not (Path(store.config.directory) / created["id"]).exists()


class TestGoogleRoutes:

    @pytest.mark.asyncio
    async def test_auth_url(self, test_client):
        response = await test_client.get("/auth/url", params={"user": "alice"})

        assert response.status_code == 200
        assert "state=alice" in response.json()["url"]

    @pytest.mark.asyncio
    async def test_callback_stores_credentials(self, test_client, google_service):
        google_service.exchange_code = AsyncMock()

        response = await test_client.get("/auth/callback", params={"code": "abc", "state": "alice"})

        assert response.status_code == 200
        assert response.json()["user"] == "alice"
        google_service.exchange_code.assert_awaited_once_with("abc", "alice")

    @pytest.mark.asyncio
    async def test_callback_with_error(self, test_client):
        response = await test_client.get("/auth/callback", params={"error": "access_denied"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_drive_requires_sign_in(self, test_client):
        response = await test_client.get("/drive/files", params={"user": "nobody"})

        assert response.status_code == 401
        assert response.json()["error"] == "not_authenticated"

    @pytest.mark.asyncio
    async def test_drive_files(self, test_client, google_service):
        google_service.list_spreadsheets = AsyncMock(return_value=[{"id": "1", "name": "Budget"}])

        response = await test_client.get("/drive/files")

        assert response.status_code == 200
        assert response.json() == [{"id": "1", "name": "Budget"}]
        google_service.list_spreadsheets.assert_awaited_once_with("default")

    @pytest.mark.asyncio
    async def test_sheets_read_accepts_camel_case(self, test_client, google_service):
        google_service.read_values = AsyncMock(return_value={"values": [["a"]]})

        response = await test_client.post(
            "/sheets/read", json={"user": "alice", "fileId": "sheet-1", "range": "A1"}
        )

        assert response.status_code == 200
        assert response.json() == {"values": [["a"]]}
        google_service.read_values.assert_awaited_once_with("alice", "sheet-1", "A1")

    @pytest.mark.asyncio
    async def test_sheets_write(self, test_client, google_service):
        google_service.write_values = AsyncMock(return_value={"updatedCells": 2})

        response = await test_client.post(
            "/sheets/write",
            json={
                "fileId": "sheet-1",
                "range": "A1:B1",
                "values": [["x", 1]],
                "valueInputOption": "USER_ENTERED",
            },
        )

        assert response.status_code == 200
        google_service.write_values.assert_awaited_once_with(
            "default", "sheet-1", "A1:B1", [["x", 1]], value_input_option="USER_ENTERED"
        )

    @pytest.mark.asyncio
    async def test_sheets_read_missing_file_id(self, test_client):
        response = await test_client.post("/sheets/read", json={"range": "A1"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_upstream_outage_sets_retry_after(self, test_client, google_service):
        google_service.list_spreadsheets = AsyncMock(
            side_effect=GoogleAPIError("Google is temporarily unavailable.", status_code=503, retry_after=10)
        )

        response = await test_client.get("/drive/files")

        assert response.status_code == 503
        assert response.headers["retry-after"] == "10"
        assert response.json()["error"] == "google_api_error"


class TestHealthAndRequestId:

    @pytest.mark.asyncio
    async def test_health(self, test_client, store):
        await store.put(b"%PDF-1.4 x", "a.pdf")

        response = await test_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        # Lifespan does not run under ASGITransport, so the loop is stopped
        assert data["status"] == "degraded"
        assert data["stored_files"] == 1
        assert data["pending_expirations"] == 1
        assert data["google_configured"] is True

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, test_client):
        response = await test_client.get("/health", headers={"X-Request-ID": "trace-123"})
        assert response.headers["x-request-id"] == "trace-123"

    @pytest.mark.asyncio
    async def test_request_id_generated_and_in_error_body(self, test_client):
        response = await test_client.get("/files/" + "Q" * 32)

        rid = response.headers["x-request-id"]
        assert rid
        assert response.json()["request_id"] == rid
