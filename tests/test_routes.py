"""HTTP and websocket tests for the FastAPI surface."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from main import create_app
from services.generation.gateway import GenerationGateway
from services.generation.orchestrator import GenerationOrchestrator
from services.generation.session_store import SessionStore
from utils.database_init import AsyncDatabaseInitializer


@pytest.fixture
def route_transport(scripted_transport, success_reply):
    return scripted_transport(success_reply)


@pytest.fixture
def app_client(route_transport, stub_builder, stub_ledger, tmp_path):
    app = create_app()
    builder = stub_builder()
    ledger = stub_ledger(5)
    gateway = GenerationGateway(route_transport, sleep=AsyncMock())

    app.state.session_store = SessionStore(lambda: GenerationOrchestrator(builder, gateway, ledger))
    app.state.credit_ledger = ledger
    app.state.db_initializer = AsyncDatabaseInitializer(tmp_path)
    # Lifespan is not entered without a `with` block, so app.state is set by hand.
    return TestClient(app)


def _new_session(client):
    response = client.post("/generation/sessions")
    assert response.status_code == 200
    return response.json()["session_id"]


class TestSessionRoutes:
    def test_create_and_get(self, app_client):
        session_id = _new_session(app_client)

        body = app_client.get(f"/generation/sessions/{session_id}").json()

        assert body["phase"] == "idle"
        assert body["session_id"] == session_id
        assert body["error"] is None

    def test_unknown_session_is_404(self, app_client):
        assert app_client.get("/generation/sessions/missing").status_code == 404
        assert app_client.post("/generation/sessions/missing/generate", json={}).status_code == 404

    def test_generate_flow(self, app_client, route_transport):
        session_id = _new_session(app_client)
        app_client.put(f"/generation/sessions/{session_id}/person", json={"source_ref": "/photos/me.jpg"})
        app_client.put(f"/generation/sessions/{session_id}/garment", json={"source_ref": "/photos/dress.jpg"})
        hint = app_client.put(f"/generation/sessions/{session_id}/style-hint", json={"style_hint": "belted"})
        assert hint.json()["style_hint"] == "belted"

        body = app_client.post(
            f"/generation/sessions/{session_id}/generate",
            json={"quality": "standard", "model": "gemini2"},
        ).json()

        assert body["phase"] == "succeeded"
        assert body["result_ref"] == "https://cdn.example/result.png"
        assert route_transport.calls == 1

    def test_missing_images_settle_failed(self, app_client):
        session_id = _new_session(app_client)

        body = app_client.post(f"/generation/sessions/{session_id}/generate", json={}).json()

        assert body["phase"] == "failed"
        assert body["error"]["kind"] == "invalid_input"
        assert "raw_message" not in body["error"]

    def test_invalid_quality_is_422(self, app_client):
        session_id = _new_session(app_client)
        response = app_client.post(f"/generation/sessions/{session_id}/generate", json={"quality": "ultra"})
        assert response.status_code == 422

    def test_unknown_role_is_404(self, app_client):
        session_id = _new_session(app_client)
        response = app_client.put(f"/generation/sessions/{session_id}/hat", json={"source_ref": "x"})
        assert response.status_code == 404

    def test_upload_image(self, app_client, image_bytes):
        session_id = _new_session(app_client)

        response = app_client.post(
            f"/generation/sessions/{session_id}/person/upload",
            files={"file": ("me.png", image_bytes(), "image/png")},
        )

        assert response.status_code == 200
        assert response.json()["person_image_ref"].startswith("data:image/png;base64,")

    def test_upload_rejects_unsupported_type(self, app_client):
        session_id = _new_session(app_client)

        response = app_client.post(
            f"/generation/sessions/{session_id}/garment/upload",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 415

    def test_reset_and_close(self, app_client):
        session_id = _new_session(app_client)
        app_client.put(f"/generation/sessions/{session_id}/person", json={"source_ref": "/photos/me.jpg"})

        body = app_client.post(f"/generation/sessions/{session_id}/reset").json()
        assert body["person_image_ref"] is None

        assert app_client.delete(f"/generation/sessions/{session_id}").json()["closed"] is True
        assert app_client.get(f"/generation/sessions/{session_id}").status_code == 404


class TestAccountRoutes:
    def test_balance(self, app_client):
        assert app_client.get("/credits/balance").json() == {"balance": 5}

    def test_balance_without_ledger(self, app_client):
        app_client.app.state.credit_ledger = None
        assert app_client.get("/credits/balance").status_code == 503

    def test_estimate(self, app_client):
        body = app_client.get("/credits/estimate", params={"quality": "studio", "model": "geminipro"}).json()
        assert body["total_cost"] == 3

    def test_estimate_rejects_unknown_model(self, app_client):
        response = app_client.get("/credits/estimate", params={"quality": "studio", "model": "sdxl"})
        assert response.status_code == 400

    def test_history_starts_empty(self, app_client):
        assert app_client.get("/generation/history").json() == {"items": []}

    def test_health(self, app_client):
        body = app_client.get("/health").json()
        assert body["ok"] is True
        assert body["credit_ledger_configured"] is True


class TestSessionSocket:
    def test_initial_snapshot(self, app_client):
        session_id = _new_session(app_client)

        with app_client.websocket_connect(f"/generation/ws/{session_id}") as ws:
            message = ws.receive_json()

        assert message["type"] == "session.state"
        assert message["session_id"] == session_id
        assert message["phase"] == "idle"

    def test_unknown_session(self, app_client):
        with app_client.websocket_connect("/generation/ws/missing") as ws:
            message = ws.receive_json()

        assert message == {"type": "error", "detail": "Session not found"}


class TestSessionStore:
    def test_lifecycle(self, stub_builder, scripted_transport, success_reply):
        gateway = GenerationGateway(scripted_transport(success_reply))
        store = SessionStore(lambda: GenerationOrchestrator(stub_builder(), gateway))

        first, second = store.create(), store.create()

        assert first != second
        assert len(store) == 2
        assert store.get(first) is not store.get(second)
        store.close(first)
        with pytest.raises(KeyError):
            store.get(first)
        with pytest.raises(KeyError):
            store.close(first)
