"""HTTP surface over ConnectionContext, exercised through TestClient."""

from __future__ import annotations

from pathlib import Path

from fastapi.testclient import TestClient

from config import AppConfig
from server.app import create_app
from session.context import ConnectionContext
from session.identity import MemoryTokenStore, SessionIdentity


def _config() -> AppConfig:
    return AppConfig(
        env="test",
        log_level="DEBUG",
        pairing_api_url="http://pairing.test/api/v1",
        http_timeout_s=1.0,
        session_store_path=Path("/nonexistent/session.json"),
        stream_base_delay_s=0.01,
        stream_max_delay_s=0.02,
        stream_max_attempts=2,
        pairing_timeout_s=5.0,
    )


def _app(backend):
    config = _config()
    context = ConnectionContext(
        config,
        identity=SessionIdentity(MemoryTokenStore({"pairing_session_id": "session_9_routes1"})),
        api=backend.api(),
    )
    return create_app(config, context=context)


def test_health(backend) -> None:
    with TestClient(_app(backend)) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_snapshot_after_startup_check(backend) -> None:
    backend.status_reply = (200, {"connected": True})

    with TestClient(_app(backend)) as client:
        body = client.get("/pairing").json()

    assert body["status"] == "connected"
    assert body["surface_open"] is False
    assert body["session_id"] == "session_9_routes1"


def test_connect_then_cancel(backend) -> None:
    backend.stream_chunks = [backend.sse("qrcode", {"qrcode": "QR-1"})]

    with TestClient(_app(backend)) as client:
        opened = client.post("/pairing/connect").json()
        cancelled = client.post("/pairing/cancel").json()

    assert opened["surface_open"] is True
    assert opened["status"] == "connecting"
    assert cancelled["surface_open"] is False
    assert cancelled["status"] == "idle"
    assert cancelled["qr_code"] is None


def test_check_failure_maps_to_bad_gateway(backend) -> None:
    with TestClient(_app(backend)) as client:
        backend.status_reply = (503, {"message": "maintenance"})
        response = client.post("/pairing/check")

    assert response.status_code == 502
    assert response.json()["detail"] == "maintenance"


def test_disconnect_failure_maps_to_bad_gateway(backend) -> None:
    backend.status_reply = (200, {"connected": True})
    backend.disconnect_reply = (500, {"message": "cannot logout"})

    with TestClient(_app(backend)) as client:
        response = client.delete("/pairing")
        snapshot = client.get("/pairing").json()

    assert response.status_code == 502
    assert response.json()["detail"] == "cannot logout"
    assert snapshot["status"] == "idle"


def test_disconnect_success(backend) -> None:
    backend.status_reply = (200, {"connected": True})

    with TestClient(_app(backend)) as client:
        response = client.delete("/pairing")

    assert response.status_code == 200
    assert response.json()["connected"] is False
    assert backend.count("DELETE", "/pairing/disconnect") == 1
