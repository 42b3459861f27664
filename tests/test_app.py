"""HTTP/WebSocket surface and lifecycle wiring."""

from __future__ import annotations

import sys
import types
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
import yaml
from conftest import MS, wait_until
from fastapi.testclient import TestClient

from mgauss.app import RuntimeState, create_app, main
from mgauss.classifier import StaticScoreModel
from mgauss.peer_alert import PeerAlertChannel
from mgauss.routes import create_router


def _write_config(path: Path, payload: dict) -> Path:
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def device_model(monkeypatch) -> str:
    module = types.ModuleType("fake_mgauss_app_models")
    module.make = lambda: StaticScoreModel(0.2, 0.9)
    monkeypatch.setitem(sys.modules, "fake_mgauss_app_models", module)
    return "fake_mgauss_app_models:make"


@pytest.fixture
def offline_config(tmp_path: Path) -> Path:
    return _write_config(tmp_path / "config.yaml", {"peer": {"enabled": False}})


def _runtime(client: TestClient) -> RuntimeState:
    return client.app.state.runtime


def _magnetometer_batch(start_ms: int, end_ms: int) -> list[dict]:
    return [
        {"type": "magnetometer", "timestamp_ns": ms * MS, "values": [20.0, -3.0, 40.0 + ms % 7]}
        for ms in range(start_ms, end_ms + 1, 10)
    ]


def test_routes_registered() -> None:
    from unittest.mock import MagicMock

    router = create_router(MagicMock())
    routes = {r.path: r.methods for r in router.routes if hasattr(r, "methods")}
    assert "GET" in routes["/api/health"]
    assert "POST" in routes["/api/detection/start"]
    assert "POST" in routes["/api/detection/stop"]
    assert "POST" in routes["/api/sensors/events"]
    assert any(getattr(r, "path", "") == "/ws" for r in router.routes)


def test_health_reports_idle_session(offline_config: Path) -> None:
    with TestClient(create_app(offline_config)) as client:
        body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["detecting"] is False
    assert body["label"] == "Neutral"
    assert body["session_status"] == "Ready"
    assert body["classifier_loaded"] is False
    assert body["peer_listening"] is False
    assert body["peer_short_id"] is None


def test_start_ingest_stop_cycle(tmp_path: Path, device_model: str) -> None:
    config = _write_config(
        tmp_path / "config.yaml",
        {"peer": {"enabled": False}, "classifier": {"model": device_model}},
    )
    with TestClient(create_app(config)) as client:
        started = client.post("/api/detection/start").json()
        assert started == {"detecting": True, "label": "Neutral", "status": "Detecting..."}

        resp = client.post("/api/sensors/events", json={"events": _magnetometer_batch(0, 1000)})
        assert resp.status_code == 200
        assert resp.json()["accepted"] == 101
        assert resp.json()["cycles_launched"] == 1

        assert wait_until(lambda: client.get("/api/health").json()["active"] is True)
        health = client.get("/api/health").json()
        assert health["label"] == "Device"
        assert health["last_result"]["label"] == "Device"
        assert health["classifier_loaded"] is True

        stopped = client.post("/api/detection/stop").json()
        assert stopped == {"detecting": False, "label": "Neutral", "status": "Detection Stopped"}


def test_orientation_events_are_accepted(offline_config: Path) -> None:
    events = [
        {"type": "rotation_vector", "values": [0.1, 0.2, 0.3]},
        {"type": "quaternion", "values": [0.0, 0.0, 0.0, 1.0]},
        {"type": "accelerometer", "values": [0.0, 0.0, 9.81]},
    ]
    with TestClient(create_app(offline_config)) as client:
        resp = client.post("/api/sensors/events", json={"events": events})
    assert resp.json() == {"accepted": 3, "cycles_launched": 0}


@pytest.mark.parametrize(
    "event",
    [
        {"type": "magnetometer", "values": [1.0, 2.0, 3.0]},
        {"type": "quaternion", "values": [0.0, 0.0, 1.0]},
        {"type": "gyroscope", "values": [0.0, 0.0, 0.0]},
        {"type": "accelerometer", "values": [0.0, 0.0]},
    ],
)
def test_invalid_sensor_events_are_rejected(offline_config: Path, event: dict) -> None:
    with TestClient(create_app(offline_config)) as client:
        resp = client.post("/api/sensors/events", json={"events": [event]})
    assert resp.status_code == 422


def test_websocket_streams_session_events(offline_config: Path) -> None:
    with TestClient(create_app(offline_config)) as client:
        runtime = _runtime(client)
        with client.websocket_connect("/ws?magnitude=0") as ws:
            assert wait_until(lambda: runtime.ws_hub.connection_count == 1)
            client.post("/api/detection/start")
            assert ws.receive_json() == {"type": "status", "message": "Detecting..."}
            client.post(
                "/api/sensors/events",
                json={"events": [{"type": "magnetometer", "timestamp_ns": 1, "values": [1, 2, 3]}]},
            )
            client.post("/api/detection/stop")
            # Magnitude events were opted out, so the next frame is the stop status.
            assert ws.receive_json() == {"type": "status", "message": "Detection Stopped"}


def test_start_on_boot(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "config.yaml",
        {"peer": {"enabled": False}, "detection": {"start_on_boot": True}},
    )
    with TestClient(create_app(config)) as client:
        assert client.get("/api/health").json()["detecting"] is True


def test_peer_bind_failure_does_not_stop_server(tmp_path: Path) -> None:
    config = _write_config(tmp_path / "config.yaml", {"peer": {"listen": "127.0.0.1:8888"}})
    with patch.object(PeerAlertChannel, "start", AsyncMock(side_effect=OSError("in use"))):
        with TestClient(create_app(config)) as client:
            body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["peer_listening"] is False
    assert len(body["peer_short_id"]) == 4


def test_shutdown_closes_session_and_channel(tmp_path: Path) -> None:
    config = _write_config(tmp_path / "config.yaml", {"peer": {"listen": "127.0.0.1:8888"}})
    app = create_app(config)
    runtime: RuntimeState = app.state.runtime
    with (
        patch.object(PeerAlertChannel, "start", AsyncMock()),
        patch.object(PeerAlertChannel, "close", AsyncMock()) as close,
    ):
        with TestClient(app) as client:
            client.post("/api/detection/start")
        close.assert_awaited_once()
    assert runtime.session.detecting is False
    assert runtime.tasks == []


def test_main_runs_uvicorn_with_configured_address(offline_config: Path, monkeypatch) -> None:
    monkeypatch.setattr(sys, "argv", ["mgauss-server", "--config", str(offline_config)])
    with patch("mgauss.app.uvicorn.run") as run:
        main()
    run.assert_called_once()
    assert run.call_args.kwargs["host"] == "0.0.0.0"
    assert run.call_args.kwargs["port"] == 8000
    assert run.call_args.kwargs["log_level"] == "info"
