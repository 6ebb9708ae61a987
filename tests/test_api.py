"""Tests for BOUNCE API — health, presets, project loading and export endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import FakeEngine, build_workspace
from bounce.api.routes.export import get_export_manager
from bounce.api.server import app
from bounce.console.assets import MemoryFileSink
from bounce.console.engine import ActiveEngineHandle
from bounce.console.manager import ExportManager

client = TestClient(app)


@pytest.fixture
def manager():
    """Route every request to a manager over a fake engine and in-memory sink."""
    mgr = ExportManager(
        build_workspace(),
        ActiveEngineHandle(FakeEngine()),
        sink=MemoryFileSink(),
        engine_factory=FakeEngine,
    )
    app.dependency_overrides[get_export_manager] = lambda: mgr
    yield mgr
    app.dependency_overrides.clear()


# ── Health & Version ─────────────────────────────────────


def test_health_check() -> None:
    """Health endpoint returns OK."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "bounce"}


def test_info() -> None:
    from bounce import __version__

    data = client.get("/api/info").json()
    assert data["version"] == __version__
    assert "export_pattern" in data["endpoints"]


# ── Catalog & Status ─────────────────────────────────────


def test_presets() -> None:
    data = client.get("/api/export/presets").json()
    assert set(data["quality"]) == {"DEMO", "STANDARD", "HIGH", "STUDIO"}
    assert data["formats"]["wav"]["mime_type"] == "audio/wav"
    assert "selection" in data["export_types"]
    assert data["bundles"]["FREEZE"]["export_type"] == "freeze"


def test_status(manager) -> None:
    assert client.get("/api/export/status").json() == {"is_exporting": False, "active_exports": []}


def test_load_project(manager) -> None:
    project = build_workspace().serialize()
    project["patterns"].append({"id": "p2", "name": "Verse", "data": {}})
    response = client.put("/api/export/project", json=project)
    assert response.status_code == 200
    assert response.json()["patterns"] == 2
    assert "p2" in manager.workspace.patterns


def test_load_invalid_project(manager) -> None:
    response = client.put("/api/export/project", json={"patterns": [{"name": "no id"}]})
    assert response.status_code == 400


# ── Pattern exports ──────────────────────────────────────


def test_export_pattern(manager) -> None:
    response = client.post("/api/export/pattern/p1", json={"settings": {"quality": "demo"}})
    assert response.status_code == 200
    data = response.json()
    assert data["export_type"] == "pattern"
    assert data["files"][0]["sample_rate"] == 22050
    assert data["files"][0]["filename"] in manager.dispatcher.sink.files


def test_export_pattern_without_body(manager) -> None:
    response = client.post("/api/export/pattern/p1")
    assert response.status_code == 200
    assert len(response.json()["files"]) == 1


def test_export_missing_pattern(manager) -> None:
    assert client.post("/api/export/pattern/nope").status_code == 404


def test_unknown_quality_rejected(manager) -> None:
    response = client.post("/api/export/pattern/p1", json={"settings": {"quality": "ultra"}})
    assert response.status_code == 400


def test_bad_selection_rejected(manager) -> None:
    body = {"settings": {"export_type": "selection", "start_time": 8, "end_time": 4}}
    assert client.post("/api/export/pattern/p1", json=body).status_code == 400


def test_stems(manager) -> None:
    data = client.post("/api/export/stems/p1").json()
    assert [s["label"] for s in data["stems"]] == ["drums", "bass", "melody"]


def test_mixdown(manager) -> None:
    data = client.post("/api/export/mixdown/p1").json()
    assert data["files"][0]["sample_rate"] == 48000


def test_freeze(manager) -> None:
    response = client.post("/api/export/freeze/p1")
    assert response.status_code == 200
    data = response.json()
    assert data["replaced"] is True
    assert data["asset_id"].startswith("asset-frozen-p1-")
    assert manager.workspace.arrangements["a1"].pattern_clips("p1") == []


def test_freeze_settings_quality_wins(manager) -> None:
    body = {"export_quality": "DEMO", "settings": {"quality": "STUDIO"}}
    data = client.post("/api/export/freeze/p1", json=body).json()
    assert data["export_files"][0]["sample_rate"] == 96000


def test_freeze_export_quality(manager) -> None:
    data = client.post("/api/export/freeze/p1", json={"export_quality": "DEMO"}).json()
    assert data["export_files"][0]["sample_rate"] == 22050


def test_freeze_unknown_export_quality(manager) -> None:
    assert client.post("/api/export/freeze/p1", json={"export_quality": "ultra"}).status_code == 400


# ── Channels, arrangement, batches ───────────────────────


def test_channels(manager) -> None:
    response = client.post("/api/export/channels", json={"channel_ids": ["drums", "verb"]})
    results = response.json()["results"]
    assert [r["success"] for r in results] == [True, False]


def test_channels_requires_ids(manager) -> None:
    assert client.post("/api/export/channels", json={"channel_ids": []}).status_code == 422


def test_arrangement(manager) -> None:
    data = client.post("/api/export/arrangement", json={"arrangement_id": "a1"}).json()
    assert data["file"]["source_id"] == "a1"


def test_arrangement_not_found(manager) -> None:
    response = client.post("/api/export/arrangement", json={"arrangement_id": "zzz"})
    assert response.status_code == 404


def test_batch_export(manager, monkeypatch) -> None:
    monkeypatch.setattr("bounce.config.settings.batch_delay_s", 0.0)
    data = client.post("/api/export/batch/export", json={"pattern_ids": ["p1", "nope"]}).json()
    assert data["succeeded"] == 1
    assert data["results"][1]["error"] == "Pattern nope not found"


def test_isolated_project_export(manager) -> None:
    before = manager.workspace.serialize()
    body = {
        "project": {
            "instruments": [{"id": "x", "name": "Kick"}],
            "patterns": [{"id": "px", "name": "Other", "data": {"x": [{"pitch": 36}]}}],
        }
    }
    response = client.post("/api/export/pattern/px", json=body)
    assert response.status_code == 200
    assert response.json()["files"][0]["source_id"] == "px"
    assert manager.workspace.serialize() == before


# ── WebSocket ────────────────────────────────────────────


def test_websocket_ping() -> None:
    with client.websocket_connect("/ws/demo") as ws:
        ws.send_json({"action": "ping"})
        assert ws.receive_json() == {"type": "pong"}
