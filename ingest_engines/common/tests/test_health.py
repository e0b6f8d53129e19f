from fastapi import FastAPI
from fastapi.testclient import TestClient

from ingest_engines.common import health


def _client():
    app = FastAPI()
    app.include_router(health.router)
    return TestClient(app)


def test_health_is_always_ok():
    assert _client().get("/health").json()["status"] == "ok"


def test_ready_when_media_tools_resolve(monkeypatch):
    monkeypatch.setattr(health.shutil, "which", lambda name: f"/usr/bin/{name}")
    resp = _client().get("/ready")
    assert resp.status_code == 200
    assert resp.json()["tools"] == {"ffmpeg": True, "ffprobe": True}


def test_not_ready_without_ffprobe(monkeypatch):
    monkeypatch.setenv("FFPROBE_PATH", "/nowhere/ffprobe")
    monkeypatch.setattr(health.shutil, "which", lambda name: None if name.startswith("/nowhere") else name)
    resp = _client().get("/ready")
    assert resp.status_code == 503
    assert resp.json()["status"] == "degraded"
    assert resp.json()["tools"] == {"ffmpeg": True, "ffprobe": False}
