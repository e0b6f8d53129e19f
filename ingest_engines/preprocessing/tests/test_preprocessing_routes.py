import io
import json

import pytest
from fastapi.testclient import TestClient

from ingest_engines.content_validation.service import ContentValidationService
from ingest_engines.gop_segmenter.backend import StubGopBackend
from ingest_engines.gop_segmenter.service import GopSegmenter
from ingest_engines.media_probe.backend import StubProbeBackend
from ingest_engines.media_probe.models import ProbeData
from ingest_engines.metadata_cache.repository import InMemoryMetadataCache
from ingest_engines.metadata_extraction.service import MetadataExtractionService
from ingest_engines.object_staging.backend import LocalObjectStore
from ingest_engines.object_staging.service import ObjectStagingService
from ingest_engines.preprocessing import handler
from ingest_engines.preprocessing.service import PreprocessingService
from ingest_engines.server import create_app
from ingest_engines.task_dispatch.service import InMemoryTaskQueue, TaskDispatcher

PROBE = ProbeData.model_validate(
    {
        "format": {"format_name": "matroska,webm", "duration": "4.0"},
        "streams": [
            {"index": 0, "codec_type": "video", "codec_name": "vp9", "width": 640, "height": 360},
            {"index": 1, "codec_type": "audio", "codec_name": "opus"},
        ],
    }
)


def _notification(*keys):
    return json.dumps(
        {"Records": [{"s3": {"bucket": {"name": "transport"}, "object": {"key": k}}} for k in keys]}
    )


@pytest.fixture
def service(tmp_path):
    store = LocalObjectStore(str(tmp_path / "objects"))
    store.put_object("transport", "user1/2024/05/abcd1234", io.BytesIO(b"webm"))
    probe = StubProbeBackend()
    probe.default_probe = PROBE
    return PreprocessingService(
        staging=ObjectStagingService(store, "transport", str(tmp_path / "scratch")),
        validator=ContentValidationService(probe),
        extractor=MetadataExtractionService(probe),
        segmenter=GopSegmenter(backend=StubGopBackend(count=2)),
        cache=InMemoryMetadataCache(),
        dispatcher=TaskDispatcher(InMemoryTaskQueue()),
    )


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


def test_health(client):
    assert client.get("/health").json()["status"] == "ok"


def test_post_batch_and_read_asset(client):
    resp = client.post(
        "/preprocessing/batches",
        json={"Records": [{"messageId": "m-1", "body": _notification("user1/2024/05/abcd1234")}]},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["batchItemFailures"] == []
    outcome = data["messages"][0]["objects"][0]
    assert outcome["status"] == "processed"
    assert [s["key"] for s in outcome["segments"]] == [
        "user1/abcd1234/segment_000.mp4",
        "user1/abcd1234/segment_001.mp4",
    ]

    record = client.get("/preprocessing/assets/user1/abcd1234").json()
    assert record["progress"]["gopCreation"] is True
    assert record["metadata"]["technical"]["containerFormat"] == "matroska"
    assert record["gops"]["totalCount"] == 2


def test_missing_asset_is_404_envelope(client):
    resp = client.get("/preprocessing/assets/user1/nope")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "asset.not_found"


def test_bad_batch_payload_is_400_envelope(client):
    resp = client.post("/preprocessing/batches", json={"Records": [{"body": "{}"}]})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation.error"


def test_handler_returns_partial_batch_response(service):
    handler.set_service(service)
    try:
        response = handler.handler(
            {
                "Records": [
                    {"messageId": "ok", "body": _notification("user1/2024/05/abcd1234")},
                    {"messageId": "missing", "body": _notification("user1/2024/05/gone")},
                    {"messageId": "bad-key", "body": _notification("user1/abcd1234")},
                ]
            }
        )
    finally:
        handler.set_service(None)
    assert response == {"batchItemFailures": [{"itemIdentifier": "missing"}]}
