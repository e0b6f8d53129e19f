import pytest

from ingest_engines.config import runtime_config
from ingest_engines.config.runtime_config import PreprocessingConfig


@pytest.fixture(autouse=True)
def _fresh_snapshot():
    runtime_config.config_snapshot.cache_clear()
    yield
    runtime_config.config_snapshot.cache_clear()


def test_defaults(monkeypatch):
    for name in ("SEGMENT_LOCALLY", "PREPROCESSING_MAX_WORKERS", "UPLOAD_SIZE_LIMIT", "GOP_CRF", "GOP_FORCE_CLOSED"):
        monkeypatch.delenv(name, raising=False)
    assert runtime_config.get_segment_locally() is True
    assert runtime_config.get_max_workers() == 4
    assert runtime_config.get_upload_size_limit() is None
    assert runtime_config.get_gop_overrides().get("crf") is None


def test_from_env(monkeypatch):
    monkeypatch.setenv("TRANSPORTSTORAGE_BUCKET_NAME", "transport")
    monkeypatch.setenv("METADATASTORAGE_TABLE_NAME", "assets")
    monkeypatch.setenv("TASKQUEUE_QUEUE_URL", "https://sqs.example/queue")
    monkeypatch.setenv("UPLOAD_SIZE_LIMIT", "1048576")
    monkeypatch.setenv("SEGMENT_LOCALLY", "false")
    monkeypatch.setenv("GOP_KEYFRAME_INTERVAL", "4")
    monkeypatch.setenv("GOP_FORCE_CLOSED", "no")
    monkeypatch.setenv("PREPROCESSING_MAX_WORKERS", "not-a-number")

    config = PreprocessingConfig.from_env()

    assert config.transport_bucket == "transport"
    assert config.metadata_table == "assets"
    assert config.task_queue_url == "https://sqs.example/queue"
    assert config.upload_size_limit == 1048576
    assert config.segment_locally is False
    assert config.max_workers == 4
    assert config.gop == {"keyframe_interval_seconds": 4.0, "force_closed_gop": False}
