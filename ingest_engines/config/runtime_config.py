"""Runtime configuration helpers for the preprocessing engines."""
from __future__ import annotations

import os
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

_TRUTHY = {"1", "true", "yes", "on"}


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(name, default)


def _get_bool(name: str, default: bool) -> bool:
    raw = _get_env(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


def _get_int(name: str) -> Optional[int]:
    raw = _get_env(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _get_float(name: str) -> Optional[float]:
    raw = _get_env(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        return None


def get_region() -> str:
    return _get_env("AWS_DEFAULT_REGION") or _get_env("AWS_REGION") or "us-east-1"


def get_transport_bucket() -> Optional[str]:
    return _get_env("TRANSPORTSTORAGE_BUCKET_NAME")


def get_metadata_table() -> Optional[str]:
    return _get_env("METADATASTORAGE_TABLE_NAME")


def get_task_queue_url() -> Optional[str]:
    return _get_env("TASKQUEUE_QUEUE_URL")


def get_scratch_dir() -> str:
    return _get_env("SCRATCH_DIR") or tempfile.gettempdir()


def get_upload_size_limit() -> Optional[int]:
    return _get_int("UPLOAD_SIZE_LIMIT")


def get_ffmpeg_path() -> str:
    return _get_env("FFMPEG_PATH") or "ffmpeg"


def get_ffprobe_path() -> str:
    return _get_env("FFPROBE_PATH") or "ffprobe"


def get_storage_backend() -> str:
    return (_get_env("STORAGE_BACKEND") or "s3").lower()


def get_metadata_backend() -> str:
    return (_get_env("METADATA_BACKEND") or "dynamodb").lower()


def get_queue_backend() -> str:
    return (_get_env("QUEUE_BACKEND") or "sqs").lower()


def get_local_storage_root() -> str:
    return _get_env("LOCAL_STORAGE_ROOT") or str(Path(tempfile.gettempdir()) / "ingest_engines" / "objects")


def get_segment_locally() -> bool:
    return _get_bool("SEGMENT_LOCALLY", True)


def get_max_workers() -> int:
    value = _get_int("PREPROCESSING_MAX_WORKERS")
    return value if value and value > 0 else 4


def get_gop_overrides() -> dict:
    """GOP settings present in the environment; absent keys fall back to model defaults."""
    overrides = {
        "keyframe_interval_seconds": _get_float("GOP_KEYFRAME_INTERVAL"),
        "frame_rate": _get_int("GOP_FRAME_RATE"),
        "preset": _get_env("GOP_PRESET"),
        "crf": _get_int("GOP_CRF"),
    }
    if _get_env("GOP_FORCE_CLOSED") is not None:
        overrides["force_closed_gop"] = _get_bool("GOP_FORCE_CLOSED", True)
    if _get_env("GOP_SCENE_CHANGE_DETECTION") is not None:
        overrides["scene_change_detection"] = _get_bool("GOP_SCENE_CHANGE_DETECTION", False)
    return {k: v for k, v in overrides.items() if v is not None}


@lru_cache(maxsize=1)
def config_snapshot() -> dict:
    """Return a cached snapshot of relevant env-driven config."""
    return {
        "region": get_region(),
        "transport_bucket": get_transport_bucket(),
        "metadata_table": get_metadata_table(),
        "task_queue_url": get_task_queue_url(),
        "scratch_dir": get_scratch_dir(),
        "upload_size_limit": get_upload_size_limit(),
        "ffmpeg_path": get_ffmpeg_path(),
        "ffprobe_path": get_ffprobe_path(),
        "storage_backend": get_storage_backend(),
        "metadata_backend": get_metadata_backend(),
        "queue_backend": get_queue_backend(),
        "local_storage_root": get_local_storage_root(),
        "segment_locally": get_segment_locally(),
        "max_workers": get_max_workers(),
        "gop": get_gop_overrides(),
    }


class PreprocessingConfig(BaseModel):
    """Explicit configuration value handed to the service factory."""

    region: str = "us-east-1"
    transport_bucket: Optional[str] = None
    metadata_table: Optional[str] = None
    task_queue_url: Optional[str] = None
    scratch_dir: str = Field(default_factory=tempfile.gettempdir)
    upload_size_limit: Optional[int] = None
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    storage_backend: str = "s3"
    metadata_backend: str = "dynamodb"
    queue_backend: str = "sqs"
    local_storage_root: Optional[str] = None
    segment_locally: bool = True
    max_workers: int = 4
    gop: dict = Field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "PreprocessingConfig":
        return cls(**config_snapshot())
