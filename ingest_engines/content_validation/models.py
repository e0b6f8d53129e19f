from __future__ import annotations

from typing import Optional

from ingest_engines.common.models import WireModel


class BasicValidationResult(WireModel):
    exists: bool
    size_in_bytes: int = 0
    is_within_size_limit: bool = False
    container_format: str = "unknown"
    detected_formats: str = "unknown"
    video_codec: str = "none"
    audio_codec: str = "none"
    is_valid: bool = False


class StreamValidationResult(WireModel):
    has_video_stream: bool = False
    has_audio_stream: bool = False
    is_playable: bool = False
    has_corrupt_frames: bool = False
    error: Optional[str] = None


class ContentValidationResult(WireModel):
    success: bool
    error: Optional[str] = None
    basic: BasicValidationResult
    stream: StreamValidationResult
