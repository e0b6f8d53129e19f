from __future__ import annotations

from typing import Optional

from pydantic import Field

from ingest_engines.common.models import WireModel

# Every optional field below is None when the probe could not determine it.


class Resolution(WireModel):
    width: Optional[int] = None
    height: Optional[int] = None


class TechnicalMetadata(WireModel):
    container_format: Optional[str] = None
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None
    duration: Optional[float] = None
    bitrate: Optional[int] = None
    frame_rate: Optional[str] = None  # raw rational, e.g. "30000/1001"
    resolution: Resolution = Field(default_factory=Resolution)
    aspect_ratio: Optional[str] = None
    color_space: Optional[str] = None


class ContentMetadata(WireModel):
    creation_date: Optional[str] = None
    last_modified: Optional[str] = None


class CorruptionStatus(WireModel):
    is_corrupted: bool = False
    details: str = "Unable to determine"


class AudioSync(WireModel):
    in_sync: bool = False
    offset_ms: Optional[float] = None


class QualityMetrics(WireModel):
    video_quality_score: Optional[int] = None
    audio_quality_score: Optional[int] = None
    corruption_status: CorruptionStatus = Field(default_factory=CorruptionStatus)
    missing_frames: Optional[int] = None
    audio_sync: AudioSync = Field(default_factory=AudioSync)


class ExtractedMetadata(WireModel):
    technical: TechnicalMetadata
    quality: QualityMetrics
    content: ContentMetadata
