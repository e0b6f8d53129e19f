from __future__ import annotations

import tempfile
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from ingest_engines.common.models import WireModel


class GopStatus(str, Enum):
    PROCESSED = "PROCESSED"
    UPLOADED = "UPLOADED"


class GopConfig(WireModel):
    keyframe_interval_seconds: float = 2.0
    force_closed_gop: bool = True
    scene_change_detection: bool = False
    output_dir: str = Field(default_factory=tempfile.gettempdir)
    frame_rate: int = 30
    preset: str = "fast"
    crf: int = 18

    @field_validator("keyframe_interval_seconds", "frame_rate")
    @classmethod
    def _positive(cls, value):
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @property
    def keyframe_spacing_frames(self) -> int:
        return max(1, int(round(self.keyframe_interval_seconds * self.frame_rate)))


class GopSegment(WireModel):
    sequence: int
    path: str
    status: GopStatus = GopStatus.PROCESSED
    key: Optional[str] = None


class GopResult(WireModel):
    success: bool
    error: Optional[str] = None
    time_taken: float = 0.0
    segments: List[GopSegment] = Field(default_factory=list)
