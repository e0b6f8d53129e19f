from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _to_float(value) -> Optional[float]:
    if value is None or value == "" or value == "N/A":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None else None


class ProbeStream(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int = 0
    codec_type: Optional[str] = None  # video, audio, data, subtitle
    codec_name: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    bit_rate: Optional[int] = None
    r_frame_rate: Optional[str] = None
    duration: Optional[float] = None
    nb_frames: Optional[int] = None
    display_aspect_ratio: Optional[str] = None
    color_space: Optional[str] = None

    @field_validator("width", "height", "bit_rate", "nb_frames", mode="before")
    @classmethod
    def _whole(cls, value):
        return _to_int(value)

    @field_validator("duration", mode="before")
    @classmethod
    def _seconds(cls, value):
        return _to_float(value)


class ProbeFormat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    format_name: Optional[str] = None
    duration: Optional[float] = None
    bit_rate: Optional[int] = None
    size: Optional[int] = None
    tags: Dict[str, str] = Field(default_factory=dict)

    @field_validator("bit_rate", "size", mode="before")
    @classmethod
    def _whole(cls, value):
        return _to_int(value)

    @field_validator("duration", mode="before")
    @classmethod
    def _seconds(cls, value):
        return _to_float(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags(cls, value):
        if not value:
            return {}
        return {str(k): str(v) for k, v in dict(value).items()}


class ProbeData(BaseModel):
    format: ProbeFormat = Field(default_factory=ProbeFormat)
    streams: List[ProbeStream] = Field(default_factory=list)

    def first_stream(self, codec_type: str) -> Optional[ProbeStream]:
        for stream in self.streams:
            if stream.codec_type == codec_type:
                return stream
        return None

    @property
    def video(self) -> Optional[ProbeStream]:
        return self.first_stream("video")

    @property
    def audio(self) -> Optional[ProbeStream]:
        return self.first_stream("audio")


class PlayabilityResult(BaseModel):
    is_playable: bool
    error: Optional[str] = None
