from __future__ import annotations

import concurrent.futures
import logging
import os
from typing import Optional

from ingest_engines.content_validation.models import (
    BasicValidationResult,
    ContentValidationResult,
    StreamValidationResult,
)
from ingest_engines.media_probe.backend import MediaProbeBackend

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("mp4", "mov", "avi", "mkv")
SUPPORTED_VIDEO_CODECS = frozenset({"h264", "hevc", "vp8", "vp9"})
SUPPORTED_AUDIO_CODECS = frozenset({"aac", "mp3", "opus"})

# ffprobe reports Matroska by its demuxer name.
_FORMAT_ALIASES = {"matroska": "mkv"}


def _normalize_formats(format_name: str) -> str:
    names = [n.strip().lower() for n in format_name.split(",") if n.strip()]
    return ",".join(_FORMAT_ALIASES.get(n, n) for n in names)


class ContentValidationService:
    def __init__(self, backend: MediaProbeBackend, max_size_bytes: Optional[int] = None) -> None:
        self.backend = backend
        self.max_size_bytes = max_size_bytes

    def _within_limit(self, size: int) -> bool:
        return self.max_size_bytes is None or size <= self.max_size_bytes

    def validate_basics(self, path: str) -> BasicValidationResult:
        try:
            size = os.stat(path).st_size
        except OSError:
            return BasicValidationResult(exists=False)

        probe = self.backend.probe(path)
        if probe is None:
            return BasicValidationResult(exists=True, size_in_bytes=size, is_within_size_limit=self._within_limit(size))

        detected = probe.format.format_name or "unknown"
        normalized = _normalize_formats(detected) if probe.format.format_name else "unknown"
        container = normalized.split(",")[0]
        video_codec = ((probe.video.codec_name if probe.video else None) or "none").lower()
        audio_codec = ((probe.audio.codec_name if probe.audio else None) or "none").lower()
        within_limit = self._within_limit(size)

        is_valid = (
            within_limit
            and any(f in normalized for f in SUPPORTED_FORMATS)
            and video_codec in SUPPORTED_VIDEO_CODECS
            and audio_codec in SUPPORTED_AUDIO_CODECS
        )
        return BasicValidationResult(
            exists=True,
            size_in_bytes=size,
            is_within_size_limit=within_limit,
            container_format=container,
            detected_formats=detected,
            video_codec=video_codec,
            audio_codec=audio_codec,
            is_valid=is_valid,
        )

    def validate_streams(self, path: str) -> StreamValidationResult:
        probe = self.backend.probe(path)
        if probe is None:
            return StreamValidationResult(
                has_corrupt_frames=True,
                error="Unable to read file metadata",
            )
        playability = self.backend.check_playability(path)
        return StreamValidationResult(
            has_video_stream=probe.video is not None,
            has_audio_stream=probe.audio is not None,
            is_playable=playability.is_playable,
            has_corrupt_frames=not playability.is_playable,
            error=playability.error,
        )

    def validate_content(self, path: str) -> ContentValidationResult:
        """Run both probes side by side and fold them into one verdict."""
        with concurrent.futures.ThreadPoolExecutor(max_workers=2) as executor:
            f_basic = executor.submit(self.validate_basics, path)
            f_stream = executor.submit(self.validate_streams, path)
            basic = f_basic.result()
            stream = f_stream.result()
        result = summarize(basic, stream)
        if not result.success:
            logger.info("Content rejected for %s: %s", path, result.error)
        return result


def summarize(basic: BasicValidationResult, stream: StreamValidationResult) -> ContentValidationResult:
    success = (
        basic.is_valid
        and stream.is_playable
        and not stream.has_corrupt_frames
        and stream.has_video_stream
        and stream.has_audio_stream
    )
    error: Optional[str] = None
    if not success:
        if not stream.has_video_stream:
            error = "No video stream found"
        elif not stream.has_audio_stream:
            error = "No audio stream found"
        elif stream.has_corrupt_frames:
            error = "Corrupt frames detected"
        elif not stream.is_playable:
            error = stream.error or "Content not playable"
        elif not basic.is_within_size_limit:
            error = "Validation failed: file exceeds the upload size limit"
        else:
            error = "Validation failed: unsupported container or codec"
    return ContentValidationResult(success=success, error=error, basic=basic, stream=stream)
