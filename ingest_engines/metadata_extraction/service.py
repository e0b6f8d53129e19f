"""Technical, content and quality metadata from ffprobe output.

The three extractors are independent: each runs its own probe, and a failed
probe yields a fully "absent" model rather than an exception.
"""
from __future__ import annotations

import concurrent.futures
import logging
import math
import os
from datetime import datetime, timezone
from typing import Optional, Tuple

from ingest_engines.media_probe.backend import MediaProbeBackend
from ingest_engines.media_probe.models import PlayabilityResult, ProbeStream
from ingest_engines.metadata_extraction.models import (
    AudioSync,
    ContentMetadata,
    CorruptionStatus,
    ExtractedMetadata,
    QualityMetrics,
    Resolution,
    TechnicalMetadata,
)

logger = logging.getLogger(__name__)

REFERENCE_PIXELS = 1920 * 1080
REFERENCE_VIDEO_BITRATE = 5_000_000
REFERENCE_AUDIO_BITRATE = 320_000


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: int, low: int = 0, high: int = 100) -> int:
    return max(low, min(high, value))


def parse_frame_rate(rate: Optional[str]) -> Optional[Tuple[float, float]]:
    """Split ``"30000/1001"`` (or ``"30"``) into numerator and denominator."""
    if not rate:
        return None
    num_s, _, den_s = rate.partition("/")
    try:
        num = float(num_s)
        den = float(den_s) if den_s else 1.0
    except ValueError:
        return None
    if num <= 0 or den <= 0:
        return None
    return num, den


def video_quality_score(width: Optional[int], height: Optional[int], bitrate: Optional[int]) -> Optional[int]:
    if not width or not height or not bitrate:
        return None
    resolution_ratio = (width * height) / REFERENCE_PIXELS
    bitrate_ratio = bitrate / REFERENCE_VIDEO_BITRATE
    return _clamp(_round_half_up(50 * (resolution_ratio + bitrate_ratio)))


def audio_quality_score(bitrate: Optional[int]) -> Optional[int]:
    if not bitrate:
        return None
    return _clamp(_round_half_up(100 * bitrate / REFERENCE_AUDIO_BITRATE))


def missing_frames(duration: Optional[float], frame_rate: Optional[str], actual_frames: Optional[int]) -> Optional[int]:
    rate = parse_frame_rate(frame_rate)
    if duration is None or rate is None or actual_frames is None:
        return None
    num, den = rate
    expected = _round_half_up(duration * num / den)
    return max(0, expected - actual_frames)


class MetadataExtractionService:
    def __init__(self, backend: MediaProbeBackend) -> None:
        self.backend = backend

    def extract_technical(self, path: str) -> TechnicalMetadata:
        probe = self.backend.probe(path)
        if probe is None:
            return TechnicalMetadata()
        video = probe.video
        audio = probe.audio
        container = probe.format.format_name.split(",")[0] if probe.format.format_name else None
        return TechnicalMetadata(
            container_format=container,
            video_codec=video.codec_name if video else None,
            audio_codec=audio.codec_name if audio else None,
            duration=probe.format.duration,
            bitrate=probe.format.bit_rate,
            frame_rate=video.r_frame_rate if video else None,
            resolution=Resolution(
                width=video.width if video else None,
                height=video.height if video else None,
            ),
            aspect_ratio=video.display_aspect_ratio if video else None,
            color_space=video.color_space if video else None,
        )

    def extract_content(self, path: str) -> ContentMetadata:
        probe = self.backend.probe(path)
        if probe is None:
            return ContentMetadata()
        try:
            mtime = os.stat(path).st_mtime
            last_modified: Optional[str] = datetime.fromtimestamp(mtime, tz=timezone.utc).isoformat()
        except OSError:
            last_modified = None
        return ContentMetadata(
            creation_date=probe.format.tags.get("creation_time"),
            last_modified=last_modified,
        )

    def extract_quality(self, path: str, playability: Optional[PlayabilityResult] = None) -> QualityMetrics:
        """Heuristic quality metrics.

        ``playability`` lets the caller reuse the result of the stream
        validation pass instead of running ffmpeg over the file again.
        """
        probe = self.backend.probe(path)
        if probe is None:
            return QualityMetrics()
        if playability is None:
            playability = self.backend.check_playability(path)

        video: Optional[ProbeStream] = probe.video
        audio: Optional[ProbeStream] = probe.audio
        frames = None
        if video is not None:
            frames = missing_frames(video.duration or probe.format.duration, video.r_frame_rate, video.nb_frames)
        return QualityMetrics(
            video_quality_score=video_quality_score(video.width, video.height, video.bit_rate) if video else None,
            audio_quality_score=audio_quality_score(audio.bit_rate) if audio else None,
            corruption_status=CorruptionStatus(
                is_corrupted=not playability.is_playable,
                details=playability.error or "No corruption detected",
            ),
            missing_frames=frames,
            audio_sync=AudioSync(in_sync=True, offset_ms=None),
        )

    def extract_all(self, path: str, playability: Optional[PlayabilityResult] = None) -> ExtractedMetadata:
        with concurrent.futures.ThreadPoolExecutor(max_workers=3) as executor:
            f_technical = executor.submit(self.extract_technical, path)
            f_quality = executor.submit(self.extract_quality, path, playability)
            f_content = executor.submit(self.extract_content, path)

            technical = f_technical.result()
            quality = f_quality.result()
            content = f_content.result()
        logger.info(
            "Extracted metadata for %s: codec=%s duration=%s quality=%s",
            path, technical.video_codec, technical.duration, quality.video_quality_score,
        )
        return ExtractedMetadata(technical=technical, quality=quality, content=content)
