from __future__ import annotations

import os
import subprocess
from typing import List, Optional, Protocol, Sequence

from ingest_engines.common.errors import SegmentationError
from ingest_engines.gop_segmenter.models import GopConfig

SEGMENT_PATTERN = "segment_%03d.mp4"


class GopSegmentBackend(Protocol):
    def segment(self, input_path: str, output_dir: str, config: GopConfig) -> None:
        """
        Cut ``input_path`` into closed fixed-interval GOP segment files inside ``output_dir``.
        Raises SegmentationError on failure.
        """
        ...


def build_gop_args(config: GopConfig) -> List[str]:
    """Encoder, keyframe and segmenter options for fixed-interval closed GOPs."""
    spacing = str(config.keyframe_spacing_frames)
    interval = f"{config.keyframe_interval_seconds:g}"
    args = [
        "-c:v", "libx264",
        "-preset", config.preset,
        "-crf", str(config.crf),
        "-c:a", "copy",
        "-r", str(config.frame_rate),
        "-g", spacing,
        "-keyint_min", spacing,
        "-force_key_frames", f"expr:gte(t,n_forced*{interval})",
    ]
    if config.force_closed_gop:
        args += ["-flags", "+cgop"]
    if not config.scene_change_detection:
        # A zero threshold turns off scene-cut keyframes so boundaries stay periodic.
        args += ["-sc_threshold", "0"]
    args += [
        "-f", "segment",
        "-segment_time", interval,
        "-reset_timestamps", "1",
        "-segment_format", "mp4",
    ]
    return args


class FfmpegGopBackend:
    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout: Optional[float] = None) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def build_command(self, input_path: str, output_dir: str, config: GopConfig) -> List[str]:
        return [
            self.ffmpeg_path, "-y",
            "-i", input_path,
            *build_gop_args(config),
            os.path.join(output_dir, SEGMENT_PATTERN),
        ]

    def segment(self, input_path: str, output_dir: str, config: GopConfig) -> None:
        if not os.path.exists(input_path):
            raise SegmentationError(f"Input file not found: {input_path}")
        cmd = self.build_command(input_path, output_dir, config)
        try:
            subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            encoded_stderr = e.stderr.decode("utf-8", errors="replace") if e.stderr else "No stderr"
            raise SegmentationError(f"FFmpeg segmentation failed: {encoded_stderr.strip()[-500:]}")
        except subprocess.TimeoutExpired as e:
            raise SegmentationError(f"FFmpeg segmentation timed out after {e.timeout}s")
        except FileNotFoundError:
            raise SegmentationError(f"{self.ffmpeg_path} not found")


class StubGopBackend:
    """Writes placeholder segment files; names can be given in any order."""

    def __init__(self, filenames: Optional[Sequence[str]] = None, count: int = 3, fail_with: Optional[str] = None) -> None:
        self.filenames = list(filenames) if filenames is not None else [SEGMENT_PATTERN % i for i in range(count)]
        self.fail_with = fail_with
        self.calls: List[str] = []

    def segment(self, input_path: str, output_dir: str, config: GopConfig) -> None:
        self.calls.append(input_path)
        if self.fail_with:
            raise SegmentationError(self.fail_with)
        for name in self.filenames:
            with open(os.path.join(output_dir, name), "wb") as f:
                f.write(b"stub_gop_segment")
