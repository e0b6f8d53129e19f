from __future__ import annotations

import logging
import os
import re
import time
from typing import List, Optional

from ingest_engines.gop_segmenter.backend import FfmpegGopBackend, GopSegmentBackend
from ingest_engines.gop_segmenter.models import GopConfig, GopResult, GopSegment, GopStatus

logger = logging.getLogger(__name__)

_SEGMENT_FILE = re.compile(r"^segment_\d+\.mp4$")


def collect_segments(output_dir: str) -> List[GopSegment]:
    """Segment files in ``output_dir``, numbered 0..n-1 by lexicographic filename order.

    The number embedded in a filename is ignored so the sequence is always contiguous.
    """
    names = sorted(name for name in os.listdir(output_dir) if _SEGMENT_FILE.match(name))
    return [
        GopSegment(sequence=index, path=os.path.join(output_dir, name), status=GopStatus.PROCESSED)
        for index, name in enumerate(names)
    ]


class GopSegmenter:
    def __init__(self, config: Optional[GopConfig] = None, backend: Optional[GopSegmentBackend] = None) -> None:
        self.config = config or GopConfig()
        self.backend = backend or FfmpegGopBackend()

    def create_segments(self, input_path: str, output_dir: Optional[str] = None) -> GopResult:
        """Segment ``input_path``. Failures come back as ``success=False``, never raised."""
        started = time.monotonic()
        target = output_dir or self.config.output_dir
        try:
            os.makedirs(target, exist_ok=True)
            self.backend.segment(input_path, target, self.config)
            segments = collect_segments(target)
        except Exception as exc:
            elapsed = time.monotonic() - started
            logger.warning("GOP segmentation failed for %s after %.2fs: %s", input_path, elapsed, exc)
            return GopResult(success=False, error=str(exc), time_taken=elapsed, segments=[])

        elapsed = time.monotonic() - started
        logger.info("Created %d GOP segments for %s in %.2fs", len(segments), input_path, elapsed)
        return GopResult(success=True, time_taken=elapsed, segments=segments)
