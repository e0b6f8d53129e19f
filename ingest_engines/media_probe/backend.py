from __future__ import annotations

import json
import logging
import os
import subprocess
from typing import Any, Dict, Optional, Protocol

from pydantic import ValidationError as ModelValidationError

from ingest_engines.media_probe.models import PlayabilityResult, ProbeData

logger = logging.getLogger(__name__)


class MediaProbeBackend(Protocol):
    def probe(self, path: str) -> Optional[ProbeData]:
        """
        Read container and stream metadata. Returns None when the file cannot be probed.
        """
        ...

    def check_playability(self, path: str) -> PlayabilityResult:
        """
        Stream-copy the whole file to a null sink. Never raises.
        """
        ...


def _stderr_message(stderr: Any) -> str:
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    lines = [line.strip() for line in (stderr or "").splitlines() if line.strip()]
    return lines[-1] if lines else "No stderr"


class FfmpegProbeBackend:
    def __init__(self, ffprobe_path: str = "ffprobe", ffmpeg_path: str = "ffmpeg", timeout: Optional[float] = None) -> None:
        self.ffprobe_path = ffprobe_path
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout

    def _run_ffprobe(self, path: str) -> Dict[str, Any]:
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            path,
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=self.timeout)
            return json.loads(result.stdout)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError, json.JSONDecodeError) as exc:
            logger.warning("ffprobe failed for %s: %s", path, exc.__class__.__name__)
            return {}

    def probe(self, path: str) -> Optional[ProbeData]:
        if not os.path.exists(path):
            return None
        raw = self._run_ffprobe(path)
        if not raw or (not raw.get("format") and not raw.get("streams")):
            return None
        try:
            return ProbeData(format=raw.get("format") or {}, streams=raw.get("streams") or [])
        except ModelValidationError as exc:
            logger.warning("ffprobe output for %s could not be parsed: %s", path, exc)
            return None

    def check_playability(self, path: str) -> PlayabilityResult:
        cmd = [
            self.ffmpeg_path,
            "-v", "error",
            "-i", path,
            "-c", "copy",
            "-f", "null", "-",
        ]
        try:
            subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            return PlayabilityResult(is_playable=False, error=f"ffmpeg exited with {e.returncode}: {_stderr_message(e.stderr)}")
        except subprocess.TimeoutExpired:
            return PlayabilityResult(is_playable=False, error="ffmpeg playability check timed out")
        except FileNotFoundError:
            return PlayabilityResult(is_playable=False, error=f"{self.ffmpeg_path} not found")
        return PlayabilityResult(is_playable=True)


class StubProbeBackend:
    """Canned probe results keyed by path; unknown paths fail to probe."""

    def __init__(
        self,
        probes: Optional[Dict[str, ProbeData]] = None,
        playability: Optional[Dict[str, PlayabilityResult]] = None,
    ) -> None:
        self.probes: Dict[str, ProbeData] = dict(probes or {})
        self.playability: Dict[str, PlayabilityResult] = dict(playability or {})
        self.default_probe: Optional[ProbeData] = None
        self.default_playability = PlayabilityResult(is_playable=True)

    def probe(self, path: str) -> Optional[ProbeData]:
        return self.probes.get(path, self.default_probe)

    def check_playability(self, path: str) -> PlayabilityResult:
        if path not in self.probes and self.default_probe is None:
            return PlayabilityResult(is_playable=False, error="Invalid data found when processing input")
        return self.playability.get(path, self.default_playability)
