import os
import subprocess
from unittest.mock import patch

from ingest_engines.gop_segmenter.backend import FfmpegGopBackend, StubGopBackend, build_gop_args
from ingest_engines.gop_segmenter.models import GopConfig, GopStatus
from ingest_engines.gop_segmenter.service import GopSegmenter, collect_segments


def _value(args, flag):
    return args[args.index(flag) + 1]


def test_gop_args_force_periodic_closed_gops():
    args = build_gop_args(GopConfig())
    assert _value(args, "-g") == "60"
    assert _value(args, "-keyint_min") == "60"
    assert _value(args, "-force_key_frames") == "expr:gte(t,n_forced*2)"
    assert _value(args, "-sc_threshold") == "0"
    assert _value(args, "-flags") == "+cgop"
    assert _value(args, "-segment_time") == "2"
    assert _value(args, "-preset") == "fast"
    assert _value(args, "-crf") == "18"


def test_gop_args_optional_flags():
    args = build_gop_args(GopConfig(force_closed_gop=False, scene_change_detection=True, keyframe_interval_seconds=1.5, frame_rate=24))
    assert "-flags" not in args
    assert "-sc_threshold" not in args
    assert _value(args, "-g") == "36"
    assert _value(args, "-segment_time") == "1.5"


def test_collect_segments_is_contiguous_in_sorted_order(tmp_path):
    for name in ("segment_010.mp4", "segment_002.mp4", "segment_005.mp4", "notes.txt", "segment_x.mp4"):
        (tmp_path / name).write_bytes(b"")

    segments = collect_segments(str(tmp_path))

    assert [s.sequence for s in segments] == [0, 1, 2]
    assert [os.path.basename(s.path) for s in segments] == ["segment_002.mp4", "segment_005.mp4", "segment_010.mp4"]
    assert all(s.status == GopStatus.PROCESSED for s in segments)


def test_collect_segments_ignores_listing_order(tmp_path):
    names = ["segment_001.mp4", "segment_000.mp4", "segment_002.mp4"]
    for name in names:
        (tmp_path / name).write_bytes(b"")
    with patch("os.listdir", return_value=list(reversed(names))):
        segments = collect_segments(str(tmp_path))
    assert [os.path.basename(s.path) for s in segments] == sorted(names)


def test_create_segments_with_stub(tmp_path):
    backend = StubGopBackend(filenames=["segment_002.mp4", "segment_000.mp4", "segment_001.mp4"])
    result = GopSegmenter(GopConfig(output_dir=str(tmp_path)), backend).create_segments("/in.mp4")

    assert result.success is True
    assert result.time_taken >= 0
    assert [os.path.basename(s.path) for s in result.segments] == ["segment_000.mp4", "segment_001.mp4", "segment_002.mp4"]
    assert backend.calls == ["/in.mp4"]


def test_create_segments_never_raises(tmp_path):
    result = GopSegmenter(backend=StubGopBackend(fail_with="encoder exploded")).create_segments("/in.mp4", str(tmp_path))
    assert result.success is False
    assert result.error == "encoder exploded"
    assert result.segments == []


@patch("subprocess.run")
def test_ffmpeg_backend_failure_is_reported(mock_run, tmp_path):
    source = tmp_path / "in.mp4"
    source.write_bytes(b"data")
    mock_run.side_effect = subprocess.CalledProcessError(1, ["ffmpeg"], stderr=b"Unknown encoder 'libx264'")

    result = GopSegmenter(backend=FfmpegGopBackend()).create_segments(str(source), str(tmp_path / "out"))

    assert result.success is False
    assert "libx264" in result.error
    cmd = mock_run.call_args[0][0]
    assert cmd[-1].endswith("segment_%03d.mp4")


def test_ffmpeg_backend_missing_input(tmp_path):
    result = GopSegmenter(backend=FfmpegGopBackend()).create_segments(str(tmp_path / "missing.mp4"), str(tmp_path))
    assert result.success is False
    assert "not found" in result.error


class _ExplodingBackend:
    def segment(self, input_path, output_dir, config):
        raise RuntimeError("unexpected backend bug")


def test_create_segments_contains_unexpected_errors(tmp_path):
    result = GopSegmenter(backend=_ExplodingBackend()).create_segments("/in.mp4", str(tmp_path))
    assert result.success is False
    assert result.error == "unexpected backend bug"
    assert result.segments == []
