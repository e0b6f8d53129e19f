import json
import subprocess
from unittest.mock import patch

from ingest_engines.media_probe.backend import FfmpegProbeBackend, StubProbeBackend
from ingest_engines.media_probe.models import ProbeData

FFPROBE_OUTPUT = {
    "format": {
        "format_name": "mov,mp4,m4a,3gp,3g2,mj2",
        "duration": "10.000000",
        "bit_rate": "5128000",
        "tags": {"creation_time": "2024-05-01T12:00:00.000000Z"},
    },
    "streams": [
        {
            "index": 0,
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1920,
            "height": 1080,
            "bit_rate": "5000000",
            "r_frame_rate": "30/1",
            "nb_frames": "300",
            "duration": "N/A",
        },
        {"index": 1, "codec_type": "audio", "codec_name": "aac", "bit_rate": "128000"},
    ],
}


@patch("subprocess.run")
def test_probe_parses_ffprobe_json(mock_run, tmp_path):
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"data")
    mock_run.return_value.stdout = json.dumps(FFPROBE_OUTPUT)

    probe = FfmpegProbeBackend().probe(str(media))

    assert probe is not None
    assert probe.format.duration == 10.0
    assert probe.video.width == 1920
    assert probe.video.nb_frames == 300
    assert probe.video.duration is None
    assert probe.audio.bit_rate == 128000
    cmd = mock_run.call_args[0][0]
    assert cmd[0] == "ffprobe"
    assert "-show_streams" in cmd and cmd[-1] == str(media)


@patch("subprocess.run")
def test_probe_garbage_output_returns_none(mock_run, tmp_path):
    media = tmp_path / "bad.mp4"
    media.write_bytes(b"data")
    mock_run.return_value.stdout = "Garbage"

    assert FfmpegProbeBackend().probe(str(media)) is None


def test_probe_missing_file_returns_none(tmp_path):
    assert FfmpegProbeBackend().probe(str(tmp_path / "missing.mp4")) is None


@patch("subprocess.run")
def test_playability_captures_last_stderr_line(mock_run):
    mock_run.side_effect = subprocess.CalledProcessError(
        1, ["ffmpeg"], stderr=b"first line\n[mov] moov atom not found\n"
    )

    result = FfmpegProbeBackend().check_playability("/tmp/bad.mp4")

    assert result.is_playable is False
    assert result.error.endswith("[mov] moov atom not found")
    cmd = mock_run.call_args[0][0]
    assert cmd[-3:] == ["-f", "null", "-"]
    assert ["-c", "copy"] == cmd[cmd.index("-c"):cmd.index("-c") + 2]


@patch("subprocess.run")
def test_playability_ok(mock_run):
    assert FfmpegProbeBackend().check_playability("/tmp/ok.mp4").is_playable is True


def test_stub_backend_unknown_path_is_unreadable():
    stub = StubProbeBackend(probes={"/a.mp4": ProbeData.model_validate(FFPROBE_OUTPUT)})
    assert stub.probe("/a.mp4").video.codec_name == "h264"
    assert stub.probe("/b.mp4") is None
    assert stub.check_playability("/b.mp4").is_playable is False
