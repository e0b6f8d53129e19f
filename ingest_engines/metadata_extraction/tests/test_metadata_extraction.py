import pytest

from ingest_engines.media_probe.backend import StubProbeBackend
from ingest_engines.media_probe.models import PlayabilityResult, ProbeData
from ingest_engines.metadata_extraction.service import (
    MetadataExtractionService,
    audio_quality_score,
    missing_frames,
    parse_frame_rate,
    video_quality_score,
)

PROBE = ProbeData.model_validate(
    {
        "format": {
            "format_name": "mov,mp4,m4a,3gp,3g2,mj2",
            "duration": "10.0",
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
                "nb_frames": "290",
                "display_aspect_ratio": "16:9",
                "color_space": "bt709",
            },
            {"index": 1, "codec_type": "audio", "codec_name": "aac", "bit_rate": "160000"},
        ],
    }
)


def test_video_quality_score():
    assert video_quality_score(1920, 1080, 5_000_000) == 100
    assert video_quality_score(1280, 720, 2_500_000) == 47
    assert video_quality_score(3840, 2160, 20_000_000) == 100
    assert video_quality_score(1920, 1080, None) is None
    assert video_quality_score(None, 1080, 5_000_000) is None


def test_audio_quality_score():
    assert audio_quality_score(160_000) == 50
    assert audio_quality_score(640_000) == 100
    assert audio_quality_score(None) is None


def test_parse_frame_rate():
    assert parse_frame_rate("30000/1001") == (30000.0, 1001.0)
    assert parse_frame_rate("25") == (25.0, 1.0)
    assert parse_frame_rate("0/0") is None
    assert parse_frame_rate(None) is None


@pytest.mark.parametrize(
    "duration, rate, actual, expected",
    [
        (10.0, "30/1", 290, 10),
        (10.0, "30/1", 320, 0),
        (10.0, "30000/1001", 299, 1),
        (None, "30/1", 290, None),
        (10.0, None, 290, None),
        (10.0, "30/1", None, None),
        (10.0, "30/1", 0, 300),
        (0.0, "30/1", 0, 0),
    ],
)
def test_missing_frames(duration, rate, actual, expected):
    assert missing_frames(duration, rate, actual) == expected


def test_extract_all(tmp_path):
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"data")
    svc = MetadataExtractionService(StubProbeBackend(probes={str(media): PROBE}))

    extracted = svc.extract_all(str(media))

    assert extracted.technical.container_format == "mov"
    assert extracted.technical.video_codec == "h264"
    assert extracted.technical.resolution.width == 1920
    assert extracted.technical.frame_rate == "30/1"
    assert extracted.quality.video_quality_score == 100
    assert extracted.quality.audio_quality_score == 50
    assert extracted.quality.missing_frames == 10
    assert extracted.quality.corruption_status.is_corrupted is False
    assert extracted.content.creation_date == "2024-05-01T12:00:00.000000Z"
    assert extracted.content.last_modified is not None


def test_quality_reuses_given_playability(tmp_path):
    media = tmp_path / "clip.mp4"
    media.write_bytes(b"data")
    backend = StubProbeBackend(probes={str(media): PROBE})
    quality = MetadataExtractionService(backend).extract_quality(
        str(media), PlayabilityResult(is_playable=False, error="broken tail")
    )
    assert quality.corruption_status.is_corrupted is True
    assert quality.corruption_status.details == "broken tail"


def test_unreadable_file_yields_absent_values(tmp_path):
    svc = MetadataExtractionService(StubProbeBackend())
    extracted = svc.extract_all(str(tmp_path / "clip.mp4"))
    assert extracted.technical.duration is None
    assert extracted.quality.video_quality_score is None
    assert extracted.quality.missing_frames is None
    assert extracted.content.creation_date is None
    wire = extracted.technical.to_wire()
    assert wire["containerFormat"] is None
