"""Tests for the simulated transcription step."""

from __future__ import annotations

import pytest

from errors import TranscriptionError
from transcription import GENERIC_TEXTS, MockTranscriber, TranscriptionContext


def fixed_prober(duration):
    return lambda path, ffprobe_bin: duration


@pytest.fixture
def media(tmp_path) -> str:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"\0" * 1024)
    return str(path)


def test_segments_cover_probed_duration(media) -> None:
    result = MockTranscriber(prober=fixed_prober(20.0)).transcribe(media)

    # 20s / 8 = 2.5s per segment
    assert len(result.segments) == 8
    assert result.segments[0].start == 0
    assert result.segments[-1].end == 20.0
    assert result.duration == 20.0
    for previous, current in zip(result.segments, result.segments[1:]):
        assert current.start >= previous.start
    assert all(s.end > s.start for s in result.segments)
    assert result.text == " ".join(s.text for s in result.segments)


def test_segment_length_is_clamped(media) -> None:
    short = MockTranscriber(prober=fixed_prober(9.0)).transcribe(media)
    long = MockTranscriber(prober=fixed_prober(100.0)).transcribe(media)

    assert short.segments[1].start == 2.0
    assert long.segments[1].start == 5.0
    assert len(long.segments) == 20


def test_probed_duration_is_clamped(media) -> None:
    assert MockTranscriber(prober=fixed_prober(0.2)).transcribe(media).duration == 1
    assert MockTranscriber(prober=fixed_prober(5000.0)).transcribe(media).duration == 600


def test_falls_back_to_file_size(tmp_path) -> None:
    path = tmp_path / "big.mp4"
    path.write_bytes(b"\0" * (256 * 1024 * 10))

    result = MockTranscriber(prober=fixed_prober(None)).transcribe(str(path))

    assert result.duration == 10.0


def test_size_estimate_has_a_floor(media) -> None:
    assert MockTranscriber(prober=fixed_prober(None)).transcribe(media).duration == 5.0


def test_context_drives_first_texts(media) -> None:
    context = TranscriptionContext(topic="rockets", speaker="Ana", language="en")

    result = MockTranscriber(prober=fixed_prober(30.0)).transcribe(media, context)

    assert "rockets" in result.segments[0].text
    assert "Ana" in result.segments[3].text
    assert result.segments[5].text in GENERIC_TEXTS
    assert result.language == "en"


def test_auto_language_uses_default(media) -> None:
    context = TranscriptionContext(language="auto")
    result = MockTranscriber(default_language="pt", prober=fixed_prober(4.0)).transcribe(media, context)
    assert result.language == "pt"


def test_no_sliver_segments(media) -> None:
    result = MockTranscriber(prober=fixed_prober(10.003)).transcribe(media)
    assert all(s.end > s.start for s in result.segments)


def test_missing_file(tmp_path) -> None:
    with pytest.raises(TranscriptionError):
        MockTranscriber(prober=fixed_prober(10.0)).transcribe(str(tmp_path / "missing.mp4"))
