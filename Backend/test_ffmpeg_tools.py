"""Tests for the subprocess helpers, using the running Python interpreter as the child."""

from __future__ import annotations

import sys
import time

import pytest

from ffmpeg_tools import ProcessResult, is_tool_available, probe_duration, run_command


def test_run_command_captures_both_streams() -> None:
    result = run_command([sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr)"])

    assert result.ok
    assert result.stdout.strip() == "out"
    assert result.stderr.strip() == "err"


def test_run_command_reports_exit_status() -> None:
    result = run_command([sys.executable, "-c", "raise SystemExit(3)"])

    assert result.returncode == 3
    assert not result.ok
    assert not result.timed_out


def test_run_command_kills_on_timeout() -> None:
    started = time.time()
    result = run_command([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5)

    assert result.timed_out
    assert not result.ok
    assert time.time() - started < 15


def test_run_command_missing_binary() -> None:
    with pytest.raises(FileNotFoundError):
        run_command(["definitely-not-a-real-binary-xyz"])


def test_is_tool_available() -> None:
    def runner(args, timeout=None):
        assert list(args) == ["ffmpeg", "-version"]
        return ProcessResult(list(args), 0, "ffmpeg version 6.1", "")

    assert is_tool_available("ffmpeg", runner=runner)
    assert not is_tool_available("definitely-not-a-real-binary-xyz")


def test_is_tool_available_nonzero_exit() -> None:
    def runner(args, timeout=None):
        return ProcessResult(list(args), 1, "", "unknown option")

    assert not is_tool_available("ffmpeg", runner=runner)


def test_probe_duration_parses_output() -> None:
    def runner(args, timeout=None):
        assert args[0] == "ffprobe"
        assert args[-1] == "/videos/a.mp4"
        return ProcessResult(list(args), 0, "12.480000\n", "")

    assert probe_duration("/videos/a.mp4", runner=runner) == pytest.approx(12.48)


@pytest.mark.parametrize(
    "result",
    [
        ProcessResult([], 1, "", "No such file"),
        ProcessResult([], 0, "N/A\n", ""),
        ProcessResult([], None, "", "", timed_out=True),
    ],
)
def test_probe_duration_failures_return_none(result) -> None:
    assert probe_duration("/videos/a.mp4", runner=lambda args, timeout=None: result) is None


def test_probe_duration_missing_ffprobe() -> None:
    assert probe_duration("/videos/a.mp4", ffprobe_bin="definitely-not-a-real-binary-xyz") is None
