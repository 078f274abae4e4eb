"""
Process helpers for driving the ffmpeg/ffprobe binaries
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    args: List[str]
    returncode: Optional[int]
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0


def run_command(args: Sequence[str], timeout: Optional[float] = None) -> ProcessResult:
    """
    Runs a command to completion without a shell, capturing stdout and stderr.

    The process is killed when it outlives `timeout` (None waits forever) and the
    result is flagged `timed_out`. A missing executable raises FileNotFoundError.
    """
    args = [str(a) for a in args]
    proc = subprocess.Popen(
        args,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        encoding="utf-8",
        errors="replace",
    )
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning("Killing %s after %ss", args[0], timeout)
        proc.kill()
        stdout, stderr = proc.communicate()
        return ProcessResult(args, proc.returncode, stdout or "", stderr or "", timed_out=True)
    return ProcessResult(args, proc.returncode, stdout or "", stderr or "")


def is_tool_available(binary: str, runner=run_command) -> bool:
    """Checks that `binary -version` runs and exits cleanly."""
    try:
        result = runner([binary, "-version"], timeout=config.TOOL_PROBE_TIMEOUT_SECONDS)
    except OSError as e:
        logger.info("%s is not invocable: %s", binary, e)
        return False
    return result.ok


def probe_duration(path: str, ffprobe_bin: str = "ffprobe", runner=run_command) -> Optional[float]:
    """Returns the media duration in seconds using ffprobe, or None when it cannot be read."""
    cmd = [
        ffprobe_bin, "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        path,
    ]
    try:
        result = runner(cmd, timeout=config.PROBE_TIMEOUT_SECONDS)
    except OSError as e:
        logger.warning("ffprobe unavailable for %s: %s", path, e)
        return None
    if not result.ok:
        logger.warning("ffprobe failed for %s: %s", path, result.stderr.strip()[:200])
        return None
    try:
        return float(result.stdout.strip())
    except ValueError:
        logger.warning("Unreadable duration for %s: %r", path, result.stdout.strip())
        return None
