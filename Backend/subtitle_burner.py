"""
Burns SRT subtitles into a video with ffmpeg.

Steps for one call to SubtitleBurner.burn():

1.  **Tool check:** `ffmpeg -version` must succeed, otherwise nothing is written.
2.  **Validation:** style, paths and segment timing are checked up front.
3.  **Subtitle track:** segments are written to an ephemeral SRT file.
4.  **Render:** ffmpeg overlays the track (ASS force_style), copies audio and re-encodes
    video with libx264. stderr is kept for diagnostics only.
5.  **Verification:** success means the output file exists and is not empty.
6.  **Cleanup:** the SRT file is removed whatever happened after it was written.
"""

import logging
import os
import re
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

import config
from errors import (
    PipelineError,
    RenderFailureError,
    SubtitleValidationError,
    ToolUnavailableError,
    RENDER_TIMEOUT_CODE,
)
from ffmpeg_tools import is_tool_available, run_command
from segment_validation import validate_path, validate_segments
from srt_utils import default_id_factory, write_srt_file

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r'^#?([0-9a-fA-F]{6})([0-9a-fA-F]{2})?$')
FONT_NAME = re.compile(r'^[A-Za-z0-9 _.\-]+$')


@dataclass(frozen=True)
class SubtitleStyle:
    font_name: str = "Arial"
    font_size: int = 20
    font_color: str = "#ffffff"
    background_color: str = "#000000"
    border_width: int = 1
    border_color: str = "#000000"
    margin_vertical: int = 50


@dataclass(frozen=True)
class RenderResult:
    success: bool
    message: str
    output_path: Optional[str] = None
    error_code: Optional[str] = None
    diagnostics: str = ""


def hex_to_ass_color(value: str) -> str:
    """
    Converts #RRGGBB (optionally #RRGGBBAA) to the &HBBGGRR& form ASS styles use.

    Alpha is ignored.
    """
    match = HEX_COLOR.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise SubtitleValidationError(f"Invalid color: {value!r}")
    rgb = match.group(1)
    r, g, b = rgb[0:2], rgb[2:4], rgb[4:6]
    return f"&H{b}{g}{r}&".upper()


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_style(style: SubtitleStyle) -> None:
    if not isinstance(style, SubtitleStyle):
        raise SubtitleValidationError(f"Expected SubtitleStyle, got {type(style).__name__}")
    if not isinstance(style.font_name, str) or not FONT_NAME.match(style.font_name):
        raise SubtitleValidationError(f"Invalid font name: {style.font_name!r}")
    if not _is_int(style.font_size) or style.font_size <= 0:
        raise SubtitleValidationError(f"Font size must be a positive integer: {style.font_size!r}")
    if not _is_int(style.border_width) or style.border_width < 0:
        raise SubtitleValidationError(f"Border width must be a non-negative integer: {style.border_width!r}")
    if not _is_int(style.margin_vertical) or style.margin_vertical < 0:
        raise SubtitleValidationError(f"Vertical margin must be a non-negative integer: {style.margin_vertical!r}")
    for color in (style.font_color, style.background_color, style.border_color):
        hex_to_ass_color(color)


def build_force_style(style: SubtitleStyle) -> str:
    return ",".join([
        f"FontName={style.font_name}",
        f"FontSize={style.font_size}",
        f"PrimaryColour={hex_to_ass_color(style.font_color)}",
        f"BackColour={hex_to_ass_color(style.background_color)}",
        f"BorderWidth={style.border_width}",
        f"OutlineColour={hex_to_ass_color(style.border_color)}",
        f"MarginV={style.margin_vertical}",
    ])


def escape_filter_value(value: str) -> str:
    """Escapes a filter option value (first ffmpeg parsing level)."""
    for char in ("\\", "'", ":"):
        value = value.replace(char, f"\\{char}")
    return value


def escape_filtergraph(text: str) -> str:
    """Escapes filter arguments for the filtergraph parser (second level)."""
    # Order matters: escape backslash first
    for char in ("\\", "'", "[", "]", ",", ";"):
        text = text.replace(char, f"\\{char}")
    return text


def build_subtitles_filter(srt_path: str, style: SubtitleStyle) -> str:
    validate_path(srt_path, "subtitle path")
    args = (
        f"filename={escape_filter_value(srt_path)}"
        f":force_style={escape_filter_value(build_force_style(style))}"
    )
    return f"subtitles={escape_filtergraph(args)}"


def derive_output_path(input_path: str, id_factory: Callable[[], str] = default_id_factory,
                       clock: Callable[[], float] = time.time) -> str:
    """<dir>/<stem>_subtitled_<timestamp>_<unique>.mp4 next to the input."""
    input_path = os.path.abspath(input_path)
    dirname = os.path.dirname(input_path)
    stem = os.path.splitext(os.path.basename(input_path))[0]
    timestamp = int(clock() * 1000)
    return os.path.join(dirname, f"{stem}{config.OUTPUT_SUFFIX}_{timestamp}_{id_factory()}.mp4")


def build_ffmpeg_command(ffmpeg_bin: str, input_path: str, srt_path: str, output_path: str,
                         style: SubtitleStyle, preset: str = config.FFMPEG_PRESET,
                         crf: str = config.FFMPEG_CRF) -> List[str]:
    return [
        ffmpeg_bin,
        "-i", input_path,
        "-vf", build_subtitles_filter(srt_path, style),
        "-c:a", "copy",
        "-c:v", config.FFMPEG_VIDEO_CODEC,
        "-preset", preset,
        "-crf", str(crf),
        "-y",
        output_path,
    ]


def _tail(text: str, limit: int = config.DIAGNOSTIC_TAIL_CHARS) -> str:
    text = (text or "").strip()
    return text[-limit:]


def _remove_quietly(path: str, what: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove %s %s: %s", what, path, e)


class SubtitleBurner:
    """
    Renders subtitle segments onto a video. Holds configuration only, so one
    instance can serve concurrent calls; bounding concurrency is up to the caller.
    """

    def __init__(self, temp_dir: str, ffmpeg_bin: str = "ffmpeg", timeout: Optional[float] = None,
                 preset: str = config.FFMPEG_PRESET, crf: str = config.FFMPEG_CRF,
                 id_factory: Callable[[], str] = default_id_factory, runner=run_command):
        self.temp_dir = temp_dir
        self.ffmpeg_bin = ffmpeg_bin
        self.timeout = timeout
        self.preset = preset
        self.crf = crf
        self.id_factory = id_factory
        self.runner = runner

    def burn(self, video_path: str, segments, style: SubtitleStyle,
             log_callback: Optional[Callable[[str], None]] = None) -> RenderResult:
        """
        Burns `segments` into `video_path`.

        Returns:
            RenderResult; output_path is set only on success and belongs to the caller.
        """
        def log(msg):
            logger.info(msg)
            if log_callback:
                log_callback(msg)

        srt_path = None
        try:
            if not is_tool_available(self.ffmpeg_bin, runner=self.runner):
                raise ToolUnavailableError(
                    f"FFmpeg not found ({self.ffmpeg_bin}). Install FFmpeg to continue."
                )

            validate_path(video_path, "video path")
            validate_style(style)
            validate_segments(segments)
            output_path = derive_output_path(video_path, self.id_factory)
            validate_path(output_path, "output path")

            srt_path = write_srt_file(segments, self.temp_dir, self.id_factory)
            log(f"Subtitle track written: {srt_path} ({len(segments)} cues)")

            cmd = build_ffmpeg_command(self.ffmpeg_bin, os.path.abspath(video_path), srt_path,
                                       output_path, style, self.preset, self.crf)
            log(f"Running ffmpeg -> {output_path}")
            self._render(cmd, output_path)

            size = os.path.getsize(output_path)
            log(f"Video created: {output_path} ({size} bytes)")
            return RenderResult(True, "Video with subtitles generated successfully", output_path=output_path)

        except RenderFailureError as e:
            logger.error("Render failed: %s", e)
            return RenderResult(False, str(e), error_code=e.code, diagnostics=e.diagnostics)
        except PipelineError as e:
            logger.error("Subtitle burn aborted: %s", e)
            return RenderResult(False, str(e), error_code=e.code)
        finally:
            if srt_path:
                _remove_quietly(srt_path, "subtitle file")

    def _render(self, cmd: List[str], output_path: str) -> None:
        try:
            result = self.runner(cmd, timeout=self.timeout)
        except OSError as e:
            raise ToolUnavailableError(f"FFmpeg could not be started: {e}")

        if result.stderr:
            logger.debug("ffmpeg stderr: %s", _tail(result.stderr))

        if result.timed_out:
            _remove_quietly(output_path, "partial output")
            raise RenderFailureError(f"FFmpeg timed out after {self.timeout}s",
                                     diagnostics=_tail(result.stderr), code=RENDER_TIMEOUT_CODE)
        if result.returncode != 0:
            _remove_quietly(output_path, "partial output")
            raise RenderFailureError(f"FFmpeg exited with status {result.returncode}",
                                     diagnostics=_tail(result.stderr))
        if not os.path.isfile(output_path) or os.path.getsize(output_path) == 0:
            _remove_quietly(output_path, "empty output")
            raise RenderFailureError("Output file was not created", diagnostics=_tail(result.stderr))
