"""
Error types shared by the subtitle pipeline and its glue services
"""

from typing import Optional

TOOL_NOT_FOUND_CODE = "pipeline.ffmpeg.not_found"
VALIDATION_CODE = "pipeline.input.invalid"
SUBTITLE_IO_CODE = "pipeline.subtitle.io_error"
RENDER_FAILED_CODE = "pipeline.ffmpeg.render_failed"
RENDER_TIMEOUT_CODE = "pipeline.ffmpeg.timeout"
TRANSLATION_CODE = "translation.failed"
TRANSCRIPTION_CODE = "transcription.failed"


class PipelineError(RuntimeError):
    """Runtime error with a stable error code."""

    code = "pipeline.error"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code:
            self.code = code


class ToolUnavailableError(PipelineError):
    code = TOOL_NOT_FOUND_CODE


class SubtitleValidationError(PipelineError):
    code = VALIDATION_CODE


class SubtitleIOError(PipelineError):
    code = SUBTITLE_IO_CODE


class RenderFailureError(PipelineError):
    code = RENDER_FAILED_CODE

    def __init__(self, message: str, diagnostics: str = "", code: Optional[str] = None) -> None:
        super().__init__(message, code)
        self.diagnostics = diagnostics


class TranslationError(PipelineError):
    code = TRANSLATION_CODE


class TranscriptionError(PipelineError):
    code = TRANSCRIPTION_CODE
