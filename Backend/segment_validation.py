"""
Validation utilities for subtitle segments and render inputs
"""

import math
import re
from dataclasses import dataclass

from errors import SubtitleValidationError

CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')


@dataclass(frozen=True)
class Segment:
    """One timed subtitle cue, in seconds."""
    start: float
    end: float
    text: str

    @classmethod
    def from_dict(cls, data: dict) -> "Segment":
        """
        Builds a Segment from an API payload entry.

        Raises:
            SubtitleValidationError: if a field is missing or not numeric
        """
        if not isinstance(data, dict):
            raise SubtitleValidationError(f"Segment must be an object, got {type(data).__name__}")
        for field in ('start', 'end', 'text'):
            if field not in data:
                raise SubtitleValidationError(f"Missing required field: {field}")
        try:
            start = float(data['start'])
            end = float(data['end'])
        except (TypeError, ValueError):
            raise SubtitleValidationError(
                f"Invalid segment timing: start={data['start']!r} end={data['end']!r}"
            )
        return cls(start=start, end=end, text=str(data['text'] if data['text'] is not None else ''))


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_segment(segment: Segment) -> tuple[bool, str]:
    """
    Validate a single segment's timing and text

    Args:
        segment: Segment with start, end (seconds) and text

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not _is_number(segment.start):
        return False, f"Invalid start time: {segment.start!r}"
    if not _is_number(segment.end):
        return False, f"Invalid end time: {segment.end!r}"
    if segment.start < 0:
        return False, f"Start time must not be negative: {segment.start}"
    if segment.end <= segment.start:
        return False, "End time must be after start time"
    if not isinstance(segment.text, str):
        return False, "Segment text must be a string"
    # A cue with no visible text would run into the next one in the SRT
    if not CONTROL_CHARS.sub('', segment.text).strip():
        return False, "Segment text is empty"
    return True, ""


def validate_segments_list(segments) -> tuple[bool, str]:
    """
    Validate entire segments list for consistency

    Args:
        segments: Ordered sequence of Segment

    Returns:
        Tuple of (is_valid, error_message)
    """
    if isinstance(segments, (str, bytes, dict)):
        return False, f"Expected a list of segments, got {type(segments).__name__}"
    if not segments:
        return False, "Segments list is empty"

    prev_start = 0.0
    for i, segment in enumerate(segments):
        if not isinstance(segment, Segment):
            return False, f"Segment {i}: expected Segment, got {type(segment).__name__}"
        is_valid, error = validate_segment(segment)
        if not is_valid:
            return False, f"Segment {i}: {error}"

        # Overlaps are allowed, going back in time is not
        if segment.start < prev_start:
            return False, f"Segment {i} starts before segment {i - 1}"
        prev_start = segment.start

    return True, ""


def validate_segments(segments) -> None:
    """Raises SubtitleValidationError when the segments cannot form a subtitle track."""
    is_valid, error = validate_segments_list(segments)
    if not is_valid:
        raise SubtitleValidationError(error)


def validate_path(path: str, label: str = "path") -> None:
    """Paths end up inside an ffmpeg filter graph; control characters are refused outright."""
    if not path or not isinstance(path, str):
        raise SubtitleValidationError(f"Missing {label}")
    if CONTROL_CHARS.search(path):
        raise SubtitleValidationError(f"Control characters are not allowed in {label}: {path!r}")
