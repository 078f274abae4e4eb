"""
SRT Utilities - Building, writing and parsing SRT subtitle tracks
"""

import logging
import os
import re
import uuid
from decimal import Decimal
from typing import Callable, Optional

from errors import SubtitleIOError
from segment_validation import Segment, validate_segments

logger = logging.getLogger(__name__)

_STRIP_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')
_BLANK_LINES = re.compile(r'\n\s*\n+')


def default_id_factory() -> str:
    return uuid.uuid4().hex


def format_srt_time(seconds):
    """
    Converts seconds to SRT timestamp format (HH:MM:SS,mmm).

    Every field is floored, so 59.999 stays at 00:00:59,999.
    Goes through the float's shortest decimal form so 3661.001 keeps its millisecond.

    Args:
        seconds: Non-negative duration in seconds (int or float)

    Returns:
        SRT timestamp string
    """
    ms = int(Decimal(repr(float(seconds))) * 1000)
    hours = ms // 3600000
    ms %= 3600000
    minutes = ms // 60000
    ms %= 60000
    secs = ms // 1000
    milliseconds = ms % 1000
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{milliseconds:03d}"


def parse_srt_time(time_str):
    """
    Parses an SRT timestamp (HH:MM:SS,mmm, also with '.' or ':' before the ms) to seconds.
    """
    if isinstance(time_str, (int, float)):
        return float(time_str)

    t_str = str(time_str).strip().replace('.', ',')
    match_full = re.match(r'^(\d+):(\d+):(\d+)[:,](\d+)$', t_str)
    if match_full:
        h, m, s, ms = map(int, match_full.groups())
        return ((h * 3600 + m * 60 + s) * 1000 + ms) / 1000.0

    match_hms = re.match(r'^(\d+):(\d+):(\d+)$', t_str)
    if match_hms:
        h, m, s = map(int, match_hms.groups())
        return float(h * 3600 + m * 60 + s)

    raise ValueError(f"Invalid timestamp format: {time_str}")


def clean_cue_text(text):
    """Drops control characters and blank lines, which would end a cue early."""
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = _STRIP_CHARS.sub('', text)
    text = _BLANK_LINES.sub('\n', text)
    return text.strip()


def build_srt(segments):
    """
    Serializes segments into SRT content.

    Args:
        segments: Ordered sequence of Segment

    Returns:
        SRT content, one numbered cue per segment
    """
    validate_segments(segments)

    cues = []
    for index, seg in enumerate(segments, start=1):
        cues.append(
            f"{index}\n"
            f"{format_srt_time(seg.start)} --> {format_srt_time(seg.end)}\n"
            f"{clean_cue_text(seg.text)}\n"
        )
    return "\n".join(cues)


def write_srt_file(segments, temp_dir: str, id_factory: Optional[Callable[[], str]] = None) -> str:
    """
    Writes segments to a uniquely named SRT file inside temp_dir.

    Args:
        segments: Ordered sequence of Segment
        temp_dir: Directory for the ephemeral file, created when missing
        id_factory: Returns a unique token for the file name

    Returns:
        Path of the written SRT file

    Raises:
        SubtitleValidationError: if the segments are malformed (nothing is written)
        SubtitleIOError: if the file cannot be written (no partial file is left)
    """
    content = build_srt(segments)
    token = (id_factory or default_id_factory)()
    srt_path = os.path.join(temp_dir, f"subtitles_{token}.srt")

    created = False
    try:
        os.makedirs(temp_dir, exist_ok=True)
        # 'x' refuses to clobber a file from a concurrent request
        with open(srt_path, 'x', encoding='utf-8') as f:
            created = True
            f.write(content)
    except OSError as e:
        if created:
            try:
                os.remove(srt_path)
            except OSError as cleanup_error:
                logger.warning("Could not remove partial SRT %s: %s", srt_path, cleanup_error)
        raise SubtitleIOError(f"Failed to write subtitle file {srt_path}: {e}") from e

    logger.debug("Wrote %d cues to %s", len(segments), srt_path)
    return srt_path


def parse_srt(srt_content):
    """
    Parses SRT content string into a list of Segment.

    Malformed blocks are skipped.
    """
    segments = []
    blocks = srt_content.replace('\r\n', '\n').strip().split('\n\n')

    for block in blocks:
        lines = block.strip().split('\n')
        if len(lines) < 3 or '-->' not in lines[1]:
            continue

        try:
            int(lines[0])
            start_str, end_str = lines[1].split('-->')
            segments.append(Segment(
                start=parse_srt_time(start_str),
                end=parse_srt_time(end_str),
                text='\n'.join(lines[2:]),
            ))
        except (ValueError, IndexError):
            continue

    return segments
