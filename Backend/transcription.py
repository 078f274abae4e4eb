"""
Simulated transcription.

There is no speech model here: segments are laid out over the media duration and
filled with placeholder sentences. Swap MockTranscriber for a real backend with the
same transcribe() signature.
"""

import logging
import math
import os
from dataclasses import dataclass, field
from typing import List, Optional

import config
from errors import TranscriptionError
from ffmpeg_tools import probe_duration

logger = logging.getLogger(__name__)

GENERIC_TEXTS = [
    "This is an example of content transcribed from the video.",
    "Transcription quality depends on how clear the audio is.",
    "The system is processing the audio and generating subtitles.",
    "Each segment covers a specific period of time.",
    "Automatic transcription makes content more accessible.",
    "Speech recognition technology keeps evolving.",
    "It is important to review transcriptions for accuracy.",
    "Audio processing can include noise removal.",
    "Subtitles help people with hearing impairments.",
    "Synchronization between audio and text is essential.",
]


@dataclass
class TranscriptionContext:
    prompt: Optional[str] = None
    vocabulary: Optional[List[str]] = None
    topic: Optional[str] = None
    speaker: Optional[str] = None
    language: Optional[str] = None


@dataclass
class TranscriptionSegment:
    id: int
    start: float
    end: float
    text: str
    seek: int = 0

    def to_dict(self):
        return {"id": self.id, "seek": self.seek, "start": self.start, "end": self.end, "text": self.text}


@dataclass
class TranscriptionResult:
    text: str
    segments: List[TranscriptionSegment] = field(default_factory=list)
    language: Optional[str] = None
    duration: float = 0.0

    def to_dict(self):
        return {
            "text": self.text,
            "segments": [s.to_dict() for s in self.segments],
            "language": self.language,
            "duration": self.duration,
        }


def estimate_duration_from_size(path: str) -> float:
    size_kb = os.path.getsize(path) / 1024
    estimated = round(size_kb / config.BYTES_PER_ESTIMATED_SECOND_KB)
    return float(max(config.MIN_ESTIMATED_DURATION_SEC, min(config.MAX_ESTIMATED_DURATION_SEC, estimated)))


def contextual_texts(context: Optional[TranscriptionContext], count: int) -> List[str]:
    texts = []
    if context and context.topic:
        texts.append(f"Let's talk about {context.topic} in this video.")
        texts.append(f"The topic {context.topic} is very important to understand.")
        texts.append(f"Continuing our discussion about {context.topic}.")
    if context and context.speaker:
        texts.append(f"{context.speaker} is presenting this content.")
        texts.append(f"As {context.speaker} mentioned earlier.")
    if context and context.prompt:
        texts.append(f"{context.prompt} - let's explore this subject.")

    while len(texts) < count:
        texts.append(GENERIC_TEXTS[len(texts) % len(GENERIC_TEXTS)])
    return texts[:count]


class MockTranscriber:
    """Fakes a Whisper-style transcription from the media duration."""

    def __init__(self, ffprobe_bin: str = "ffprobe", default_language: str = "pt", prober=probe_duration):
        self.ffprobe_bin = ffprobe_bin
        self.default_language = default_language
        self.prober = prober

    def get_duration(self, path: str) -> float:
        duration = self.prober(path, self.ffprobe_bin)
        if duration is None:
            estimated = estimate_duration_from_size(path)
            logger.warning("Could not probe %s, estimating %.0fs from file size", path, estimated)
            return estimated
        return max(config.MIN_PROBED_DURATION_SEC, min(duration, config.MAX_PROBED_DURATION_SEC))

    def transcribe(self, path: str, context: Optional[TranscriptionContext] = None) -> TranscriptionResult:
        if not os.path.exists(path):
            raise TranscriptionError(f"File not found: {path}")

        duration = self.get_duration(path)
        segment_length = max(config.MIN_SEGMENT_SEC, min(config.MAX_SEGMENT_SEC, duration / 8))
        count = math.ceil(duration / segment_length)
        texts = contextual_texts(context, count)

        segments = []
        for i in range(count):
            start = i * segment_length
            end = min((i + 1) * segment_length, duration)
            if round(end, 2) <= round(start, 2):
                # Sliver shorter than the 10ms resolution
                continue
            segments.append(TranscriptionSegment(
                id=i,
                seek=int(start * 100),
                start=round(start, 2),
                end=round(end, 2),
                text=texts[i],
            ))

        language = context.language if context and context.language and context.language != "auto" else self.default_language
        logger.info("Simulated transcription of %s: %d segments (%.2fs)", path, len(segments), duration)
        return TranscriptionResult(
            text=" ".join(s.text for s in segments),
            segments=segments,
            language=language,
            duration=duration,
        )
