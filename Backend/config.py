"""
Configuration constants and environment settings for the subtitle service
"""

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Uploads
MAX_UPLOAD_BYTES = 100 * 1024 * 1024  # 100MB
UPLOAD_CHUNK_BYTES = 1024 * 1024
ALLOWED_UPLOAD_TYPES = [
    "video/mp4", "video/avi", "video/quicktime", "video/x-msvideo",
    "audio/mpeg", "audio/wav", "audio/flac",
]
DOWNLOAD_RETENTION_SECONDS = 60  # Time left to fetch a rendered video

# FFmpeg
FFMPEG_VIDEO_CODEC = "libx264"
FFMPEG_PRESET = "medium"
FFMPEG_CRF = "23"
TOOL_PROBE_TIMEOUT_SECONDS = 10
PROBE_TIMEOUT_SECONDS = 10
DIAGNOSTIC_TAIL_CHARS = 2000  # stderr tail kept on a failed render

# Paths
UPLOADS_DIR_NAME = "uploads"
DOWNLOADS_DIR_NAME = "downloads"
TEMP_DIR_NAME = "temp"
OUTPUT_SUFFIX = "_subtitled"
DOWNLOAD_SUFFIX = "_with_subtitles"

# Mock transcription heuristics
MIN_PROBED_DURATION_SEC = 1
MAX_PROBED_DURATION_SEC = 600
MIN_ESTIMATED_DURATION_SEC = 5
MAX_ESTIMATED_DURATION_SEC = 120
BYTES_PER_ESTIMATED_SECOND_KB = 256
MIN_SEGMENT_SEC = 2
MAX_SEGMENT_SEC = 5

# Translation
GOOGLE_TRANSLATE_URL = "https://translate.googleapis.com/translate_a/single"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.1:8b"
DEFAULT_GEMINI_MODEL = "gemini-2.5-pro"
DEFAULT_TRANSLATOR_CHAIN = "ollama,gemini,google,dictionary"
RETRY_BACKOFF_FACTOR = 1.5
CIRCUIT_BREAKER_THRESHOLD = 3
CIRCUIT_BREAKER_COOLOFF_SEC = 60

# Concurrency (Default if Env Var missing)
DEFAULT_MAX_CONCURRENT_RENDERS = 3
DEFAULT_TRANSLATION_WORKERS = 10

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


class Settings(BaseModel):
    port: int = 3000
    allowed_origins: List[str] = ["*"]
    data_dir: str = os.path.join(BASE_DIR, "data")
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    render_timeout: Optional[float] = None  # None: wait for ffmpeg indefinitely
    max_concurrent_renders: int = DEFAULT_MAX_CONCURRENT_RENDERS
    ollama_url: str = DEFAULT_OLLAMA_URL
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    translator_chain: List[str] = DEFAULT_TRANSLATOR_CHAIN.split(",")
    translation_timeout: float = 5.0
    translation_max_retries: int = 0
    translation_workers: int = DEFAULT_TRANSLATION_WORKERS
    default_language: str = "pt"
    log_level: str = "INFO"

    @property
    def upload_dir(self) -> str:
        return os.path.join(self.data_dir, UPLOADS_DIR_NAME)

    @property
    def download_dir(self) -> str:
        return os.path.join(self.data_dir, DOWNLOADS_DIR_NAME)

    @property
    def temp_dir(self) -> str:
        return os.path.join(self.data_dir, TEMP_DIR_NAME)


def _split_list(value):
    return [item.strip() for item in value.split(",") if item.strip()]


def get_settings() -> Settings:
    """Builds Settings from the environment (and a .env file when present)."""
    load_dotenv()

    values = {}
    env_map = {
        "PORT": "port",
        "DATA_DIR": "data_dir",
        "FFMPEG_BIN": "ffmpeg_bin",
        "FFPROBE_BIN": "ffprobe_bin",
        "RENDER_TIMEOUT_SECONDS": "render_timeout",
        "MAX_CONCURRENT_RENDERS": "max_concurrent_renders",
        "OLLAMA_URL": "ollama_url",
        "OLLAMA_MODEL": "ollama_model",
        "GEMINI_MODEL": "gemini_model",
        "TRANSLATION_TIMEOUT_SECONDS": "translation_timeout",
        "TRANSLATION_MAX_RETRIES": "translation_max_retries",
        "TRANSLATION_WORKERS": "translation_workers",
        "DEFAULT_LANGUAGE": "default_language",
        "LOG_LEVEL": "log_level",
    }
    for env_name, field_name in env_map.items():
        raw = os.getenv(env_name)
        if raw is not None and raw.strip():
            values[field_name] = raw.strip()

    origins = os.getenv("ALLOWED_ORIGINS")
    if origins:
        values["allowed_origins"] = _split_list(origins)

    chain = os.getenv("TRANSLATOR_CHAIN")
    if chain:
        values["translator_chain"] = _split_list(chain.lower())

    api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    if api_key:
        values["gemini_api_key"] = api_key

    return Settings(**values)
