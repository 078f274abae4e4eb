import json
import logging
import os
import re
import shutil
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel
from starlette.background import BackgroundTask

import config
from errors import VALIDATION_CODE, SubtitleValidationError, TranscriptionError, TranslationError
from segment_validation import Segment, validate_segments
from subtitle_burner import SubtitleBurner, SubtitleStyle
from transcription import MockTranscriber, TranscriptionContext
from translation import (
    SUPPORTED_LANGUAGES,
    build_translator_chain,
    get_available_models,
    translate_texts,
)

logger = logging.getLogger("server")

SERVICE_NAME = "subtitle-burn-api"

TRANSCRIBE_STYLE = SubtitleStyle(
    font_name="Arial", font_size=20, font_color="#ffffff", background_color="#000000cc",
    border_width=1, border_color="#000000", margin_vertical=50,
)
TRANSLATED_STYLE = SubtitleStyle(
    font_name="Arial", font_size=18, font_color="#ffffff", background_color="#000000",
    border_width=1, border_color="#000000", margin_vertical=20,
)

DEMO_SEGMENTS = [
    Segment(0, 3, "This is a test of translated subtitles"),
    Segment(3, 6, "Second part of the subtitle test"),
    Segment(6, 9, "Third and last part of the test"),
]


class TranslateTranscriptionRequest(BaseModel):
    text: Optional[str] = None
    sourceLanguage: str = "auto"
    targetLanguage: Optional[str] = None
    model: str = "google"


class UploadRejected(Exception):
    def __init__(self, status_code, error, detail):
        super().__init__(detail)
        self.status_code = status_code
        self.error = error
        self.detail = detail


def error_response(status_code, error, detail):
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


def render_failure_response(result):
    if result.error_code == VALIDATION_CODE:
        return error_response(400, "Invalid subtitle input", result.message)
    return error_response(500, "Failed to generate video with subtitles", result.message)


def safe_stem(filename):
    stem = os.path.splitext(os.path.basename(filename or "video"))[0]
    stem = re.sub(r'[^\w\-. ]', '_', stem).strip(" .") or "video"
    return stem[:100]


def remove_files(*paths):
    for path in paths:
        if path and os.path.exists(path):
            try:
                os.remove(path)
            except OSError as e:
                logger.warning("Failed to remove %s: %s", path, e)


def save_upload(file: UploadFile, upload_dir: str) -> str:
    """Saves an upload under a unique name, enforcing type and size limits."""
    if file.content_type not in config.ALLOWED_UPLOAD_TYPES:
        raise UploadRejected(400, "Unsupported file type", f"Type {file.content_type!r} is not allowed")

    extension = os.path.splitext(file.filename or "")[1].lower()
    if not re.match(r'^\.[a-z0-9]{1,5}$', extension):
        extension = ""
    file_path = os.path.join(upload_dir, f"{uuid.uuid4().hex}{extension}")
    os.makedirs(upload_dir, exist_ok=True)

    written = 0
    with open(file_path, "wb") as buffer:
        for chunk in iter(lambda: file.file.read(config.UPLOAD_CHUNK_BYTES), b""):
            written += len(chunk)
            if written > config.MAX_UPLOAD_BYTES:
                break
            buffer.write(chunk)

    if written > config.MAX_UPLOAD_BYTES:
        remove_files(file_path)
        raise UploadRejected(413, "File too large", f"Maximum upload size is {config.MAX_UPLOAD_BYTES} bytes")
    return file_path


def create_app(settings: Optional[config.Settings] = None) -> FastAPI:
    settings = settings or config.get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    for directory in (settings.upload_dir, settings.download_dir, settings.temp_dir):
        os.makedirs(directory, exist_ok=True)

    app = FastAPI(title=SERVICE_NAME)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.transcriber = MockTranscriber(settings.ffprobe_bin, settings.default_language)
    app.state.translator = build_translator_chain(settings)
    app.state.burner = SubtitleBurner(settings.temp_dir, settings.ffmpeg_bin, timeout=settings.render_timeout)
    # Limit concurrent ffmpeg renders (CPU/memory heavy)
    app.state.render_semaphore = threading.Semaphore(settings.max_concurrent_renders)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.time()
        response = await call_next(request)
        logger.info("%s %s -> %d (%.0fms)", request.method, request.url.path,
                    response.status_code, (time.time() - started) * 1000)
        return response

    @app.exception_handler(UploadRejected)
    async def upload_rejected_handler(request: Request, exc: UploadRejected):
        return error_response(exc.status_code, exc.error, exc.detail)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(exc)})

    def schedule_cleanup(*paths):
        timer = threading.Timer(config.DOWNLOAD_RETENTION_SECONDS, remove_files, args=paths)
        timer.daemon = True
        timer.start()

    def render(video_path, segments, style):
        with app.state.render_semaphore:
            return app.state.burner.burn(video_path, segments, style)

    @app.post("/api/transcribe")
    def transcribe_and_generate_video(
        video: Optional[UploadFile] = File(None),
        targetLanguage: str = Form("pt"),
        language: str = Form("auto"),
        prompt: Optional[str] = Form(None),
        vocabulary: Optional[str] = Form(None),
        topic: Optional[str] = Form(None),
        speaker: Optional[str] = Form(None),
    ):
        if video is None:
            return error_response(400, "No video file uploaded", 'Field "video" is required')

        try:
            vocabulary_list = json.loads(vocabulary) if vocabulary else None
        except ValueError:
            return error_response(400, "Invalid vocabulary", "vocabulary must be a JSON list")

        upload_path = save_upload(video, settings.upload_dir)
        logger.info("Received %s (%s) -> %s", video.filename, video.content_type, upload_path)

        try:
            context = TranscriptionContext(prompt=prompt, vocabulary=vocabulary_list, topic=topic,
                                           speaker=speaker, language=language)
            transcription = app.state.transcriber.transcribe(upload_path, context)

            texts = [s.text for s in transcription.segments]
            translated_segments = []
            if targetLanguage != language and targetLanguage != "auto":
                logger.info("Translating %d segments to %s", len(texts), targetLanguage)
                translated = translate_texts(app.state.translator, texts, language, targetLanguage,
                                             settings.translation_workers)
                translated_segments = [
                    {**s.to_dict(), "text": t, "originalText": s.text}
                    for s, t in zip(transcription.segments, translated)
                ]
                texts = translated

            segments = [Segment(s.start, s.end, t) for s, t in zip(transcription.segments, texts)]
            result = render(upload_path, segments, TRANSCRIBE_STYLE)
        except (TranscriptionError, TranslationError) as e:
            remove_files(upload_path)
            return error_response(500, "Failed to process video", str(e))
        except Exception:
            remove_files(upload_path)
            raise

        if not result.success:
            remove_files(upload_path)
            return render_failure_response(result)

        download_name = f"{safe_stem(video.filename)}{config.DOWNLOAD_SUFFIX}_{uuid.uuid4().hex[:8]}.mp4"
        download_path = os.path.join(settings.download_dir, download_name)
        shutil.move(result.output_path, download_path)
        schedule_cleanup(upload_path, download_path)

        return {
            "success": True,
            "message": "Video processed successfully!",
            "originalFile": video.filename,
            "targetLanguage": targetLanguage,
            "sourceLanguage": language,
            "transcription": {
                "text": transcription.text,
                "segments": [s.to_dict() for s in transcription.segments],
                "language": transcription.language,
                "translatedSegments": translated_segments or None,
            },
            "video": {
                "downloadUrl": f"/download/{download_name}",
                "fileName": download_name,
            },
            "stats": {
                "duration": transcription.duration,
                "originalSegments": len(transcription.segments),
                "translatedSegments": len(translated_segments),
                "segments": len(segments),
            },
        }

    @app.post("/api/generate-video-with-translated-subtitles")
    def generate_video_with_translated_subtitles(
        video: Optional[UploadFile] = File(None),
        translatedSegments: Optional[str] = Form(None),
    ):
        if video is None:
            return error_response(400, "No video file uploaded", 'Field "video" is required')

        segments = []
        if translatedSegments:
            try:
                payload = json.loads(translatedSegments)
                if not isinstance(payload, list):
                    raise SubtitleValidationError("translatedSegments must be a JSON list")
                segments = [Segment.from_dict(item) for item in payload]
                if segments:
                    validate_segments(segments)
            except (ValueError, SubtitleValidationError) as e:
                return error_response(400, "Could not process translated segments", str(e))

        if not segments:
            logger.warning("No segments received, using demo segments")
            segments = DEMO_SEGMENTS

        upload_path = save_upload(video, settings.upload_dir)
        try:
            result = render(upload_path, segments, TRANSLATED_STYLE)
        except Exception:
            remove_files(upload_path)
            raise
        if not result.success:
            remove_files(upload_path)
            return render_failure_response(result)

        filename = f"{safe_stem(video.filename)}{config.DOWNLOAD_SUFFIX}.mp4"
        return FileResponse(
            result.output_path,
            media_type="video/mp4",
            filename=filename,
            background=BackgroundTask(remove_files, upload_path, result.output_path),
        )

    @app.post("/api/translate/transcription")
    def translate_transcription(req: TranslateTranscriptionRequest):
        if not req.text or not req.targetLanguage:
            return error_response(400, "Text and target language are required",
                                  'Fields "text" and "targetLanguage" must be provided')

        chain = app.state.translator.prefer(req.model)
        try:
            translated = chain.translate(req.text, req.sourceLanguage, req.targetLanguage)
        except TranslationError as e:
            return error_response(500, "Translation failed", str(e))

        return {
            "success": True,
            "message": "Translation completed successfully!",
            "translation": {
                "originalText": req.text,
                "translatedText": translated,
                "sourceLanguage": req.sourceLanguage,
                "targetLanguage": req.targetLanguage,
                "model": req.model,
            },
            "stats": {
                "originalLength": len(req.text),
                "translatedLength": len(translated),
            },
        }

    @app.get("/api/translation/models")
    def get_translation_models():
        ollama = app.state.translator.get("ollama")
        return {
            "message": "Available translation models",
            "models": get_available_models(app.state.translator),
            "defaultModel": settings.ollama_model,
            "ollamaAvailable": ollama.is_available() if ollama is not None else False,
        }

    @app.get("/api/translation/languages")
    def get_translation_languages():
        return {
            "message": "Supported translation languages",
            "languages": SUPPORTED_LANGUAGES,
            "totalLanguages": len(SUPPORTED_LANGUAGES),
        }

    @app.get("/api/test")
    def api_test():
        return {"message": "Transcription API is working!", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/api/health")
    def health():
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat(), "service": SERVICE_NAME}

    @app.get("/download/{filename}")
    def download_file(filename: str):
        path = os.path.join(settings.download_dir, filename)

        # Security: Validate path doesn't escape the download directory
        final_path_abs = os.path.abspath(path)
        base_dir_abs = os.path.abspath(settings.download_dir)
        if os.path.dirname(final_path_abs) != base_dir_abs:
            raise HTTPException(status_code=403, detail="Access denied")

        if not os.path.isfile(final_path_abs):
            raise HTTPException(status_code=404, detail=f"File not found: {filename}")

        return FileResponse(final_path_abs, media_type="video/mp4", filename=filename)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
