"""HTTP API tests with FastAPI's TestClient; rendering and probing are faked."""

from __future__ import annotations

import json
import os

import pytest
from fastapi.testclient import TestClient

import server
from config import Settings
from subtitle_burner import RenderResult


class FakeBurner:
    """Records burn() calls and drops a small file where ffmpeg would have written."""

    def __init__(self, succeed: bool = True, error_code: str = "pipeline.ffmpeg.render_failed",
                 message: str = "FFmpeg exited with status 1") -> None:
        self.succeed = succeed
        self.error_code = error_code
        self.message = message
        self.calls = []

    def burn(self, video_path, segments, style, log_callback=None):
        self.calls.append((video_path, list(segments), style))
        if not self.succeed:
            return RenderResult(False, self.message, error_code=self.error_code)
        output = os.path.splitext(video_path)[0] + "_subtitled_test.mp4"
        with open(output, "wb") as f:
            f.write(b"video with subtitles")
        return RenderResult(True, "ok", output_path=output)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=str(tmp_path / "data"), translator_chain=["dictionary"])


@pytest.fixture
def app(settings, monkeypatch):
    monkeypatch.setattr(server.config, "DOWNLOAD_RETENTION_SECONDS", 3600)
    application = server.create_app(settings)
    application.state.burner = FakeBurner()
    application.state.transcriber.prober = lambda path, ffprobe_bin: 9.0
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def upload(name="clip.mp4", content_type="video/mp4", data=b"fake video"):
    return {"video": (name, data, content_type)}


def test_health(client) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_languages(client) -> None:
    body = client.get("/api/translation/languages").json()
    assert body["totalLanguages"] == len(body["languages"])
    assert {"code": "pt", "name": "Portuguese"} in body["languages"]


def test_models_without_ollama(client) -> None:
    body = client.get("/api/translation/models").json()
    assert body["ollamaAvailable"] is False
    assert body["models"] == [{"id": "dictionary", "provider": "dictionary"}]


def test_translate_transcription(client) -> None:
    response = client.post("/api/translate/transcription",
                           json={"text": "Hello this is a sample", "targetLanguage": "pt"})

    assert response.status_code == 200
    body = response.json()
    assert body["translation"]["translatedText"] == "olá este é um exemplo"
    assert body["translation"]["model"] == "google"
    assert body["stats"]["originalLength"] == len("Hello this is a sample")


def test_translate_transcription_requires_fields(client) -> None:
    response = client.post("/api/translate/transcription", json={"text": "Hello"})
    assert response.status_code == 400
    assert "targetLanguage" in response.json()["detail"]


def test_transcribe_translates_and_links_download(app, client, settings) -> None:
    response = client.post("/api/transcribe", files=upload(),
                           data={"targetLanguage": "pt", "language": "en", "topic": "sample"})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["stats"]["originalSegments"] == len(body["transcription"]["segments"])
    assert body["stats"]["translatedSegments"] == body["stats"]["segments"]
    assert body["transcription"]["translatedSegments"][0]["originalText"] == \
        body["transcription"]["segments"][0]["text"]

    video_path, segments, style = app.state.burner.calls[0]
    assert style == server.TRANSCRIBE_STYLE
    assert segments[0].text == body["transcription"]["translatedSegments"][0]["text"]

    download_url = body["video"]["downloadUrl"]
    assert download_url.startswith("/download/clip_with_subtitles_")
    downloaded = client.get(download_url)
    assert downloaded.status_code == 200
    assert downloaded.content == b"video with subtitles"


def test_transcribe_same_language_skips_translation(app, client) -> None:
    body = client.post("/api/transcribe", files=upload(),
                       data={"targetLanguage": "en", "language": "en"}).json()

    assert body["transcription"]["translatedSegments"] is None
    _, segments, _ = app.state.burner.calls[0]
    assert [s.text for s in segments] == [s["text"] for s in body["transcription"]["segments"]]


def test_transcribe_requires_video(client) -> None:
    response = client.post("/api/transcribe", data={"targetLanguage": "pt"})
    assert response.status_code == 400
    assert response.json()["error"] == "No video file uploaded"


def test_transcribe_rejects_unsupported_type(client, settings) -> None:
    response = client.post("/api/transcribe", files=upload("notes.txt", "text/plain"))
    assert response.status_code == 400
    assert os.listdir(settings.upload_dir) == []


def test_upload_size_limit(client, settings, monkeypatch) -> None:
    monkeypatch.setattr(server.config, "MAX_UPLOAD_BYTES", 8)
    monkeypatch.setattr(server.config, "UPLOAD_CHUNK_BYTES", 4)

    response = client.post("/api/transcribe", files=upload(data=b"0123456789"))

    assert response.status_code == 413
    assert os.listdir(settings.upload_dir) == []


def test_transcribe_render_failure(app, client, settings) -> None:
    app.state.burner = FakeBurner(succeed=False)

    response = client.post("/api/transcribe", files=upload(), data={"targetLanguage": "en", "language": "en"})

    assert response.status_code == 500
    assert response.json()["detail"] == "FFmpeg exited with status 1"
    assert os.listdir(settings.upload_dir) == []


def test_generate_with_translated_segments(app, client, settings) -> None:
    segments = [{"start": 0, "end": 2.5, "text": "Olá"}, {"start": 2.5, "end": 4, "text": "mundo"}]

    response = client.post("/api/generate-video-with-translated-subtitles", files=upload(),
                           data={"translatedSegments": json.dumps(segments)})

    assert response.status_code == 200
    assert response.headers["content-type"] == "video/mp4"
    assert "clip_with_subtitles.mp4" in response.headers["content-disposition"]
    assert response.content == b"video with subtitles"

    _, burned, style = app.state.burner.calls[0]
    assert [(s.start, s.end, s.text) for s in burned] == [(0, 2.5, "Olá"), (2.5, 4, "mundo")]
    assert style == server.TRANSLATED_STYLE
    assert os.listdir(settings.upload_dir) == []


def test_generate_without_segments_uses_demo(app, client) -> None:
    response = client.post("/api/generate-video-with-translated-subtitles", files=upload())

    assert response.status_code == 200
    _, burned, _ = app.state.burner.calls[0]
    assert burned == server.DEMO_SEGMENTS


@pytest.mark.parametrize("payload", ["not json", '{"start": 0}', '[{"start": "a", "end": 1, "text": "x"}]'])
def test_generate_rejects_bad_segments(client, payload) -> None:
    response = client.post("/api/generate-video-with-translated-subtitles", files=upload(),
                           data={"translatedSegments": payload})
    assert response.status_code == 400


def test_generate_render_failure(app, client) -> None:
    app.state.burner = FakeBurner(succeed=False)

    response = client.post("/api/generate-video-with-translated-subtitles", files=upload())

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to generate video with subtitles"


def test_download_rejects_traversal_and_missing(client) -> None:
    assert client.get("/download/..").status_code in (403, 404)
    assert client.get("/download/missing.mp4").status_code == 404


@pytest.mark.parametrize(
    "segments",
    [
        [{"start": 5, "end": 1, "text": "x"}],
        [{"start": -1, "end": 1, "text": "x"}],
        [{"start": 3, "end": 4, "text": "late"}, {"start": 0, "end": 1, "text": "early"}],
        [{"start": 0, "end": 1, "text": "  "}],
    ],
)
def test_generate_rejects_bad_timing_before_upload(app, client, settings, segments) -> None:
    response = client.post("/api/generate-video-with-translated-subtitles", files=upload(),
                           data={"translatedSegments": json.dumps(segments)})

    assert response.status_code == 400
    assert response.json()["error"] == "Could not process translated segments"
    assert app.state.burner.calls == []
    assert os.listdir(settings.upload_dir) == []


def test_burner_validation_failure_is_client_error(app, client, settings) -> None:
    app.state.burner = FakeBurner(succeed=False, error_code="pipeline.input.invalid",
                                  message="Segment 0: End time must be after start time")

    response = client.post("/api/transcribe", files=upload(), data={"targetLanguage": "en", "language": "en"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Segment 0: End time must be after start time"
    assert os.listdir(settings.upload_dir) == []
