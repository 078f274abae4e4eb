"""
Subtitle text translation through an ordered chain of backends.

The chain tries each translator in turn and keeps the first result:

1.  **Ollama:** self-hosted LLM endpoint (`/api/generate`).
2.  **Gemini:** only when an API key is configured.
3.  **Google Translate:** unofficial public endpoint (`client=gtx`).
4.  **Dictionary:** bundled word-by-word fallback, never fails.
"""

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

import requests

import config
from errors import TranslationError

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = [
    {"code": "pt", "name": "Portuguese"},
    {"code": "en", "name": "English"},
    {"code": "es", "name": "Spanish"},
    {"code": "fr", "name": "French"},
    {"code": "de", "name": "German"},
    {"code": "it", "name": "Italian"},
    {"code": "ja", "name": "Japanese"},
    {"code": "ko", "name": "Korean"},
    {"code": "zh", "name": "Chinese"},
    {"code": "ru", "name": "Russian"},
    {"code": "ar", "name": "Arabic"},
    {"code": "hi", "name": "Hindi"},
]

LANGUAGE_NAMES = {lang["code"]: lang["name"] for lang in SUPPORTED_LANGUAGES}

DICTIONARIES: Dict[str, Dict[str, str]] = {
    "pt": {
        "hello": "olá", "this": "este", "is": "é", "a": "um", "sample": "exemplo",
        "transcription": "transcrição", "second": "segunda", "part": "parte",
        "audio": "áudio", "final": "final", "segment": "segmento", "thank": "obrigado",
        "you": "você", "for": "por", "listening": "ouvir", "and": "e", "of": "de", "the": "o",
    },
    "es": {
        "hello": "hola", "this": "este", "is": "es", "a": "un", "sample": "ejemplo",
        "transcription": "transcripción", "second": "segunda", "part": "parte",
        "audio": "audio", "final": "final", "segment": "segmento", "thank": "gracias",
        "you": "tú", "for": "por", "listening": "escuchar", "and": "y", "of": "de", "the": "el",
    },
    "fr": {
        "hello": "bonjour", "this": "ce", "is": "est", "a": "un", "sample": "exemple",
        "transcription": "transcription", "second": "deuxième", "part": "partie",
        "audio": "audio", "final": "final", "segment": "segment", "thank": "merci",
        "you": "vous", "for": "pour", "listening": "écouter", "and": "et", "of": "de", "the": "le",
    },
}

_PORTUGUESE = re.compile(r'[àáâãçéêíóôõú]', re.IGNORECASE)
_SPANISH = re.compile(r'[ñáéíóúü]', re.IGNORECASE)
_FRENCH = re.compile(r'[àâäéèêëïîôùûüÿç]', re.IGNORECASE)


def detect_language(text: str) -> str:
    """Rough accent-based guess; anything unaccented counts as English."""
    if _PORTUGUESE.search(text):
        return "pt"
    if _SPANISH.search(text):
        return "es"
    if _FRENCH.search(text):
        return "fr"
    return "en"


def resolve_source(text: str, source: str) -> str:
    return detect_language(text) if not source or source == "auto" else source


class RetryManager:
    def __init__(self, max_retries=0, backoff_factor=config.RETRY_BACKOFF_FACTOR,
                 circuit_breaker_threshold=config.CIRCUIT_BREAKER_THRESHOLD,
                 cooloff=config.CIRCUIT_BREAKER_COOLOFF_SEC):
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.failures = 0
        self.circuit_breaker_threshold = circuit_breaker_threshold
        self.cooloff = cooloff
        self.last_failure_time = 0
        self.lock = threading.Lock()

    def call(self, name, func, *args, **kwargs):
        with self.lock:
            if self.failures >= self.circuit_breaker_threshold:
                if time.time() - self.last_failure_time < self.cooloff:
                    raise TranslationError(f"{name}: circuit breaker open, skipping call")
                self.failures = 0

        for attempt in range(self.max_retries + 1):
            try:
                result = func(*args, **kwargs)
                with self.lock:
                    self.failures = 0
                return result
            except TranslationError as e:
                logger.warning("%s failed (attempt %d/%d): %s", name, attempt + 1, self.max_retries + 1, e)
                if attempt < self.max_retries:
                    time.sleep(self.backoff_factor ** attempt)
                else:
                    with self.lock:
                        self.failures += 1
                        self.last_failure_time = time.time()
                    raise


class Translator:
    name = "base"

    def translate(self, text: str, source: str, target: str) -> str:
        """Returns the translated text or raises TranslationError."""
        raise NotImplementedError


class RemoteTranslator(Translator):
    """Translator backed by a network call, guarded by a RetryManager."""

    def __init__(self, retry_manager: Optional[RetryManager] = None):
        self.retry_manager = retry_manager or RetryManager()

    def translate(self, text, source, target):
        return self.retry_manager.call(self.name, self._translate, text, source, target)

    def _translate(self, text, source, target):
        raise NotImplementedError


def build_prompt(text, source, target):
    source_name = LANGUAGE_NAMES.get(source, source)
    target_name = LANGUAGE_NAMES.get(target, target)
    return f"""
Translate this subtitle from {source_name} to {target_name}:

"{text}"

Keep the meaning and tone, keep it short enough to read on screen.

OUTPUT: Return ONLY the translated text
"""


def clean_llm_output(text: str) -> str:
    text = (text or "").strip()
    if len(text) >= 2 and text[0] == text[-1] == '"':
        text = text[1:-1].strip()
    return text


class OllamaTranslator(RemoteTranslator):
    name = "ollama"

    def __init__(self, base_url=config.DEFAULT_OLLAMA_URL, model=config.DEFAULT_OLLAMA_MODEL,
                 timeout=30.0, session=None, retry_manager=None):
        super().__init__(retry_manager)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.session = session or requests.Session()

    def _translate(self, text, source, target):
        payload = {"model": self.model, "prompt": build_prompt(text, source, target), "stream": False}
        try:
            response = self.session.post(f"{self.base_url}/api/generate", json=payload, timeout=self.timeout)
            response.raise_for_status()
            result = clean_llm_output(response.json().get("response"))
        except (requests.RequestException, ValueError) as e:
            raise TranslationError(f"Ollama request failed: {e}")
        if not result:
            raise TranslationError("Ollama returned an empty translation")
        return result

    def list_models(self) -> List[str]:
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=self.timeout)
            response.raise_for_status()
            return [m.get("name") for m in response.json().get("models", []) if m.get("name")]
        except (requests.RequestException, ValueError) as e:
            logger.info("Ollama model listing failed: %s", e)
            return []

    def is_available(self) -> bool:
        try:
            response = self.session.get(f"{self.base_url}/api/tags", timeout=self.timeout)
            return response.ok
        except requests.RequestException:
            return False


class GeminiTranslator(RemoteTranslator):
    name = "gemini"

    def __init__(self, api_key, model=config.DEFAULT_GEMINI_MODEL, client=None, retry_manager=None):
        super().__init__(retry_manager)
        self.api_key = api_key
        self.model = model
        self._client = client
        self._client_lock = threading.Lock()

    def get_client(self):
        with self._client_lock:
            if self._client is None:
                from google import genai
                self._client = genai.Client(api_key=self.api_key)
                logger.info("Gemini client initialized.")
            return self._client

    def _translate(self, text, source, target):
        try:
            resp = self.get_client().models.generate_content(
                model=self.model, contents=build_prompt(text, source, target)
            )
            result = clean_llm_output(resp.text)
        except Exception as e:
            # google-genai raises its own error hierarchy plus transport errors
            raise TranslationError(f"Gemini request failed: {e}")
        if not result:
            raise TranslationError("Gemini returned an empty translation")
        return result


class GoogleTranslateTranslator(RemoteTranslator):
    name = "google"

    def __init__(self, url=config.GOOGLE_TRANSLATE_URL, timeout=5.0, session=None, retry_manager=None):
        super().__init__(retry_manager)
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _translate(self, text, source, target):
        params = {
            "client": "gtx",
            "sl": source if source and source != "auto" else "en",
            "tl": target,
            "dt": "t",
            "q": text,
        }
        headers = {"User-Agent": "Mozilla/5.0 (compatible; TranslationBot/1.0)"}
        try:
            response = self.session.get(self.url, params=params, timeout=self.timeout, headers=headers)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise TranslationError(f"Google Translate request failed: {e}")

        try:
            chunks = [chunk[0] for chunk in data[0] if chunk and chunk[0]]
        except (TypeError, IndexError, KeyError):
            raise TranslationError("Unexpected Google Translate response")
        if not chunks:
            raise TranslationError("Google Translate returned no translation")
        return "".join(chunks)


class DictionaryTranslator(Translator):
    name = "dictionary"

    def __init__(self, dictionaries=None):
        self.dictionaries = dictionaries if dictionaries is not None else DICTIONARIES

    def translate(self, text, source, target):
        dictionary = self.dictionaries.get(target)
        if not dictionary:
            logger.warning("No dictionary for %s, returning original text", target)
            return text

        words = text.lower().split()
        translated = [dictionary.get(re.sub(r'[^\w]', '', word), word) for word in words]
        return " ".join(translated)


class TranslatorChain:
    def __init__(self, translators: List[Translator]):
        self.translators = list(translators)

    @property
    def names(self):
        return [t.name for t in self.translators]

    def get(self, name) -> Optional[Translator]:
        for translator in self.translators:
            if translator.name == name:
                return translator
        return None

    def prefer(self, name) -> "TranslatorChain":
        """A chain that tries `name` first; unknown names keep the order."""
        first = [t for t in self.translators if t.name == name]
        rest = [t for t in self.translators if t.name != name]
        return TranslatorChain(first + rest)

    def translate(self, text: str, source: str, target: str) -> str:
        if not text or not text.strip():
            return text
        source = resolve_source(text, source)
        if source == target:
            return text

        errors = []
        for translator in self.translators:
            try:
                result = translator.translate(text, source, target)
            except TranslationError as e:
                errors.append(f"{translator.name}: {e}")
                continue
            logger.debug("%s: %r -> %r", translator.name, text, result)
            return result

        raise TranslationError("All translators failed: " + "; ".join(errors or ["no translators configured"]))


def translate_texts(chain: TranslatorChain, texts: List[str], source: str, target: str,
                    max_workers: int = config.DEFAULT_TRANSLATION_WORKERS) -> List[str]:
    """Translates texts concurrently; output order matches input order."""
    if not texts:
        return []
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(texts)))) as executor:
        return list(executor.map(lambda t: chain.translate(t, source, target), texts))


def build_translator_chain(settings) -> TranslatorChain:
    translators = []
    for name in settings.translator_chain:
        retry = RetryManager(max_retries=settings.translation_max_retries)
        if name == "ollama":
            translators.append(OllamaTranslator(settings.ollama_url, settings.ollama_model,
                                               timeout=settings.translation_timeout, retry_manager=retry))
        elif name == "gemini":
            if settings.gemini_api_key:
                translators.append(GeminiTranslator(settings.gemini_api_key, settings.gemini_model, retry_manager=retry))
            else:
                logger.info("GEMINI_API_KEY not set, Gemini translator disabled")
        elif name == "google":
            translators.append(GoogleTranslateTranslator(timeout=settings.translation_timeout, retry_manager=retry))
        elif name == "dictionary":
            translators.append(DictionaryTranslator())
        else:
            logger.warning("Unknown translator %r ignored", name)
    logger.info("Translator chain: %s", ", ".join(t.name for t in translators) or "(empty)")
    return TranslatorChain(translators)


def get_available_models(chain: TranslatorChain) -> List[dict]:
    models = []
    ollama = chain.get("ollama")
    if ollama is not None:
        for model_name in ollama.list_models():
            models.append({"id": model_name, "provider": "ollama"})
    gemini = chain.get("gemini")
    if gemini is not None:
        models.append({"id": gemini.model, "provider": "gemini"})
    if chain.get("google") is not None:
        models.append({"id": "google", "provider": "google"})
    if chain.get("dictionary") is not None:
        models.append({"id": "dictionary", "provider": "dictionary"})
    return models
