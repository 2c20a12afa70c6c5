"""Gemini interaction (REST over httpx), configuration, errors, pronunciation and post-processing."""
import os
import json
import re as _re
import time
from typing import Optional, List

from log import get_logger

logger = get_logger("trilingua.llm")

import httpx
import pykakasi
from pypinyin import pinyin, Style as PinyinStyle

# --- Config ---
GEMINI_URL = os.environ.get("TRILINGUA_GEMINI_URL", "https://generativelanguage.googleapis.com/v1beta")
TEXT_MODEL = os.environ.get("TRILINGUA_TEXT_MODEL", "gemini-2.5-flash")
IMAGE_MODEL = os.environ.get("TRILINGUA_IMAGE_MODEL", "gemini-2.5-flash-image")
TTS_MODEL = os.environ.get("TRILINGUA_TTS_MODEL", "gemini-2.5-flash-preview-tts")
REQUEST_TIMEOUT = float(os.environ.get("TRILINGUA_REQUEST_TIMEOUT", "60"))

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "API_KEY")


# --- Errors ---

class TrilinguaError(Exception):
    """Base class for errors surfaced to the lookup session."""


class ConfigurationError(TrilinguaError):
    """The backend credential is missing."""


class BackendResponseError(TrilinguaError):
    """The backend failed, returned no text, or returned a payload that breaks the schema."""


def resolve_api_key() -> str:
    for name in API_KEY_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    raise ConfigurationError(
        "API key is missing. Set GEMINI_API_KEY in the environment."
    )


class GenAIClient:
    """Thin async client for the Gemini `generateContent` endpoint.

    The credential is resolved on every call unless one was passed in, so a
    missing key fails the individual request instead of application start-up.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: str = GEMINI_URL,
                 timeout: float = REQUEST_TIMEOUT, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def api_key(self) -> str:
        if self._api_key:
            return self._api_key
        return resolve_api_key()

    @property
    def configured(self) -> bool:
        try:
            self.api_key()
        except ConfigurationError:
            return False
        return True

    async def generate_content(self, model: str, parts: List[dict],
                               generation_config: Optional[dict] = None,
                               timeout: Optional[float] = None) -> dict:
        """POST a single-turn request and return the decoded JSON response."""
        key = self.api_key()
        body = {"contents": [{"parts": parts}]}
        if generation_config:
            body["generationConfig"] = generation_config

        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=timeout or self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/models/{model}:generateContent",
                    headers={"x-goog-api-key": key},
                    json=body,
                )
        except httpx.HTTPError as exc:
            raise BackendResponseError(f"Request to {model} failed: {exc}") from exc

        duration_ms = int((time.monotonic() - started) * 1000)
        if resp.status_code != 200:
            logger.warning(
                "Backend returned an error status",
                extra={"component": "gemini", "model": model, "status_code": resp.status_code,
                       "detail": resp.text[:300], "duration_ms": duration_ms},
            )
            raise BackendResponseError(f"{model} returned HTTP {resp.status_code}")

        logger.debug("Backend call finished", extra={"component": "gemini", "model": model, "duration_ms": duration_ms})
        try:
            return resp.json()
        except ValueError as exc:
            raise BackendResponseError(f"{model} returned a non-JSON envelope") from exc


# --- Response helpers ---

def response_parts(payload: dict) -> List[dict]:
    """Parts of the first candidate; anything not shaped like a part is skipped."""
    if not isinstance(payload, dict):
        return []
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return []
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return []
    return [p for p in parts if isinstance(p, dict)]


def response_text(payload: dict) -> Optional[str]:
    texts = [p["text"] for p in response_parts(payload) if isinstance(p.get("text"), str)]
    text = "".join(texts)
    return text if text.strip() else None


def response_inline_data(payload: dict) -> Optional[dict]:
    """First inline binary part ({"mimeType": .., "data": base64}) or None."""
    for part in response_parts(payload):
        data = part.get("inlineData")
        if isinstance(data, dict) and isinstance(data.get("data"), str) and data["data"]:
            return data
    return None


def parse_json_object(text: str) -> Optional[dict]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = _re.search(r'\{.*\}', text, _re.DOTALL)
        if not match:
            return None
        try:
            parsed = json.loads(match.group())
        except json.JSONDecodeError:
            return None
    return parsed if isinstance(parsed, dict) else None


# --- Markup ---

_RUBY_TAGS = {"ruby", "rt", "rp"}
_RUBY_READING_RE = _re.compile(r"<(rt|rp)\b[^>]*>.*?</\1\s*>", _re.DOTALL | _re.IGNORECASE)
_UNSAFE_BLOCK_RE = _re.compile(r"<(script|style)\b.*?</\1\s*>", _re.DOTALL | _re.IGNORECASE)
_TAG_RE = _re.compile(r"<[^>]*>")
_NAMED_TAG_RE = _re.compile(r"<\s*(/?)\s*([a-zA-Z][a-zA-Z0-9]*)[^>]*>")


def strip_markup(text: str) -> str:
    """Spoken form of a display string: ruby readings dropped, every tag removed.

    "<ruby>日本<rt>にほん</rt></ruby>は" -> "日本は"
    """
    text = _RUBY_READING_RE.sub("", text or "")
    return _TAG_RE.sub("", text)


def sanitize_furigana(text: str) -> str:
    """Keep bare <ruby>/<rt>/<rp> tags, drop every other tag and all attributes."""
    text = _UNSAFE_BLOCK_RE.sub("", text or "")

    def _keep(match):
        name = match.group(2).lower()
        if name in _RUBY_TAGS:
            return f"<{match.group(1)}{name}>"
        return ""

    return _NAMED_TAG_RE.sub(_keep, text)


# --- Pronunciation ---
_kakasi = pykakasi.kakasi()


def japanese_reading(text: str) -> str:
    """Hiragana reading followed by Hepburn romaji, e.g. "ねこ (neko)"."""
    conv = _kakasi.convert(text)
    hira = "".join(item["hira"] for item in conv)
    romaji = " ".join(item["hepburn"] for item in conv if item["hepburn"].strip())
    if not hira.strip():
        return ""
    return f"{hira} ({romaji})" if romaji else hira


def chinese_reading(text: str) -> str:
    result = pinyin(text, style=PinyinStyle.TONE)
    return " ".join(p[0] for p in result if p and p[0].strip())
