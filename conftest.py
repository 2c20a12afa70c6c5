"""Shared fixtures for the Trilingua test suite."""
import base64
import json

import httpx
import pytest

from llm import GenAIClient
from storage import MemoryBlobStore
from history import HistoryStore


class FakeGemini:
    """Stands in for the Gemini REST endpoint behind an httpx.MockTransport.

    Stub per model: a dict (returned as JSON with 200), an int (status code with
    an empty body), or an exception instance (raised from the transport).
    """

    def __init__(self):
        self.stubs = {}
        self.calls = []

    def stub(self, model: str, reply):
        self.stubs[model] = reply

    def handler(self, request: httpx.Request) -> httpx.Response:
        model = request.url.path.rsplit("/", 1)[-1].split(":")[0]
        body = json.loads(request.content)
        self.calls.append({"model": model, "body": body, "headers": dict(request.headers)})
        reply = self.stubs.get(model)
        if reply is None:
            return httpx.Response(500, json={"error": {"message": "no stub"}})
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, int):
            return httpx.Response(reply, json={})
        return httpx.Response(200, json=reply)

    def models_called(self):
        return [c["model"] for c in self.calls]


def text_reply(obj) -> dict:
    text = obj if isinstance(obj, str) else json.dumps(obj, ensure_ascii=False)
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def inline_reply(data: bytes, mime_type: str = "image/png") -> dict:
    encoded = base64.b64encode(data).decode()
    return {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": mime_type, "data": encoded}}]}}]}


@pytest.fixture()
def fake_gemini():
    return FakeGemini()


@pytest.fixture()
def genai_client(fake_gemini):
    return GenAIClient(api_key="test-key", transport=httpx.MockTransport(fake_gemini.handler))


@pytest.fixture()
def blob_store():
    return MemoryBlobStore()


@pytest.fixture()
def history_store(blob_store):
    store = HistoryStore(blob_store)
    store.load()
    return store


@pytest.fixture()
def replies():
    """Helpers that build Gemini response envelopes."""
    return {"text": text_reply, "inline": inline_reply}


@pytest.fixture()
def word_data():
    """Factory for a schema-valid word analysis payload (wire format)."""
    def _word(jp="猫", en="cat", zh="猫", **overrides):
        data = {
            "inputWord": en,
            "coreWord": {"jp": jp, "en": en, "zh": zh},
            "pronunciation": {"jp": "ねこ (neko)", "en": "/kæt/", "zh": "māo"},
            "definitions": {
                "jp": "小型の肉食哺乳類。",
                "jp_furigana": "<ruby>小型<rt>こがた</rt></ruby>の<ruby>肉食<rt>にくしょく</rt></ruby>哺乳類。",
                "en": "A small domesticated carnivorous mammal.",
                "zh": "一种小型食肉哺乳动物。",
            },
            "examples": [
                {"text": "猫が好きです。", "translation": "我喜欢猫。", "lang": "jp"},
                {"text": "The cat is sleeping.", "translation": "猫在睡觉。", "lang": "en"},
            ],
            "etymology": "From Old English catt.",
            "related": {"synonyms": ["kitty"], "antonyms": []},
        }
        data.update(overrides)
        return data
    return _word


@pytest.fixture()
def sentence_data():
    def _sentence(original="私は学生です。", **overrides):
        data = {
            "original": original,
            "breakdown": [
                {"word": "私", "reading": "わたし", "partOfSpeech": "pronoun", "meaning": "I"},
                {"word": "は", "partOfSpeech": "particle", "meaning": "topic marker"},
            ],
            "grammarAnalysis": {"jp": "主題を示す文。", "en": "A topic-comment sentence.", "zh": "主题句。"},
            "translations": {
                "jp": "私は学生です。",
                "jp_furigana": "<ruby>私<rt>わたし</rt></ruby>は<ruby>学生<rt>がくせい</rt></ruby>です。",
                "en": "I am a student.",
                "zh": "我是学生。",
            },
        }
        data.update(overrides)
        return data
    return _sentence
