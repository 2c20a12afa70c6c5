"""Tests for word/sentence analysis against a stubbed backend."""
import asyncio
import json

import httpx
import pytest

from analysis import AnalysisClient, WORD_SCHEMA, SENTENCE_SCHEMA
from llm import GenAIClient, BackendResponseError, ConfigurationError, TEXT_MODEL
from models import WordRecord, SentenceRecord, TrilingualText


def run(coro):
    return asyncio.run(coro)


def test_analyze_word_returns_record(fake_gemini, genai_client, replies, word_data):
    fake_gemini.stub(TEXT_MODEL, replies["text"](word_data()))
    record = run(AnalysisClient(genai_client).analyze_word("cat"))

    assert isinstance(record, WordRecord)
    assert record.core_word.jp == "猫"
    assert record.core_word.en == "cat"
    assert [ex.lang for ex in record.examples] == ["jp", "en"]
    assert record.related.synonyms == ["kitty"]

    call = fake_gemini.calls[0]
    assert call["headers"]["x-goog-api-key"] == "test-key"
    config = call["body"]["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"] == WORD_SCHEMA
    assert '"cat"' in call["body"]["contents"][0]["parts"][0]["text"]


def test_missing_input_word_defaults_to_query(fake_gemini, genai_client, replies, word_data):
    data = word_data()
    del data["inputWord"]
    fake_gemini.stub(TEXT_MODEL, replies["text"](data))
    record = run(AnalysisClient(genai_client).analyze_word("  ねこ "))
    assert record.input_word == "ねこ"


@pytest.mark.parametrize("field", ["coreWord", "pronunciation", "definitions", "examples", "etymology", "related"])
def test_missing_required_field_is_rejected(fake_gemini, genai_client, replies, word_data, field):
    data = word_data()
    del data[field]
    fake_gemini.stub(TEXT_MODEL, replies["text"](data))
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_word("cat"))


def test_blank_core_word_is_rejected(fake_gemini, genai_client, replies, word_data):
    fake_gemini.stub(TEXT_MODEL, replies["text"](word_data(en="  ")))
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_word("cat"))


def test_unknown_example_language_is_rejected(fake_gemini, genai_client, replies, word_data):
    data = word_data(examples=[{"text": "猫", "translation": "cat", "lang": "fr"}])
    fake_gemini.stub(TEXT_MODEL, replies["text"](data))
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_word("cat"))


def test_non_json_text_is_rejected(fake_gemini, genai_client, replies):
    fake_gemini.stub(TEXT_MODEL, replies["text"]("Sorry, I cannot help with that."))
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_word("cat"))


def test_empty_candidates_is_rejected(fake_gemini, genai_client):
    fake_gemini.stub(TEXT_MODEL, {"candidates": []})
    with pytest.raises(BackendResponseError, match="No text"):
        run(AnalysisClient(genai_client).analyze_word("cat"))


def test_http_error_status_is_rejected(fake_gemini, genai_client):
    fake_gemini.stub(TEXT_MODEL, 503)
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_word("cat"))


def test_network_error_is_rejected(fake_gemini, genai_client):
    fake_gemini.stub(TEXT_MODEL, httpx.ConnectError("connection refused"))
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_word("cat"))


def test_missing_api_key_fails_before_any_request(fake_gemini, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    client = GenAIClient(transport=httpx.MockTransport(fake_gemini.handler))

    assert client.configured is False
    with pytest.raises(ConfigurationError):
        run(AnalysisClient(client).analyze_word("cat"))
    assert fake_gemini.calls == []


def test_api_key_is_resolved_lazily(fake_gemini, replies, word_data, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)
    client = GenAIClient(transport=httpx.MockTransport(fake_gemini.handler))
    fake_gemini.stub(TEXT_MODEL, replies["text"](word_data()))

    monkeypatch.setenv("GEMINI_API_KEY", "late-key")
    run(AnalysisClient(client).analyze_word("cat"))
    assert fake_gemini.calls[0]["headers"]["x-goog-api-key"] == "late-key"


def test_empty_query_raises_without_backend_call(fake_gemini, genai_client):
    with pytest.raises(ValueError):
        run(AnalysisClient(genai_client).analyze_word("   "))
    assert fake_gemini.calls == []


def test_furigana_keeps_only_ruby_markup(fake_gemini, genai_client, replies, word_data):
    data = word_data()
    data["definitions"]["jp_furigana"] = (
        '<ruby class="x">猫<rt>ねこ</rt></ruby><script>alert(1)</script><b onclick="y">は</b>動物'
    )
    fake_gemini.stub(TEXT_MODEL, replies["text"](data))
    record = run(AnalysisClient(genai_client).analyze_word("cat"))
    assert record.definitions.jp_furigana == "<ruby>猫<rt>ねこ</rt></ruby>は動物"


def test_blank_pronunciations_are_filled(fake_gemini, genai_client, replies, word_data):
    data = word_data()
    data["pronunciation"] = {"jp": "", "en": "/kæt/", "zh": ""}
    fake_gemini.stub(TEXT_MODEL, replies["text"](data))
    record = run(AnalysisClient(genai_client).analyze_word("cat"))

    assert "neko" in record.pronunciation.jp
    assert record.pronunciation.zh == "māo"
    assert record.pronunciation.en == "/kæt/"


def test_backend_pronunciations_are_kept(fake_gemini, genai_client, replies, word_data):
    fake_gemini.stub(TEXT_MODEL, replies["text"](word_data()))
    record = run(AnalysisClient(genai_client).analyze_word("cat"))
    assert record.pronunciation.jp == "ねこ (neko)"


def test_analyze_sentence_returns_record(fake_gemini, genai_client, replies, sentence_data):
    fake_gemini.stub(TEXT_MODEL, replies["text"](sentence_data()))
    record = run(AnalysisClient(genai_client).analyze_sentence("私は学生です。"))

    assert isinstance(record, SentenceRecord)
    assert isinstance(record.grammar_analysis, TrilingualText)
    assert record.grammar_text("en") == "A topic-comment sentence."
    assert record.breakdown[0].reading == "わたし"
    assert record.breakdown[1].reading is None
    assert fake_gemini.calls[0]["body"]["generationConfig"]["responseSchema"] == SENTENCE_SCHEMA


def test_sentence_without_grammar_triple_is_rejected(fake_gemini, genai_client, replies, sentence_data):
    data = sentence_data(grammarAnalysis={"jp": "説明", "en": "explanation"})
    fake_gemini.stub(TEXT_MODEL, replies["text"](data))
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_sentence("私は学生です。"))


def test_sentence_without_translations_is_rejected(fake_gemini, genai_client, replies, sentence_data):
    data = sentence_data()
    del data["translations"]["jp_furigana"]
    fake_gemini.stub(TEXT_MODEL, replies["text"](data))
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_sentence("私は学生です。"))


def test_legacy_grammar_string_is_accepted(sentence_data):
    record = SentenceRecord.model_validate(sentence_data(grammarAnalysis="Old single-language note."))
    assert record.is_legacy_grammar
    assert record.grammar_text("zh") == "Old single-language note."


def test_fresh_sentence_analysis_rejects_legacy_grammar(fake_gemini, genai_client, replies, sentence_data):
    fake_gemini.stub(TEXT_MODEL, replies["text"](sentence_data(grammarAnalysis="just a string")))
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_sentence("私は学生です。"))


@pytest.mark.parametrize("envelope", [
    {"candidates": [{"content": {"parts": [7]}}]},
    {"candidates": [None]},
    {"candidates": "not a list"},
    {"candidates": [{"content": "text"}]},
    {"candidates": [{"content": {"parts": {"text": "{}"}}}]},
    ["not", "an", "object"],
])
def test_malformed_envelope_is_rejected(fake_gemini, genai_client, envelope):
    fake_gemini.stub(TEXT_MODEL, envelope)
    with pytest.raises(BackendResponseError):
        run(AnalysisClient(genai_client).analyze_word("cat"))


def test_malformed_parts_are_skipped(fake_gemini, genai_client, sentence_data):
    text = json.dumps(sentence_data(), ensure_ascii=False)
    fake_gemini.stub(TEXT_MODEL, {"candidates": [{"content": {"parts": [None, "x", {"text": text}]}}]})
    record = run(AnalysisClient(genai_client).analyze_sentence("私は学生です。"))
    assert record.original == "私は学生です。"
