"""Word and sentence analysis: prompt building, response schemas and validation."""
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from log import get_logger

logger = get_logger("trilingua.analysis")

from models import WordRecord, SentenceRecord
from llm import (
    TEXT_MODEL, GenAIClient, BackendResponseError,
    response_text, parse_json_object, sanitize_furigana,
    japanese_reading, chinese_reading,
)

T = TypeVar("T", bound=BaseModel)


def _string(description: Optional[str] = None) -> dict:
    schema = {"type": "STRING"}
    if description:
        schema["description"] = description
    return schema


def _string_list() -> dict:
    return {"type": "ARRAY", "items": _string()}


# --- Response schemas (Gemini OpenAPI subset) ---

WORD_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "inputWord": _string(),
        "coreWord": {
            "type": "OBJECT",
            "properties": {"jp": _string(), "en": _string(), "zh": _string()},
            "required": ["jp", "en", "zh"],
        },
        "pronunciation": {
            "type": "OBJECT",
            "properties": {
                "jp": _string("Hiragana and Romaji"),
                "en": _string("IPA format"),
                "zh": _string("Pinyin"),
            },
        },
        "definitions": {
            "type": "OBJECT",
            "properties": {
                "jp": _string(),
                "jp_furigana": _string("Japanese definition containing HTML <ruby> tags for Kanji readings"),
                "en": _string(),
                "zh": _string(),
            },
        },
        "examples": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "text": _string(),
                    "translation": _string("Chinese translation"),
                    "lang": {"type": "STRING", "enum": ["jp", "en"]},
                },
            },
        },
        "etymology": _string(),
        "related": {
            "type": "OBJECT",
            "properties": {"synonyms": _string_list(), "antonyms": _string_list()},
            "required": ["synonyms", "antonyms"],
        },
    },
    "required": ["coreWord", "pronunciation", "definitions", "examples", "etymology", "related"],
}

SENTENCE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "original": _string(),
        "breakdown": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "word": _string(),
                    "reading": _string("Reading if applicable (e.g. Kana for Kanji)"),
                    "partOfSpeech": _string(),
                    "meaning": _string(),
                },
            },
        },
        "grammarAnalysis": {
            "type": "OBJECT",
            "description": "Detailed explanation of grammar and structure in three languages",
            "properties": {
                "jp": _string("Japanese explanation"),
                "en": _string("English explanation"),
                "zh": _string("Chinese explanation"),
            },
            "required": ["jp", "en", "zh"],
        },
        "translations": {
            "type": "OBJECT",
            "properties": {
                "jp": _string("Plain Japanese translation"),
                "jp_furigana": _string("Japanese translation with HTML <ruby> tags"),
                "en": _string(),
                "zh": _string(),
            },
            "required": ["jp", "jp_furigana", "en", "zh"],
        },
    },
    "required": ["original", "breakdown", "grammarAnalysis", "translations"],
}


def word_prompt(query: str) -> str:
    return f"""Analyze the following input: "{query}".
Input language could be Japanese, English, or Chinese.
Identify the core vocabulary word intended by the user.
Provide a trilingual dictionary entry (Japanese, English, Chinese).

For the Japanese Definition:
1. Provide a standard text version.
2. Provide a version with Furigana using HTML <ruby> tags (e.g., <ruby>日本<rt>にほん</rt></ruby>).

Include pronunciations, example sentences, etymology, synonyms, and antonyms."""


def sentence_prompt(sentence: str) -> str:
    return f"""Analyze the following sentence deeply: "{sentence}".
The sentence could be in Japanese, English, or Chinese.

1. Break down the sentence word by word (or by grammatical unit).
2. Provide a detailed grammar analysis explaining the structure, tense, and nuances.
3. Provide the grammar analysis in THREE languages: Japanese, English, and Chinese.
4. Translate the full sentence into Japanese, English, and Chinese.

For ANY Japanese text output (translations, grammar analysis, etc.):
Provide a version that uses HTML <ruby> tags for Furigana readings where appropriate (e.g. <ruby>私<rt>わたし</rt></ruby>は...)."""


def fill_missing_pronunciation(record: WordRecord) -> WordRecord:
    """Fill blank jp/zh pronunciations deterministically; backend values win."""
    pron = record.pronunciation
    update = {}
    if not pron.jp.strip():
        update["jp"] = japanese_reading(record.core_word.jp)
    if not pron.zh.strip() and record.core_word.zh.strip():
        update["zh"] = chinese_reading(record.core_word.zh)
    if not update:
        return record
    return record.model_copy(update={"pronunciation": pron.model_copy(update=update)})


class AnalysisClient:
    """Builds schema-constrained analysis requests and validates the replies.

    No retries: any failure surfaces as BackendResponseError (or
    ConfigurationError from the client) and no partial record is returned.
    """

    def __init__(self, client: GenAIClient, model: str = TEXT_MODEL):
        self.client = client
        self.model = model

    async def analyze_word(self, query: str) -> WordRecord:
        query = _require_text(query)
        data = await self._request(word_prompt(query), WORD_SCHEMA)
        if not data.get("inputWord"):
            data["inputWord"] = query

        record = _validate(WordRecord, data)
        definitions = record.definitions
        record = record.model_copy(update={
            "definitions": definitions.model_copy(update={
                "jp_furigana": sanitize_furigana(definitions.jp_furigana),
            }),
        })
        return fill_missing_pronunciation(record)

    async def analyze_sentence(self, sentence: str) -> SentenceRecord:
        sentence = _require_text(sentence)
        data = await self._request(sentence_prompt(sentence), SENTENCE_SCHEMA)

        record = _validate(SentenceRecord, data)
        if record.is_legacy_grammar:
            # single-string grammar is only tolerated for records read back from history
            raise BackendResponseError("Backend response missing or invalid fields: grammarAnalysis")
        translations = record.translations
        return record.model_copy(update={
            "translations": translations.model_copy(update={
                "jp_furigana": sanitize_furigana(translations.jp_furigana),
            }),
        })

    async def _request(self, prompt: str, schema: dict) -> dict:
        payload = await self.client.generate_content(
            self.model,
            [{"text": prompt}],
            {"responseMimeType": "application/json", "responseSchema": schema},
        )
        text = response_text(payload)
        if text is None:
            raise BackendResponseError("No text response from backend")

        data = parse_json_object(text)
        if data is None:
            logger.warning("Unparseable analysis response", extra={"component": "analysis", "detail": text[:300]})
            raise BackendResponseError("Backend response is not valid JSON")
        return data


def _require_text(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("Input cannot be empty")
    return value.strip()


def _validate(model: Type[T], data: dict) -> T:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in exc.errors()})
        logger.warning(
            "Analysis response failed schema validation",
            extra={"component": "analysis", "detail": ", ".join(fields)},
        )
        raise BackendResponseError(f"Backend response missing or invalid fields: {', '.join(fields)}") from exc
