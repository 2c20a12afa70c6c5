"""Pydantic schemas and constants for Trilingua."""
from enum import Enum
from typing import Optional, List, Union, Literal

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator

# --- Constants ---
SUPPORTED_LANGUAGES = {
    "jp": "Japanese",
    "en": "English",
    "zh": "Chinese",
}

HISTORY_KEY = "trilingua_history"
HISTORY_MAX = 50

Lang = Literal["jp", "en", "zh"]
LookupMode = Literal["word", "sentence"]


class Contract(BaseModel):
    """Base for backend/persisted records: camelCase on the wire, immutable in memory."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


# --- Word analysis ---

class CoreWord(Contract):
    jp: str
    en: str
    zh: str

    @field_validator("jp", "en")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        # jp/en form the history dedup key
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class Pronunciation(Contract):
    jp: str = ""  # hiragana + romaji
    en: str = ""  # IPA
    zh: str = ""  # pinyin


class Definitions(Contract):
    jp: str = ""
    jp_furigana: str = ""
    en: str = ""
    zh: str = ""


class ExampleSentence(Contract):
    text: str
    translation: str = ""
    lang: Literal["jp", "en"]


class Related(Contract):
    synonyms: List[str]
    antonyms: List[str]

    @field_validator("synonyms", "antonyms")
    @classmethod
    def _unique(cls, values: List[str]) -> List[str]:
        seen = []
        for v in values:
            if v not in seen:
                seen.append(v)
        return seen


class WordRecord(Contract):
    input_word: str = Field("", alias="inputWord")
    core_word: CoreWord = Field(alias="coreWord")
    pronunciation: Pronunciation
    definitions: Definitions
    examples: List[ExampleSentence]
    etymology: str
    related: Related

    @property
    def label(self) -> str:
        return self.core_word.jp

    @property
    def image_concept(self) -> str:
        return self.core_word.en

    @property
    def query_text(self) -> str:
        return self.input_word or self.core_word.jp


# --- Sentence analysis ---

class TrilingualText(Contract):
    jp: str
    en: str
    zh: str


class Translations(Contract):
    jp: str
    jp_furigana: str
    en: str
    zh: str


class WordBreakdown(Contract):
    word: str
    reading: Optional[str] = None
    part_of_speech: str = Field("", alias="partOfSpeech")
    meaning: str = ""


class SentenceRecord(Contract):
    original: str
    breakdown: List[WordBreakdown]
    # Records saved before the three-language schema carry a single string here
    grammar_analysis: Union[TrilingualText, str] = Field(alias="grammarAnalysis")
    translations: Translations

    @property
    def is_legacy_grammar(self) -> bool:
        return isinstance(self.grammar_analysis, str)

    def grammar_text(self, lang: str) -> str:
        if isinstance(self.grammar_analysis, str):
            return self.grammar_analysis
        return getattr(self.grammar_analysis, lang)

    @property
    def label(self) -> str:
        return self.original

    @property
    def image_concept(self) -> str:
        return self.translations.en or self.original

    @property
    def query_text(self) -> str:
        return self.original


Record = Union[WordRecord, SentenceRecord]


# --- History ---

class HistoryItem(Contract):
    id: str
    timestamp: int  # epoch milliseconds
    label: str = Field(validation_alias=AliasChoices("label", "word"))
    data: Record
    image_url: Optional[str] = Field(None, alias="imageUrl")


# --- Session ---

class Status(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    GENERATING_IMAGE = "generating_image"
    COMPLETE = "complete"
    ERROR = "error"


class SessionState(Contract):
    status: Status = Status.IDLE
    query: str = ""
    mode: LookupMode = "word"
    record: Optional[Record] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")
    error: Optional[str] = None
    generation: int = 0


# --- API requests ---

class LookupRequest(BaseModel):
    query: str
    mode: LookupMode = "word"
    wait: bool = False  # block until the lookup settles


class SpeechRequest(BaseModel):
    text: str
    lang: Lang
