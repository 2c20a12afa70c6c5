"""CSV export of the lookup history."""
import csv
import io
from datetime import datetime, date, timedelta, timezone
from typing import Iterable, List, Optional

from models import HistoryItem, WordRecord

CSV_HEADER = [
    "Timestamp", "Input", "JP", "EN", "ZH",
    "JP_Pron", "EN_Pron", "Definition_JP", "Definition_EN",
]
EXPORT_MEDIA_TYPE = "text/csv; charset=utf-8"


def iso_instant(ts_ms: int) -> str:
    """Epoch milliseconds -> "2024-05-01T09:30:00.123Z"."""
    dt = datetime.fromtimestamp(ts_ms // 1000, tz=timezone.utc) + timedelta(milliseconds=ts_ms % 1000)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def item_row(item: HistoryItem) -> List[str]:
    data = item.data
    if isinstance(data, WordRecord):
        return [
            iso_instant(item.timestamp),
            data.input_word,
            data.core_word.jp,
            data.core_word.en,
            data.core_word.zh,
            data.pronunciation.jp,
            data.pronunciation.en,
            data.definitions.jp,
            data.definitions.en,
        ]
    # Sentence rows: translations in the word columns, grammar as the definitions
    return [
        iso_instant(item.timestamp),
        data.original,
        data.translations.jp,
        data.translations.en,
        data.translations.zh,
        "",
        "",
        data.grammar_text("jp"),
        data.grammar_text("en"),
    ]


def to_csv(items: Iterable[HistoryItem]) -> str:
    """Header plus one row per item, in the given order. Fields with quotes or commas are quoted."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for item in items:
        writer.writerow(item_row(item))
    return buf.getvalue()


def export_filename(day: Optional[date] = None) -> str:
    day = day or datetime.now(timezone.utc).date()
    return f"trilingua_export_{day.isoformat()}.csv"
