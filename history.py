"""Lookup history: newest first, de-duplicated, capped, written through to a blob store.

The whole list is serialized on every insert. With at most HISTORY_MAX items
there is no need for deltas or a journal.
"""
import json
import time
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from log import get_logger, timed

logger = get_logger("trilingua.history")

from models import HISTORY_KEY, HISTORY_MAX, HistoryItem, Record, WordRecord, SentenceRecord
from storage import BlobStore
from export import to_csv

_items_adapter = TypeAdapter(List[HistoryItem])


def is_duplicate(existing: HistoryItem, new: HistoryItem) -> bool:
    """Word items clash on coreWord.jp OR coreWord.en; sentence items on the original text."""
    old, cur = existing.data, new.data
    if isinstance(cur, WordRecord):
        return isinstance(old, WordRecord) and (
            old.core_word.jp == cur.core_word.jp or old.core_word.en == cur.core_word.en
        )
    return isinstance(old, SentenceRecord) and old.original == cur.original


class HistoryStore:
    def __init__(self, store: BlobStore, key: str = HISTORY_KEY, max_items: int = HISTORY_MAX):
        self.store = store
        self.key = key
        self.max_items = max_items
        self._items: List[HistoryItem] = []

    @property
    def items(self) -> List[HistoryItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def load(self) -> List[HistoryItem]:
        """Read the persisted list. Missing or unreadable history yields []."""
        raw = self.store.get(self.key)
        if raw is None:
            self._items = []
            return []
        try:
            items = _items_adapter.validate_python(json.loads(raw))
        except ValidationError as exc:
            bad = sorted({err["loc"][0] for err in exc.errors() if err["loc"] and isinstance(err["loc"][0], int)})
            logger.debug("History items failed validation", extra={
                "component": "history", "count": len(bad), "detail": f"indices {bad}" if bad else str(exc)[:300],
            })
            logger.exception("Discarding corrupt history", extra={"component": "history"})
            items = []
        except ValueError:
            logger.exception("Discarding corrupt history", extra={"component": "history"})
            items = []
        self._items = items[:self.max_items]
        logger.info("Loaded history", extra={"component": "history", "count": len(self._items)})
        return list(self._items)

    def insert(self, item: HistoryItem) -> List[HistoryItem]:
        kept = [existing for existing in self._items if not is_duplicate(existing, item)]
        self._items = ([item] + kept)[:self.max_items]
        self._save()
        return list(self._items)

    def get(self, item_id: str) -> Optional[HistoryItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def new_item(self, record: Record, image_url: Optional[str] = None,
                 now_ms: Optional[int] = None) -> HistoryItem:
        """Build an item stamped no earlier than the newest stored one, with an unused id."""
        ts = now_ms if now_ms is not None else int(time.time() * 1000)
        if self._items:
            ts = max(ts, max(i.timestamp for i in self._items))

        taken = {i.id for i in self._items}
        item_id = str(ts)
        n = 1
        while item_id in taken:
            item_id = f"{ts}-{n}"
            n += 1
        return HistoryItem(id=item_id, timestamp=ts, label=record.label, data=record, image_url=image_url)

    def export(self) -> bytes:
        return to_csv(self._items).encode("utf-8")

    def _save(self):
        payload = [item.model_dump(mode="json", by_alias=True, exclude_none=True) for item in self._items]
        try:
            with timed(logger, "Saved history", component="history", count=len(payload)):
                self.store.put(self.key, json.dumps(payload, ensure_ascii=False))
        except Exception:
            logger.exception("Failed to save history", extra={"component": "history"})
