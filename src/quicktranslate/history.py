from __future__ import annotations

import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .translation import TranslationRequest
from .types import TranslationOutcome

logger = logging.getLogger(__name__)

MAX_HISTORY_ITEMS = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryItem(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: datetime = Field(default_factory=_utcnow)
    source_text: str
    translated_text: str
    source_language: str = ""
    target_language: str
    provider_name: Optional[str] = None
    profile_id: Optional[str] = None
    favorite: bool = False


_ITEMS = TypeAdapter(list[HistoryItem])


class TranslationHistory:
    """Bounded translation history persisted as a JSON array.

    Favourites survive both eviction and ``clear``.
    """

    def __init__(self, path: str | os.PathLike[str], max_items: int = MAX_HISTORY_ITEMS):
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self.path = Path(path)
        self.max_items = max_items
        self._lock = threading.Lock()
        self._items: list[HistoryItem] = self._load()

    def _load(self) -> list[HistoryItem]:
        if not self.path.exists():
            return []
        try:
            items = _ITEMS.validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as exc:
            logger.error("failed to load history path=%s detail=%s", self.path, exc)
            return []
        logger.info("history loaded items=%d", len(items))
        return items

    def _save_locked(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_bytes(_ITEMS.dump_json(self._items, indent=2))
        os.replace(tmp_path, self.path)

    def _evict_locked(self) -> None:
        if len(self._items) <= self.max_items:
            return
        favorites = sum(1 for item in self._items if item.favorite)
        keep_regular = max(self.max_items - favorites, 0)
        regular = sorted(
            (item for item in self._items if not item.favorite),
            key=lambda item: item.timestamp,
            reverse=True,
        )
        evicted = {item.id for item in regular[keep_regular:]}
        self._items = [item for item in self._items if item.id not in evicted]

    def add(self, item: HistoryItem) -> HistoryItem:
        with self._lock:
            existing = next(
                (
                    entry
                    for entry in self._items
                    if entry.source_text == item.source_text
                    and entry.target_language == item.target_language
                ),
                None,
            )
            if existing is not None:
                existing.translated_text = item.translated_text
                existing.timestamp = _utcnow()
                existing.provider_name = item.provider_name
                stored = existing
            else:
                self._items.insert(0, item)
                self._evict_locked()
                stored = item
            self._save_locked()
        return stored

    def record(
        self,
        request: TranslationRequest,
        outcome: TranslationOutcome,
        provider_name: str | None = None,
    ) -> HistoryItem | None:
        if not outcome.success:
            return None
        return self.add(
            HistoryItem(
                source_text=request.source_text,
                translated_text=outcome.translated_text,
                source_language=request.source_language or outcome.detected_language or "",
                target_language=request.target_language,
                provider_name=provider_name,
                profile_id=request.profile_id,
            )
        )

    def remove(self, item_id: str) -> bool:
        with self._lock:
            remaining = [item for item in self._items if item.id != item_id]
            if len(remaining) == len(self._items):
                return False
            self._items = remaining
            self._save_locked()
        return True

    def clear(self) -> int:
        with self._lock:
            self._items = [item for item in self._items if item.favorite]
            self._save_locked()
            return len(self._items)

    def toggle_favorite(self, item_id: str) -> bool | None:
        with self._lock:
            for item in self._items:
                if item.id == item_id:
                    item.favorite = not item.favorite
                    self._save_locked()
                    return item.favorite
        return None

    def recent(self, limit: int = 50) -> list[HistoryItem]:
        with self._lock:
            ordered = sorted(self._items, key=lambda item: item.timestamp, reverse=True)
        return ordered[: max(limit, 0)]

    def favorites(self) -> list[HistoryItem]:
        with self._lock:
            return sorted(
                (item for item in self._items if item.favorite),
                key=lambda item: item.timestamp,
                reverse=True,
            )


__all__ = ["HistoryItem", "MAX_HISTORY_ITEMS", "TranslationHistory"]
