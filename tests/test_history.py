from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from src.quicktranslate.history import HistoryItem, TranslationHistory
from src.quicktranslate.translation import TranslationRequest
from src.quicktranslate.types import TranslationOutcome


def make_item(text: str, *, target: str = "Russian", minutes_ago: int = 0) -> HistoryItem:
    return HistoryItem(
        source_text=text,
        translated_text=text.upper(),
        target_language=target,
        timestamp=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


def test_add_persists_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    history = TranslationHistory(path)
    stored = history.add(make_item("hello"))

    reloaded = TranslationHistory(path)
    [item] = reloaded.recent()
    assert item.id == stored.id
    assert item.translated_text == "HELLO"


def test_duplicate_source_and_target_updates_in_place(tmp_path: Path) -> None:
    history = TranslationHistory(tmp_path / "history.json")
    first = history.add(make_item("hello", minutes_ago=10))
    second = history.add(
        HistoryItem(source_text="hello", translated_text="привет", target_language="Russian")
    )

    assert second.id == first.id
    [item] = history.recent()
    assert item.translated_text == "привет"

    history.add(make_item("hello", target="German"))
    assert len(history.recent()) == 2


def test_eviction_keeps_favorites(tmp_path: Path) -> None:
    history = TranslationHistory(tmp_path / "history.json", max_items=3)
    oldest = history.add(make_item("oldest", minutes_ago=60))
    assert history.toggle_favorite(oldest.id) is True
    for index in range(5):
        history.add(make_item(f"item {index}", minutes_ago=50 - index))

    texts = {item.source_text for item in history.recent()}
    assert len(texts) == 3
    assert "oldest" in texts
    assert {"item 3", "item 4"} <= texts


def test_clear_keeps_favorites(tmp_path: Path) -> None:
    history = TranslationHistory(tmp_path / "history.json")
    keep = history.add(make_item("keep"))
    history.add(make_item("drop"))
    history.toggle_favorite(keep.id)

    assert history.clear() == 1
    assert [item.id for item in history.favorites()] == [keep.id]


def test_remove_and_toggle_unknown(tmp_path: Path) -> None:
    history = TranslationHistory(tmp_path / "history.json")
    item = history.add(make_item("hello"))

    assert history.toggle_favorite("missing") is None
    assert not history.remove("missing")
    assert history.remove(item.id)
    assert history.recent() == []


def test_record_ignores_failures(tmp_path: Path) -> None:
    history = TranslationHistory(tmp_path / "history.json")
    request = TranslationRequest(source_text="Hello", target_language="French", profile_id="general")

    assert history.record(request, TranslationOutcome.failed("boom")) is None
    item = history.record(request, TranslationOutcome.succeeded("Bonjour"), "OpenAI")

    assert item is not None
    assert item.translated_text == "Bonjour"
    assert item.provider_name == "OpenAI"
    assert item.profile_id == "general"
    assert len(history.recent()) == 1


def test_recent_is_newest_first_and_limited(tmp_path: Path) -> None:
    history = TranslationHistory(tmp_path / "history.json")
    for index in range(4):
        history.add(make_item(f"item {index}", minutes_ago=10 - index))

    assert [item.source_text for item in history.recent(2)] == ["item 3", "item 2"]


def test_corrupt_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text("{not json", encoding="utf-8")
    assert TranslationHistory(path).recent() == []


def test_max_items_must_be_positive(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        TranslationHistory(tmp_path / "history.json", max_items=0)


def test_recent_with_non_positive_limit_is_empty(tmp_path: Path) -> None:
    history = TranslationHistory(tmp_path / "history.json")
    history.add(make_item("one", minutes_ago=2))
    history.add(make_item("two", minutes_ago=1))

    assert history.recent(0) == []
    assert history.recent(-1) == []
