"""Structured event sinks for gateway diagnostics.

The gateway, retry driver and prober never log through global state; they are
handed an ``EventSink`` and emit plain dict records (``attempt``, ``retry``,
``outcome``, ``probe``). ``LoggingEventSink`` renders
records as ``key=value`` log lines, ``JsonlEventSink`` appends them to a daily
JSONL audit file, and ``MemoryEventSink`` keeps them in a list.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)

_FIELD_ORDER: tuple[str, ...] = ("req_id", "provider", "attempt", "delay_s", "status", "ok")
_LEVELS: dict[str, int] = {
    "retry": logging.WARNING,
    "outcome": logging.INFO,
    "attempt": logging.DEBUG,
    "probe": logging.INFO,
}


class EventSink(Protocol):
    async def emit(self, record: dict[str, Any]) -> None: ...


def _format_record(record: dict[str, Any]) -> str:
    event = str(record.get("event") or "event")
    parts = [event]
    keys = [key for key in _FIELD_ORDER if key in record]
    keys.extend(sorted(key for key in record if key not in _FIELD_ORDER and key not in ("event", "ts")))
    for key in keys:
        value = record[key]
        if value is None:
            continue
        parts.append(f"{key}={value}")
    return " ".join(parts)


class LoggingEventSink:
    def __init__(self, target: logging.Logger | None = None) -> None:
        self._logger = target or logger

    async def emit(self, record: dict[str, Any]) -> None:
        event = str(record.get("event") or "")
        level = _LEVELS.get(event, logging.INFO)
        if event == "outcome" and record.get("ok") is False and not record.get("cancelled"):
            level = logging.ERROR
        self._logger.log(level, _format_record(record))


class JsonlEventSink:
    def __init__(self, dirpath: str):
        self.dir = dirpath
        os.makedirs(self.dir, exist_ok=True)
        self._lock: asyncio.Lock | None = None

    def _file(self) -> str:
        return os.path.join(self.dir, f"events-{time.strftime('%Y%m%d')}.jsonl")

    async def emit(self, record: dict[str, Any]) -> None:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            with open(self._file(), "a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")


class MemoryEventSink:
    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    async def emit(self, record: dict[str, Any]) -> None:
        self.records.append(dict(record))

    def of(self, event: str) -> list[dict[str, Any]]:
        return [record for record in self.records if record.get("event") == event]


class FanOutEventSink:
    def __init__(self, sinks: Iterable[EventSink]):
        self._sinks = tuple(sinks)

    async def emit(self, record: dict[str, Any]) -> None:
        for sink in self._sinks:
            await emit_safely(sink, record)


async def emit_safely(sink: EventSink, record: dict[str, Any]) -> None:
    """Deliver ``record`` to ``sink``; a failing sink is logged, never raised."""
    try:
        await sink.emit(record)
    except Exception:
        logger.exception("event sink failed event=%s sink=%s", record.get("event"), type(sink).__name__)


def make_record(event: str, **fields: Any) -> dict[str, Any]:
    record: dict[str, Any] = {"event": event, "ts": time.time()}
    record.update(fields)
    return record


__all__ = [
    "EventSink",
    "FanOutEventSink",
    "JsonlEventSink",
    "LoggingEventSink",
    "MemoryEventSink",
    "emit_safely",
    "make_record",
]
