"""Explicit TTL caches carried on the tick context."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple


@dataclass
class TTLCache:
    """Bounded key/value store; entries expire ``ttl`` after they are written."""

    ttl: timedelta
    max_size: int = 256
    _entries: Dict[str, Tuple[Any, datetime]] = field(default_factory=dict, repr=False)

    def get(self, key: str, now: datetime, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        value, expires_at = entry
        if now >= expires_at:
            del self._entries[key]
            return default
        return value

    def set(self, key: str, value: Any, now: datetime, ttl: Optional[timedelta] = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            oldest = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest]
        self._entries[key] = (value, now + (ttl or self.ttl))

    def is_fresh(self, key: str, now: datetime) -> bool:
        entry = self._entries.get(key)
        return entry is not None and now < entry[1]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class TickCaches:
    """Per-process caches shared by consecutive ticks."""

    balance: TTLCache = field(default_factory=lambda: TTLCache(ttl=timedelta(seconds=60)))
    quotes: TTLCache = field(default_factory=lambda: TTLCache(ttl=timedelta(seconds=2)))


__all__ = ["TTLCache", "TickCaches"]
