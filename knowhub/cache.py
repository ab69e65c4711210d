"""Bounded TTL cache for read-mostly listings."""
import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional
import structlog

from knowhub import config

logger = structlog.get_logger()

_MISSING = object()


class DocumentListCache:
    """Small in-process cache for document listings.

    Eviction: an entry expires ttl_seconds after it was stored; when
    max_entries is reached the least recently used entry is dropped.
    Writers call invalidate() after any change to the documents table.
    """

    def __init__(
        self,
        ttl_seconds: float = None,
        max_entries: int = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = config.DOCUMENT_CACHE_TTL if ttl_seconds is None else ttl_seconds
        self.max_entries = max_entries or config.DOCUMENT_CACHE_MAX_ENTRIES
        self._clock = clock
        self._entries: "OrderedDict[Hashable, tuple[float, Any]]" = OrderedDict()

    def get(self, key: Hashable, default: Optional[Any] = None) -> Any:
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            return default

        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return default

        self._entries.move_to_end(key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("cache_entry_evicted", key=str(evicted))

    def invalidate(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
