import hashlib
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple
from pydantic import BaseModel
from .utils import logger

class ResponseCache:
    """In-process TTL cache with least-recently-used eviction.

    Keys are content hashes of (namespace, request model), so two requests
    with identical specs for the same store share one entry. Concurrent misses
    for the same key are not coalesced.
    """

    def __init__(self, ttl_seconds: float = 20 * 60, max_entries: int = 128,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(namespace: str, payload: BaseModel) -> str:
        canonical = payload.model_dump_json()
        return hashlib.sha256(f"{namespace}:{canonical}".encode("utf-8")).hexdigest()

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache evicted {evicted[:12]}")

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry[0]
