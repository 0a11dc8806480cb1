# flashgen/gateway/cache.py
"""
In-process response cache for the model gateway.

One instance is created per process (see flashgen.app) and injected into the
gateway. Entries expire after ttl_seconds; when the cache is full the oldest
insertion is evicted. Concurrent writers for the same key simply overwrite each
other (last writer wins), both values being valid responses for that key.

The cache is an optimization only; nothing may depend on a hit.
"""

import json
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple


def make_cache_key(messages: Any, model: str, response_format: Optional[Dict[str, Any]],
                   parameters: Dict[str, Any]) -> str:
    """Stable serialization of the inputs that determine a completion."""
    return json.dumps(
        {
            "messages": messages,
            "model": model,
            "response_format": response_format,
            "parameters": parameters,
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


class ResponseCache:
    """Thread-safe TTL cache with oldest-insertion eviction."""

    def __init__(self, max_size: int = 100, ttl_seconds: float = 300.0,
                 clock: Callable[[], float] = time.monotonic):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            stored_at, value = item
            if self._clock() - stored_at > self.ttl_seconds:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self._store:
                # re-insert so it counts as the newest entry
                del self._store[key]
            elif len(self._store) >= self.max_size:
                self._store.popitem(last=False)
            self._store[key] = (self._clock(), value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
