"""
Response cache for parsed model results.

The gateway depends only on the ``ResponseCache`` protocol, so a test can
inject a dict-backed fake and a deployment could swap in a shared cache.
``TTLResponseCache`` is the in-process default, a bounded cachetools
TTLCache guarded by a lock because analysis workers and request handlers
may touch it from different threads.
"""

import threading
import time
from typing import Any, Callable, Optional, Protocol

from cachetools import TTLCache


class ResponseCache(Protocol):
    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class TTLResponseCache:
    def __init__(
        self,
        ttl_seconds: float,
        maxsize: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, timer=timer)
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._cache.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = value

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
