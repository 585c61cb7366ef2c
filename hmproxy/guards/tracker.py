import asyncio
import logging
import threading
import time
from typing import Callable, Iterable, Optional

from hmproxy.errors import RequestRateLimited

logger = logging.getLogger("uvicorn.error")


class TTLStore:
    """
    Lock-protected ``key -> (timestamp, value)`` map with time-based eviction.

    Used for the request-loop guards and the compatibility shim cache. Losing
    an entry early only weakens the guard or costs a re-read; it never changes
    routing.
    """

    def __init__(self, retention: float, clock: Callable[[], float] = time.monotonic):
        self.retention = retention
        self._clock = clock
        self._entries: dict[str, tuple[float, object]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str, max_age: Optional[float] = None):
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        stamp, value = entry
        if max_age and self._clock() - stamp > max_age:
            return None
        return value

    def set(self, key: str, value: object = None) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def hit(self, key: str, window: float) -> bool:
        """
        Record an access to ``key``.

        Returns False when the previous access happened less than ``window``
        seconds ago. A window of 0 always allows the access.
        """
        now = self._clock()
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = (now, None)
        if window <= 0 or previous is None:
            return True
        return now - previous[0] >= window

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [k for k, (stamp, _) in self._entries.items() if now - stamp > self.retention]
            for key in stale:
                del self._entries[key]
        return len(stale)


class RequestTracker(TTLStore):
    """Rejects repeats of the same key inside a fixed window."""

    def __init__(self, window_ms: int, retention: float, clock: Callable[[], float] = time.monotonic):
        super().__init__(retention, clock)
        self.window = window_ms / 1000.0

    def check(self, key: str) -> None:
        if not self.hit(key, self.window):
            logger.warning(f"[Guards] Request blocked - too frequent: {key}")
            raise RequestRateLimited(key)


async def sweep_periodically(stores: Iterable[TTLStore], interval: float) -> None:
    """Evict stale entries from every store until cancelled."""
    stores = list(stores)
    while True:
        await asyncio.sleep(interval)
        removed = sum(store.sweep() for store in stores)
        if removed:
            logger.debug(f"[Guards] Swept {removed} stale tracker entries")
