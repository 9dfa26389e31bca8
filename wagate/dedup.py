"""Processed-event set — suppresses redelivered inbound events."""

import time
from collections import OrderedDict


class ExpiringSet:
    """Set whose members expire a fixed time after insertion.

    Entries are kept in insertion order, so expired ones are always at the
    front and are swept lazily on every access.
    """

    def __init__(self, ttl_seconds: float, clock=time.monotonic):
        self.ttl = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, float]" = OrderedDict()

    def _sweep(self, now: float):
        while self._entries:
            key, inserted = next(iter(self._entries.items()))
            if now - inserted < self.ttl:
                break
            self._entries.popitem(last=False)

    def __contains__(self, key: str) -> bool:
        self._sweep(self._clock())
        return key in self._entries

    def __len__(self) -> int:
        self._sweep(self._clock())
        return len(self._entries)

    def add(self, key: str) -> bool:
        """Insert key. Returns False if it is already present (a duplicate)."""
        now = self._clock()
        self._sweep(now)
        if key in self._entries:
            return False
        self._entries[key] = now
        return True
