"""Persisted gateway state — recipient directory and greeting record.

Both structures are small and rewritten in full on every mutation.
Mutating methods are synchronous: no await between reading and writing,
so they cannot interleave on the event loop.
"""

import json
import logging
import os
import tempfile
import time
from typing import Any, Optional

logger = logging.getLogger("wagate.store")


class JsonFileStore:
    """A JSON document on disk, replaced atomically on save."""

    def __init__(self, path: str, default: Any):
        self.path = os.path.expanduser(path)
        self._default = default

    def load(self) -> Any:
        if not os.path.isfile(self.path):
            return self._default
        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read {self.path}, starting empty: {e}")
            return self._default

    def save(self, data: Any):
        directory = os.path.dirname(self.path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class RecipientDirectory:
    """Set of subscribed recipient ids."""

    def __init__(self, path: str):
        self._file = JsonFileStore(path, default=[])
        self._ids: set[str] = {str(x) for x in self._file.load()}
        logger.info(f"Recipient directory loaded: {len(self._ids)} entries")

    def __contains__(self, recipient_id: str) -> bool:
        return recipient_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def snapshot(self) -> list[str]:
        """Sorted copy, safe to iterate while entries are removed."""
        return sorted(self._ids)

    def add(self, recipient_id: str) -> bool:
        """Add and persist. Returns False if already present."""
        if recipient_id in self._ids:
            return False
        self._ids.add(recipient_id)
        self._persist()
        logger.info(f"New subscriber: {recipient_id}")
        return True

    def remove(self, recipient_id: str) -> bool:
        """Remove and persist. Returns False if absent."""
        if recipient_id not in self._ids:
            return False
        self._ids.discard(recipient_id)
        self._persist()
        logger.info(f"Removed from directory: {recipient_id}")
        return True

    def _persist(self):
        self._file.save(sorted(self._ids))


class GreetingRecord:
    """Last greeting time per recipient, for the greeting cooldown."""

    def __init__(self, path: str, cooldown_seconds: float, clock=time.time):
        self._file = JsonFileStore(path, default={})
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._last: dict[str, float] = {
            str(k): float(v) for k, v in self._file.load().items()
        }

    def __len__(self) -> int:
        return len(self._last)

    def last_greeted(self, recipient_id: str) -> Optional[float]:
        return self._last.get(recipient_id)

    def is_due(self, recipient_id: str) -> bool:
        """True if never greeted or the cooldown window has elapsed."""
        last = self._last.get(recipient_id)
        return last is None or (self._clock() - last) >= self._cooldown

    def record(self, recipient_id: str):
        self._last[recipient_id] = self._clock()
        self._file.save(self._last)
