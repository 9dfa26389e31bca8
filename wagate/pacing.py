"""Fixed-interval pacing for outbound send loops."""

import asyncio
import time
from typing import Optional


class Pacer:
    """Guarantees at least `interval` seconds between two consecutive ticks.

    The first `wait()` returns immediately; every later one sleeps for
    whatever remains of the interval since the previous tick.
    """

    def __init__(self, interval: float, clock=time.monotonic):
        self.interval = max(0.0, interval)
        self._clock = clock
        self._last: Optional[float] = None

    async def wait(self):
        if self._last is not None:
            remaining = self._last + self.interval - self._clock()
            if remaining > 0:
                await asyncio.sleep(remaining)
        self._last = self._clock()

    def reset(self):
        self._last = None
