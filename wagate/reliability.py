"""Delivery reliability — liveness probing, retrying sends, directory pruning.

Shared by the broadcast controller and the admin in-chat broadcast
command. Nothing in here propagates transport failures: probes fail
closed to "not alive", sends report a boolean.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable

from .errors import TransportError
from .store import RecipientDirectory
from .transport.base import OutgoingMessage, Transport

logger = logging.getLogger("wagate.reliability")


@dataclass
class SweepResult:
    checked: int = 0
    pruned: int = 0


class DeliveryReliability:
    """Retry/backoff and pruning policy on top of a transport."""

    def __init__(
        self,
        transport: Transport,
        directory: RecipientDirectory,
        retry_attempts: int = 2,
        retry_backoff: float = 2.0,
    ):
        self.transport = transport
        self.directory = directory
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff

    async def is_alive(self, recipient_id: str) -> bool:
        """Probe the transport. Any error counts as not alive."""
        try:
            return bool(await self.transport.probe(recipient_id))
        except Exception as e:
            logger.warning(f"Liveness probe failed for {recipient_id}: {e}")
            return False

    async def send_with_retry(self, recipient_id: str, text: str) -> bool:
        """Send text, retrying with a fixed backoff; prune on final failure."""
        for attempt in range(1, self.retry_attempts + 1):
            try:
                await self.transport.send_text(recipient_id, text)
                return True
            except Exception as e:
                logger.warning(
                    f"Send to {recipient_id} failed (attempt {attempt}/{self.retry_attempts}): {e}"
                )
                if attempt < self.retry_attempts:
                    await asyncio.sleep(self.retry_backoff)

        self.prune_recipient(recipient_id)
        return False

    async def deliver(self, recipient_id: str, messages: Iterable[OutgoingMessage]) -> bool:
        """Send every message once, each attempted independently.

        Returns True only if all of them went through.
        """
        ok = True
        for message in messages:
            try:
                await self.transport.send(recipient_id, message)
            except TransportError as e:
                logger.warning(f"{message.kind} to {recipient_id} failed: {e}")
                ok = False
            except Exception as e:
                logger.error(f"Unexpected error sending {message.kind} to {recipient_id}: {e}", exc_info=True)
                ok = False
        return ok

    def prune_recipient(self, recipient_id: str):
        """Drop an unreachable recipient from the directory (idempotent)."""
        if self.directory.remove(recipient_id):
            logger.info(f"Pruned unreachable recipient {recipient_id}")

    async def health_sweep(self) -> SweepResult:
        """Probe every subscribed recipient and prune the dead ones."""
        result = SweepResult()
        for recipient_id in self.directory.snapshot():
            result.checked += 1
            if not await self.is_alive(recipient_id):
                self.prune_recipient(recipient_id)
                result.pruned += 1
        logger.info(f"Health sweep done: {result.checked} checked, {result.pruned} pruned")
        return result
