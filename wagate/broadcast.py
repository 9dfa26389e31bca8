"""Broadcast controller — one pausable, stoppable fan-out send at a time.

Usage:
    controller = BroadcastController(transport, reliability)
    job = controller.start(targets, BroadcastPayload(text="Hello"))
    async for event in job.events():
        print(event.to_dict())

Targets are contacted strictly in order with a fixed pacing interval
between two targets. A failing recipient is recorded and skipped; it
never aborts the run.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import AsyncIterator, Iterable, Optional

from .errors import (
    AlreadyRunning,
    EmptyPayload,
    EmptyTargetSet,
    GatewayError,
    NotConnected,
    classify_error,
)
from .pacing import Pacer
from .reliability import DeliveryReliability
from .transport.base import Attachment, OutgoingMessage, Transport

logger = logging.getLogger("wagate.broadcast")


@dataclass
class ProgressEvent:
    """One entry of the progress stream.

    Per-target events carry `target` and `success`; the terminal event has
    `done=True` and, if the run could not start or crashed, `error`.
    """
    sent: int = 0
    total: int = 0
    target: Optional[str] = None
    success: Optional[bool] = None
    failed: int = 0
    done: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class BroadcastPayload:
    text: Optional[str] = None
    image: Optional[Attachment] = None
    document: Optional[Attachment] = None

    def messages(self) -> list[OutgoingMessage]:
        """Payload parts in delivery order: text, image, document."""
        parts = []
        if self.text:
            parts.append(OutgoingMessage.text_message(self.text))
        if self.image:
            parts.append(OutgoingMessage.image(self.image))
        if self.document:
            parts.append(OutgoingMessage.document(self.document))
        return parts

    def is_empty(self) -> bool:
        return not self.messages()


class JobState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class BroadcastJob:
    """State of one broadcast run.

    Control calls are state transitions; the run loop only observes the
    state at target boundaries.
    """

    def __init__(self, targets: list[str], payload: BroadcastPayload):
        self.targets = targets
        self.payload = payload
        self.sent = 0
        self.failed = 0
        self.state = JobState.RUNNING
        self.result: Optional[ProgressEvent] = None
        self._resumed = asyncio.Event()
        self._resumed.set()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def total(self) -> int:
        return len(self.targets)

    @property
    def stopped(self) -> bool:
        return self.state is JobState.STOPPED

    @property
    def finished(self) -> bool:
        return self.result is not None

    def pause(self):
        if self.state is JobState.RUNNING:
            self.state = JobState.PAUSED
            self._resumed.clear()
            logger.info(f"Broadcast paused at {self.sent}/{self.total}")

    def resume(self):
        if self.state is JobState.PAUSED:
            self.state = JobState.RUNNING
            self._resumed.set()
            logger.info(f"Broadcast resumed at {self.sent}/{self.total}")

    def stop(self):
        if self.state is not JobState.STOPPED:
            self.state = JobState.STOPPED
            self._resumed.set()  # release a paused loop so it sees the stop
            logger.info(f"Broadcast stop requested at {self.sent}/{self.total}")

    async def wait_while_paused(self):
        await self._resumed.wait()

    def emit(self, event: ProgressEvent):
        self._queue.put_nowait(event)

    def finish(self, event: ProgressEvent):
        self.result = event
        self.emit(event)

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """Progress stream, ending with the terminal `done` event."""
        while True:
            event = await self._queue.get()
            yield event
            if event.done:
                return

    async def wait(self) -> ProgressEvent:
        """Wait for the run to end and return the terminal event."""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.result


class BroadcastController:
    """Owns the single active broadcast job."""

    def __init__(
        self,
        transport: Transport,
        reliability: DeliveryReliability,
        interval: float = 1.5,
    ):
        self.transport = transport
        self.reliability = reliability
        self.interval = interval
        self._job: Optional[BroadcastJob] = None

    @property
    def active(self) -> Optional[BroadcastJob]:
        return self._job

    def start(self, targets: Iterable[str], payload: BroadcastPayload) -> BroadcastJob:
        """Start a broadcast and return its job.

        Raises:
            AlreadyRunning: another job is still active
            NotConnected: the transport is down
            EmptyTargetSet: no recipients to send to
            EmptyPayload: no text, image or document given
        """
        if self._job is not None:
            raise AlreadyRunning()
        if not self.transport.connected:
            raise NotConnected()

        target_list = list(targets)
        if not target_list:
            raise EmptyTargetSet()
        if payload.is_empty():
            raise EmptyPayload()

        job = BroadcastJob(target_list, payload)
        self._job = job
        job._task = asyncio.create_task(self._run(job))
        logger.info(f"Broadcast started: {job.total} recipients, {len(payload.messages())} part(s) each")
        return job

    async def broadcast(
        self, targets: Iterable[str], payload: BroadcastPayload,
    ) -> AsyncIterator[ProgressEvent]:
        """Start a broadcast and stream its progress.

        Start failures are reported as a terminal error event instead of
        being raised.
        """
        try:
            job = self.start(targets, payload)
        except GatewayError as e:
            logger.warning(f"Broadcast rejected: {e}")
            yield ProgressEvent(done=True, error=classify_error(e))
            return

        async for event in job.events():
            yield event

    def pause(self):
        if self._job:
            self._job.pause()

    def resume(self):
        if self._job:
            self._job.resume()

    def stop(self):
        if self._job:
            self._job.stop()

    async def _run(self, job: BroadcastJob) -> ProgressEvent:
        pacer = Pacer(self.interval)
        final: Optional[ProgressEvent] = None
        try:
            for target in job.targets:
                if job.stopped:
                    break
                await pacer.wait()
                await job.wait_while_paused()
                if job.stopped:
                    break

                success = await self.reliability.deliver(target, job.payload.messages())
                job.sent += 1
                if not success:
                    job.failed += 1
                job.emit(ProgressEvent(
                    sent=job.sent, total=job.total, target=target,
                    success=success, failed=job.failed,
                ))

            final = ProgressEvent(done=True, sent=job.sent, total=job.total, failed=job.failed)
            logger.info(
                f"Broadcast {'stopped' if job.stopped else 'finished'}: "
                f"{job.sent}/{job.total} processed, {job.failed} failed"
            )
        except Exception as e:
            logger.error(f"Broadcast crashed: {e}", exc_info=True)
            final = ProgressEvent(
                done=True, sent=job.sent, total=job.total, failed=job.failed,
                error=classify_error(e),
            )
        finally:
            if final is None:
                final = ProgressEvent(
                    done=True, sent=job.sent, total=job.total, failed=job.failed,
                    error="Broadcast cancelled",
                )
            job.finish(final)
            if self._job is job:
                self._job = None
        return final
