"""Tests for the broadcast controller."""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

from wagate.broadcast import BroadcastController, BroadcastPayload, JobState, ProgressEvent
from wagate.errors import AlreadyRunning, EmptyPayload, EmptyTargetSet, NotConnected, TransportError
from wagate.transport.base import Attachment


def _targets(n: int) -> list[str]:
    return [f"9100000000{i:02d}@s.whatsapp.net" for i in range(n)]


async def _collect(job) -> list[ProgressEvent]:
    return [event async for event in job.events()]


class TestBroadcastRun:
    """Progress stream and best-effort delivery."""

    @pytest.mark.asyncio
    async def test_progress_events_with_failures(self, controller, transport):
        """N targets with K failing: N progress events + 1 terminal, failed == K."""
        targets = _targets(6)
        transport.fail_for = {targets[1], targets[4]}

        job = controller.start(targets, BroadcastPayload(text="Diwali offer"))
        events = await _collect(job)

        progress, terminal = events[:-1], events[-1]
        assert len(progress) == 6
        assert [e.target for e in progress] == targets
        assert [e.sent for e in progress] == [1, 2, 3, 4, 5, 6]
        assert sum(1 for e in progress if not e.success) == 2
        assert terminal.done
        assert terminal.sent == 6
        assert terminal.total == 6
        assert terminal.failed == 2
        assert terminal.error is None

    @pytest.mark.asyncio
    async def test_all_payload_parts_in_order(self, controller, transport, tmp_path):
        """Text, then image, then document are sent to each target."""
        image = tmp_path / "offer.jpg"
        image.write_bytes(b"jpg")
        doc = tmp_path / "catalogue.pdf"
        doc.write_bytes(b"%PDF")
        payload = BroadcastPayload(
            text="New range",
            image=Attachment(path=str(image), caption="Look"),
            document=Attachment(path=str(doc), caption="Details", filename="catalogue.pdf"),
        )

        job = controller.start(_targets(2), payload)
        await job.wait()

        kinds = [m.kind for r, m in transport.sent if r == _targets(2)[0]]
        assert kinds == ["text", "image", "document"]

    @pytest.mark.asyncio
    async def test_failed_part_does_not_skip_others(self, controller, transport, reliability):
        """Each payload part is attempted even if an earlier one failed."""
        calls = []

        async def flaky_send(recipient_id, message):
            calls.append(message.kind)
            if message.kind == "text":
                raise TransportError("text rejected")

        transport.send = flaky_send
        payload = BroadcastPayload(text="hi", image=Attachment(path="/tmp/x.jpg"))

        job = controller.start(_targets(1), payload)
        events = await _collect(job)

        assert calls == ["text", "image"]
        assert events[0].success is False
        assert events[-1].failed == 1

    @pytest.mark.asyncio
    async def test_job_cleared_after_completion(self, controller):
        job = controller.start(_targets(2), BroadcastPayload(text="x"))
        assert controller.active is job
        await job.wait()
        assert controller.active is None

    def test_progress_event_to_dict(self):
        event = ProgressEvent(sent=3, total=10, target="a@s.whatsapp.net", success=True)
        data = event.to_dict()
        assert data["sent"] == 3
        assert data["target"] == "a@s.whatsapp.net"
        assert "error" not in data

        terminal = ProgressEvent(done=True, error="WhatsApp not connected")
        assert terminal.to_dict()["error"] == "WhatsApp not connected"
        assert "target" not in terminal.to_dict()


class TestBroadcastControl:
    """pause / resume / stop semantics."""

    @pytest.mark.asyncio
    async def test_stop_prevents_remaining_sends(self, controller, transport):
        """Stop after recipient i: nothing is sent beyond recipient i+1."""
        targets = _targets(10)
        job = controller.start(targets, BroadcastPayload(text="x"))

        stop_after = 3
        async for event in job.events():
            if not event.done and event.sent == stop_after:
                controller.stop()

        attempted = transport.attempted_targets()
        assert attempted[:stop_after] == targets[:stop_after]
        assert len(attempted) <= stop_after + 1
        assert job.result.done
        assert job.result.sent <= stop_after + 1
        assert job.result.total == 10
        assert controller.active is None

    @pytest.mark.asyncio
    async def test_stop_while_paused(self, controller, transport):
        job = controller.start(_targets(5), BroadcastPayload(text="x"))
        controller.pause()
        await asyncio.sleep(0.02)
        controller.stop()

        result = await asyncio.wait_for(job.wait(), timeout=1)
        assert result.done
        assert result.sent == 0
        assert transport.attempts == []

    @pytest.mark.asyncio
    async def test_pause_resume_same_result(self, controller, transport):
        """A paused then resumed run ends with the same counters."""
        targets = _targets(4)
        job = controller.start(targets, BroadcastPayload(text="x"))
        controller.pause()
        assert job.state is JobState.PAUSED

        await asyncio.sleep(0.05)
        assert transport.attempts == []
        assert job.sent == 0

        controller.resume()
        assert job.state is JobState.RUNNING
        result = await asyncio.wait_for(job.wait(), timeout=1)

        assert result.sent == 4
        assert result.total == 4
        assert transport.attempted_targets() == targets

    @pytest.mark.asyncio
    async def test_controls_idempotent(self, controller):
        job = controller.start(_targets(3), BroadcastPayload(text="x"))
        controller.pause()
        controller.pause()
        assert job.state is JobState.PAUSED
        controller.resume()
        controller.resume()
        assert job.state is JobState.RUNNING
        controller.stop()
        controller.stop()
        controller.resume()  # a stopped job stays stopped
        assert job.state is JobState.STOPPED
        await job.wait()

    def test_controls_without_job_are_noops(self, controller):
        assert controller.active is None
        controller.pause()
        controller.resume()
        controller.stop()
        assert controller.active is None


class TestBroadcastStart:
    """Start preconditions."""

    @pytest.mark.asyncio
    async def test_second_start_rejected(self, controller):
        first = controller.start(_targets(3), BroadcastPayload(text="one"))
        controller.pause()

        with pytest.raises(AlreadyRunning):
            controller.start(_targets(3), BroadcastPayload(text="two"))

        controller.stop()
        await first.wait()

        second = controller.start(_targets(2), BroadcastPayload(text="two"))
        result = await second.wait()
        assert result.sent == 2

    @pytest.mark.asyncio
    async def test_not_connected(self, controller, transport):
        transport._connected = False
        with pytest.raises(NotConnected):
            controller.start(_targets(3), BroadcastPayload(text="x"))
        assert controller.active is None

    @pytest.mark.asyncio
    async def test_empty_targets(self, controller):
        with pytest.raises(EmptyTargetSet):
            controller.start([], BroadcastPayload(text="x"))
        assert controller.active is None

    @pytest.mark.asyncio
    async def test_empty_payload(self, controller):
        with pytest.raises(EmptyPayload):
            controller.start(_targets(1), BroadcastPayload())
        assert controller.active is None

    @pytest.mark.asyncio
    async def test_stream_empty_payload(self, controller, transport):
        events = [e async for e in controller.broadcast(_targets(2), BroadcastPayload())]

        assert len(events) == 1
        assert events[0].done
        assert events[0].error == "Nothing to send"
        assert transport.attempts == []
        assert controller.active is None

    @pytest.mark.asyncio
    async def test_stream_reports_start_errors(self, controller, transport):
        """broadcast() turns start failures into a terminal error event."""
        transport._connected = False
        events = [e async for e in controller.broadcast(_targets(2), BroadcastPayload(text="x"))]

        assert len(events) == 1
        assert events[0].done
        assert events[0].error == "WhatsApp not connected"
        assert transport.attempts == []

    @pytest.mark.asyncio
    async def test_stream_empty_targets(self, controller):
        events = [e async for e in controller.broadcast([], BroadcastPayload(text="x"))]
        assert events[-1].error == "No numbers found"

    @pytest.mark.asyncio
    async def test_stream_full_run(self, controller):
        events = [e async for e in controller.broadcast(_targets(3), BroadcastPayload(text="x"))]
        assert len(events) == 4
        assert events[-1].done and events[-1].sent == 3

    @pytest.mark.asyncio
    async def test_targets_snapshotted_at_start(self, controller, transport):
        targets = _targets(3)
        job = controller.start(targets, BroadcastPayload(text="x"))
        targets.append("extra@s.whatsapp.net")
        result = await job.wait()
        assert result.total == 3
        assert "extra@s.whatsapp.net" not in transport.attempted_targets()


class TestBroadcastPacing:

    @pytest.mark.asyncio
    async def test_one_wait_between_consecutive_targets(self, transport, reliability):
        """The interval separates every two targets, failed ones included."""
        controller = BroadcastController(transport, reliability, interval=0.05)
        targets = _targets(4)
        transport.fail_for = {targets[1]}
        waits = []
        real_sleep = asyncio.sleep

        async def recording_sleep(seconds):
            if seconds > 0:
                waits.append((len(transport.attempts), seconds))
            await real_sleep(seconds)

        with patch("wagate.pacing.asyncio.sleep", new=recording_sleep):
            job = controller.start(targets, BroadcastPayload(text="x"))
            result = await job.wait()

        assert result.sent == 4
        assert result.failed == 1
        # after targets 1, 2 and 3; none before the first or after the last
        assert [attempts for attempts, _ in waits] == [1, 2, 3]
        assert all(0 < seconds <= 0.05 for _, seconds in waits)

    @pytest.mark.asyncio
    async def test_no_wait_for_single_target(self, transport, reliability):
        controller = BroadcastController(transport, reliability, interval=5)
        with patch("wagate.pacing.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            job = controller.start(_targets(1), BroadcastPayload(text="x"))
            await job.wait()
        assert not [c for c in mock_sleep.await_args_list if c.args[0] > 0]
