"""Pytest configuration and shared fixtures."""

import asyncio
import itertools

import pytest

from wagate.broadcast import BroadcastController
from wagate.engine import ConversationEngine
from wagate.errors import TransportError
from wagate.menu import build_menu
from wagate.reliability import DeliveryReliability
from wagate.store import GreetingRecord, RecipientDirectory
from wagate.transport.base import InboundEvent, OutgoingMessage, Transport

ADMIN = "911111111111@s.whatsapp.net"
USER = "919876543210@s.whatsapp.net"
SELF = "910000000000@s.whatsapp.net"

_event_ids = itertools.count(1)


class FakeTransport(Transport):
    """In-memory transport recording every send attempt."""

    def __init__(self):
        self._connected = True
        self.attempts: list[tuple[str, OutgoingMessage]] = []
        self.sent: list[tuple[str, OutgoingMessage]] = []
        self.fail_for: set[str] = set()
        self.dead: set[str] = set()
        self.probe_errors: set[str] = set()
        self.send_delay = 0.0
        self.on_event = None

    @property
    def connected(self) -> bool:
        return self._connected

    async def start(self, on_event, on_state=None) -> bool:
        self.on_event = on_event
        self._connected = True
        return True

    async def stop(self):
        self._connected = False

    async def send(self, recipient_id, message):
        self.attempts.append((recipient_id, message))
        await asyncio.sleep(self.send_delay)
        if recipient_id in self.fail_for:
            raise TransportError("rejected")
        self.sent.append((recipient_id, message))

    async def probe(self, recipient_id) -> bool:
        await asyncio.sleep(0)
        if recipient_id in self.probe_errors:
            raise TransportError("probe failed")
        return recipient_id not in self.dead

    def texts_to(self, recipient_id: str) -> list[str]:
        return [m.text for r, m in self.sent if r == recipient_id and m.kind == "text"]

    def attempted_targets(self) -> list[str]:
        seen = []
        for r, _ in self.attempts:
            if r not in seen:
                seen.append(r)
        return seen


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_event(text: str, sender: str = USER, self_echo: bool = False, event_id: str = None) -> InboundEvent:
    return InboundEvent(
        event_id=event_id or f"evt-{next(_event_ids)}",
        sender_id=sender,
        text=text,
        is_self_echo=self_echo,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def directory(tmp_path):
    return RecipientDirectory(str(tmp_path / "directory.json"))


@pytest.fixture
def greetings(tmp_path, clock):
    return GreetingRecord(str(tmp_path / "greetings.json"), cooldown_seconds=8 * 3600, clock=clock)


@pytest.fixture
def reliability(transport, directory):
    return DeliveryReliability(transport, directory, retry_attempts=2, retry_backoff=0)


@pytest.fixture
def controller(transport, reliability):
    return BroadcastController(transport, reliability, interval=0)


@pytest.fixture
def engine(tmp_path, transport, directory, greetings, reliability):
    return ConversationEngine(
        transport=transport,
        directory=directory,
        greetings=greetings,
        reliability=reliability,
        menu=build_menu("Acme Switchgear"),
        admin_ids=[ADMIN],
        broadcast_prefix="!broadcast",
        dedup_ttl=120,
        catalogue_dir=str(tmp_path),
        bundle_interval=0,
        admin_broadcast_interval=0,
    )
