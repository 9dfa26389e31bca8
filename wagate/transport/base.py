"""Transport interface — everything the core needs from a messaging connection."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


@dataclass
class InboundEvent:
    """One inbound message as seen by the conversation engine."""
    event_id: str
    sender_id: str          # chat JID the reply goes to
    text: str = ""
    is_self_echo: bool = False  # our own outgoing message coming back

    @property
    def is_private(self) -> bool:
        return is_private_chat(self.sender_id)


@dataclass
class Attachment:
    """A file sent as an image or document."""
    path: str
    caption: str = ""
    filename: Optional[str] = None  # name shown to the recipient
    mimetype: Optional[str] = None


@dataclass
class OutgoingMessage:
    """A single outbound message: either text, an image, or a document."""
    kind: str  # 'text', 'image', 'document'
    text: str = ""
    attachment: Optional[Attachment] = None

    @classmethod
    def text_message(cls, text: str) -> "OutgoingMessage":
        return cls(kind="text", text=text)

    @classmethod
    def image(cls, attachment: Attachment) -> "OutgoingMessage":
        return cls(kind="image", attachment=attachment)

    @classmethod
    def document(cls, attachment: Attachment) -> "OutgoingMessage":
        return cls(kind="document", attachment=attachment)


EventCallback = Callable[[InboundEvent], Awaitable[None]]
StateCallback = Callable[[ConnectionState], Awaitable[None]]


def is_private_chat(jid: str) -> bool:
    """True for one-to-one chats (phone-number or linked-id JIDs)."""
    return bool(jid) and (jid.endswith("@s.whatsapp.net") or jid.endswith("@lid"))


class Transport(ABC):
    """Abstract messaging connection.

    Implementations push inbound events and connection-state changes to
    the callbacks given to `start()` and raise `TransportError` from
    `send()` / `probe()` on failure.
    """

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the connection is currently usable."""
        ...

    @abstractmethod
    async def start(self, on_event: EventCallback, on_state: Optional[StateCallback] = None) -> bool:
        """Open the connection and begin delivering events."""
        ...

    @abstractmethod
    async def stop(self):
        """Close the connection."""
        ...

    @abstractmethod
    async def send(self, recipient_id: str, message: OutgoingMessage):
        """Deliver one message. Raises TransportError on failure."""
        ...

    @abstractmethod
    async def probe(self, recipient_id: str) -> bool:
        """Whether the recipient exists on the network. Raises TransportError."""
        ...

    async def send_text(self, recipient_id: str, text: str):
        """Convenience wrapper around `send()` for plain text."""
        await self.send(recipient_id, OutgoingMessage.text_message(text))
