"""Messaging transports."""

from .base import (
    Attachment,
    ConnectionState,
    InboundEvent,
    OutgoingMessage,
    Transport,
    is_private_chat,
)
from .wacli import WacliTransport

__all__ = [
    "Attachment",
    "ConnectionState",
    "InboundEvent",
    "OutgoingMessage",
    "Transport",
    "WacliTransport",
    "is_private_chat",
]
