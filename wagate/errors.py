"""Gateway error hierarchy and user-facing error classification."""

import asyncio


# ════════════════════════════════════════════════════════
# Exception hierarchy. Callers catch by type, never by
# string matching.
# ════════════════════════════════════════════════════════

class GatewayError(Exception):
    """Base class for all gateway errors."""
    pass

class TransportError(GatewayError):
    """Connection down or send/probe rejected by the transport."""
    pass

class NotConnected(GatewayError):
    """A broadcast was requested while the transport is disconnected."""

    def __init__(self, message: str = "WhatsApp not connected"):
        super().__init__(message)

class EmptyTargetSet(GatewayError):
    """The requested audience resolved to zero recipients."""

    def __init__(self, message: str = "No numbers found"):
        super().__init__(message)

class AlreadyRunning(GatewayError):
    """A second broadcast was started while one is still active."""

    def __init__(self, message: str = "A broadcast is already running"):
        super().__init__(message)

class EmptyPayload(GatewayError):
    """A broadcast was started with no text, image or document."""

    def __init__(self, message: str = "Nothing to send"):
        super().__init__(message)

class EmptyCommandBody(GatewayError):
    """Admin broadcast command without a message body."""
    pass

class ContactSourceError(GatewayError):
    """Contact file unreadable or unknown category requested."""
    pass


def classify_error(e: Exception) -> str:
    """Classify any exception into a short human-readable message.

    Used by the CLI and by in-chat admin replies.
    """
    if isinstance(e, (NotConnected, EmptyTargetSet, EmptyPayload, AlreadyRunning, ContactSourceError)):
        return str(e)
    if isinstance(e, TransportError):
        return f"WhatsApp rejected the message: {e}" if str(e) else "WhatsApp rejected the message."
    if isinstance(e, GatewayError):
        return str(e) or type(e).__name__

    if isinstance(e, asyncio.TimeoutError):
        return "Request timed out. Please try again."
    if isinstance(e, FileNotFoundError):
        return f"File not found: {e.filename}"
    if isinstance(e, PermissionError):
        return f"Permission denied: {e.filename}"

    type_name = type(e).__name__
    return f"Something went wrong ({type_name}). Check logs for details."
