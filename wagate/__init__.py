"""wagate — WhatsApp broadcast and auto-responder gateway."""

__version__ = "0.1.0"
