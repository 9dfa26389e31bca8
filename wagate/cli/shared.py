"""Shared utilities for wagate CLI commands."""

from rich.console import Console

console = Console()


def _load(debug: bool = False):
    """Load settings and set up logging for a command run."""
    from wagate.config import load_settings
    from wagate.main import configure_logging

    settings = load_settings()
    configure_logging(settings.log_file, debug=debug)
    return settings
