"""Start command."""

import asyncio

import click

from . import cli
from .shared import _load, console


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(debug):
    """Start the gateway."""
    settings = _load(debug)

    from wagate.main import run
    console.print("[bold blue]Starting wagate...[/bold blue]")
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        console.print("[dim]Stopped.[/dim]")
