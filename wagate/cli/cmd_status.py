"""Status, inspection and maintenance commands."""

import asyncio

import click
from rich.table import Table

from . import cli
from .shared import _load, console


@cli.command()
def status():
    """Show configuration and stored state."""
    from wagate import __version__
    from wagate.config import load_settings
    from wagate.store import GreetingRecord, RecipientDirectory

    settings = load_settings()
    directory = RecipientDirectory(settings.directory_path)
    greetings = GreetingRecord(settings.greetings_path, settings.greeting_cooldown_hours * 3600)

    table = Table(title=f"wagate Status v{__version__}", show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Business", settings.business_name)
    table.add_row("Subscribers", str(len(directory)))
    table.add_row("Greeted recipients", str(len(greetings)))
    table.add_row("Admins", ", ".join(settings.admin_ids) or "[yellow]none (linked phone only)[/yellow]")
    table.add_row("Broadcast command", settings.broadcast_prefix)
    table.add_row("Greeting cooldown", f"{settings.greeting_cooldown_hours:g}h")
    table.add_row("Health sweep", f"daily at {settings.health_sweep_at}")
    table.add_row("Contacts file", settings.contacts_file)
    table.add_row("Data directory", settings.data_dir)

    console.print(table)


@cli.command()
@click.option("--target", "-t", default="All", show_default=True, help="Contact category")
def count(target):
    """Count contacts in a category."""
    from wagate.config import load_settings
    from wagate.contacts import ContactSource
    from wagate.errors import ContactSourceError

    settings = load_settings()
    try:
        n = ContactSource(settings.contacts_file).count(target)
    except ContactSourceError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)
    console.print(f"[bold]{target}:[/bold] {n} contact(s)")


@cli.command()
def directory():
    """List subscribed recipients."""
    from wagate.config import load_settings
    from wagate.store import RecipientDirectory

    settings = load_settings()
    entries = RecipientDirectory(settings.directory_path).snapshot()
    if not entries:
        console.print("[dim]No subscribers yet.[/dim]")
        return
    for jid in entries:
        console.print(jid)
    console.print(f"\n[dim]{len(entries)} subscriber(s)[/dim]")


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def sweep(debug):
    """Probe every subscriber now and prune unreachable ones."""
    settings = _load(debug)

    from wagate.main import Gateway

    async def _sweep() -> int:
        gateway = Gateway(settings, inbound=False)
        if not await gateway.start(schedule=False):
            console.print("[red]Could not connect to WhatsApp.[/red]")
            return 1
        try:
            result = await gateway.reliability.health_sweep()
        finally:
            await gateway.stop()
        console.print(f"[green]✓ {result.checked} checked, {result.pruned} pruned[/green]")
        return 0

    raise SystemExit(asyncio.run(_sweep()))
