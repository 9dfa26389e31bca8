"""wagate CLI — command line interface."""

import sys

import click

from wagate import __version__
from .shared import console


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="wagate")
@click.pass_context
def cli(ctx):
    """wagate — WhatsApp broadcast and auto-responder gateway"""
    if ctx.invoked_subcommand is None:
        _show_help()


def _show_help():
    """Show all available commands grouped by category."""
    console.print(f"[bold]wagate v{__version__}[/bold] — WhatsApp broadcast and auto-responder gateway\n")

    groups = {
        "Run": [
            ("start", "Start the gateway (auto-responder + daily health sweep)"),
            ("broadcast", "Send an announcement to a contact category"),
        ],
        "Inspect": [
            ("status", "Show configuration and stored state"),
            ("count", "Count contacts in a category"),
            ("directory", "List subscribed recipients"),
        ],
        "Maintenance": [
            ("sweep", "Probe every subscriber now and prune unreachable ones"),
        ],
    }

    for category, commands in groups.items():
        console.print(f"  [bold cyan]{category}[/bold cyan]")
        for name, desc in commands:
            console.print(f"    [bold]wagate {name:12s}[/bold] {desc}")
        console.print()

    console.print("[dim]Run 'wagate <command> --help' for details on a specific command.[/dim]")


# Import all command modules (registers commands onto cli group)
from . import cmd_start  # noqa: E402, F401
from . import cmd_broadcast  # noqa: E402, F401
from . import cmd_status  # noqa: E402, F401


@cli.command(name="help", hidden=True)
def help_cmd():
    """Show all available commands."""
    _show_help()


def main():
    """CLI entry point."""
    try:
        cli(standalone_mode=False)
    except click.UsageError as e:
        if e.ctx:
            click.echo(e.ctx.command.get_usage(e.ctx), err=True)
        click.echo("Try 'wagate help' for help.\n", err=True)
        click.echo(f"Error: {e.format_message()}", err=True)
        sys.exit(2)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.exceptions.Exit as e:
        sys.exit(e.code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
