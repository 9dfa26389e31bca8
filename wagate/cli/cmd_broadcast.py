"""Broadcast command — run one broadcast job with live progress."""

import asyncio
import os
import signal

import click
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from . import cli
from .shared import _load, console


def _toggle_pause(controller):
    """Ctrl+Z: pause a running broadcast, resume a paused one."""
    from wagate.broadcast import JobState

    job = controller.active
    if job is None:
        return
    if job.state is JobState.PAUSED:
        controller.resume()
        console.print("[cyan]▶ Resumed[/cyan]")
    elif job.state is JobState.RUNNING:
        controller.pause()
        console.print("[cyan]⏸ Paused (Ctrl+Z to resume, Ctrl+C to stop)[/cyan]")


def _install_controls(loop, controller) -> list:
    """Map signals to broadcast controls; returns the signals installed.

    SIGINT (Ctrl+C) stops, SIGTSTP (Ctrl+Z) toggles pause, SIGUSR1 pauses
    and SIGUSR2 resumes (for `kill` from another shell).
    """
    handlers = [
        ("SIGINT", controller.stop),
        ("SIGTSTP", lambda: _toggle_pause(controller)),
        ("SIGUSR1", controller.pause),
        ("SIGUSR2", controller.resume),
    ]
    installed = []
    for name, handler in handlers:
        sig = getattr(signal, name, None)
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, handler)
        except NotImplementedError:
            continue
        installed.append(sig)
    return installed


def _remove_controls(loop, installed: list):
    for sig in installed:
        loop.remove_signal_handler(sig)


@cli.command()
@click.option("--target", "-t", default="All", show_default=True,
              help="Contact category (All, Contractors, Individual Customers, Retailers)")
@click.option("--message", "-m", default=None, help="Text message")
@click.option("--image", type=click.Path(exists=True, dir_okay=False), default=None, help="Image file")
@click.option("--image-caption", default="", help="Caption for the image")
@click.option("--pdf", type=click.Path(exists=True, dir_okay=False), default=None, help="PDF document")
@click.option("--pdf-caption", default="", help="Caption for the PDF")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def broadcast(target, message, image, image_caption, pdf, pdf_caption, debug):
    """Send an announcement to every contact in a category.

    Ctrl+C stops the broadcast after the current recipient; Ctrl+Z pauses
    and resumes it. From another shell, SIGUSR1 pauses and SIGUSR2 resumes.
    """
    if not (message or image or pdf):
        raise click.UsageError("Nothing to send: pass --message, --image and/or --pdf.")

    settings = _load(debug)

    from wagate.broadcast import BroadcastPayload
    from wagate.errors import GatewayError, classify_error
    from wagate.main import Gateway
    from wagate.transport.base import Attachment

    payload = BroadcastPayload(
        text=message,
        image=Attachment(path=image, caption=image_caption) if image else None,
        document=Attachment(
            path=pdf, caption=pdf_caption,
            filename=os.path.basename(pdf), mimetype="application/pdf",
        ) if pdf else None,
    )

    async def _broadcast() -> int:
        gateway = Gateway(settings, inbound=False)
        if not await gateway.start(schedule=False):
            console.print("[red]Could not connect to WhatsApp (is wacli authenticated?).[/red]")
            return 1

        loop = asyncio.get_running_loop()
        installed = _install_controls(loop, gateway.controller)

        try:
            try:
                targets = gateway.contacts.resolve(target)
            except GatewayError as e:
                console.print(f"[red]{classify_error(e)}[/red]")
                return 1

            final = None
            with Progress(
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TextColumn("[red]{task.fields[failed]} failed"),
                TimeElapsedColumn(),
                console=console,
            ) as progress:
                task_id = progress.add_task(f"Broadcast → {target}", total=len(targets) or None, failed=0)
                async for event in gateway.controller.broadcast(targets, payload):
                    if event.done:
                        final = event
                        break
                    progress.update(task_id, completed=event.sent, failed=event.failed)
                    if not event.success:
                        progress.console.print(f"[yellow]✗ {event.target}[/yellow]")

            if final is None or final.error:
                console.print(f"[red]Broadcast failed: {final.error if final else 'no result'}[/red]")
                return 1
            console.print(
                f"[green]✓ Broadcast finished: {final.sent}/{final.total} processed, "
                f"{final.failed} failed[/green]"
            )
            return 0
        finally:
            _remove_controls(loop, installed)
            await gateway.stop()

    raise SystemExit(asyncio.run(_broadcast()))
