"""wagate — process wiring and main entry point."""

import asyncio
import logging
import os
from typing import Optional

from .broadcast import BroadcastController
from .config import GatewaySettings, load_settings
from .contacts import ContactSource
from .engine import ConversationEngine
from .reliability import DeliveryReliability
from .scheduler import DailyScheduler
from .store import GreetingRecord, RecipientDirectory
from .transport.base import ConnectionState, InboundEvent, Transport
from .transport.wacli import WacliTransport

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("wagate")


def configure_logging(log_file: str = "~/wagate.log", debug: bool = False):
    """Console + file logging for the whole process."""
    logging.basicConfig(
        level=logging.INFO,
        format=_log_format,
        handlers=[
            logging.StreamHandler(),                                          # stderr (console)
            logging.FileHandler(os.path.expanduser(log_file), encoding="utf-8"),
        ],
    )
    if debug:
        logging.getLogger("wagate").setLevel(logging.DEBUG)


class Gateway:
    """All gateway components sharing one transport connection."""

    def __init__(self, settings: GatewaySettings, transport: Optional[Transport] = None, inbound: bool = True):
        self.settings = settings
        # inbound=False: send-only run (CLI broadcast, sweep); the engine never sees events
        self.inbound = inbound
        self.transport = transport or WacliTransport(settings.wacli_path, follow=inbound)
        self.directory = RecipientDirectory(settings.directory_path)
        self.greetings = GreetingRecord(
            settings.greetings_path,
            cooldown_seconds=settings.greeting_cooldown_hours * 3600,
        )
        self.reliability = DeliveryReliability(
            self.transport,
            self.directory,
            retry_attempts=settings.retry_attempts,
            retry_backoff=settings.retry_backoff,
        )
        self.controller = BroadcastController(
            self.transport, self.reliability, interval=settings.broadcast_interval,
        )
        self.engine = ConversationEngine.from_settings(
            settings, self.transport, self.directory, self.greetings, self.reliability,
        )
        self.contacts = ContactSource(settings.contacts_file)
        self.scheduler = DailyScheduler(
            settings.health_sweep_at, self.reliability.health_sweep, name="health sweep",
        )
        self._handlers: set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

    async def _on_event(self, event: InboundEvent):
        # One task per event so a long admin broadcast never stalls the poller.
        task = asyncio.create_task(self.engine.handle_event(event))
        self._handlers.add(task)
        task.add_done_callback(self._handlers.discard)

    async def _ignore_event(self, event: InboundEvent):
        logger.debug(f"send-only run, ignoring inbound event {event.event_id}")

    async def _on_state(self, state: ConnectionState):
        if state is ConnectionState.DISCONNECTED and self.controller.active:
            logger.warning("Connection lost during a broadcast; sends will fail until it is back")

    async def start(self, schedule: bool = True) -> bool:
        """Connect the transport and start background jobs."""
        on_event = self._on_event if self.inbound else self._ignore_event
        if not await self.transport.start(on_event, self._on_state):
            return False
        if schedule:
            await self.scheduler.start()
        return True

    async def serve_forever(self):
        await self._stopped.wait()

    async def stop(self):
        self._stopped.set()
        self.controller.stop()
        await self.scheduler.stop()
        for task in list(self._handlers):
            task.cancel()
        if self._handlers:
            await asyncio.gather(*self._handlers, return_exceptions=True)
        await self.transport.stop()


async def run(settings: Optional[GatewaySettings] = None):
    """Main run loop."""
    settings = settings or load_settings()
    gateway = Gateway(settings)

    try:
        if not await gateway.start():
            logger.error("Transport failed to start — is wacli installed and authenticated?")
            return
        logger.info(
            f"wagate is running: {len(gateway.directory)} subscribers, "
            f"health sweep daily at {settings.health_sweep_at}. Press Ctrl+C to stop."
        )
        await gateway.serve_forever()
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    except Exception as e:
        logger.critical(f"Fatal error: {type(e).__name__}: {e}", exc_info=True)
    finally:
        await gateway.stop()


def main():
    """Entry point."""
    settings = load_settings()
    configure_logging(settings.log_file)
    asyncio.run(run(settings))


if __name__ == "__main__":
    main()
