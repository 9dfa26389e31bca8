"""Conversation engine — inbound event handling and the menu state machine.

Each inbound event runs through, in order:
1. dedup against recently processed event ids
2. directory update for new private-chat senders
3. self-echo filter (our own messages, except admin commands)
4. greeting with per-recipient cooldown
5. admin in-chat broadcast command
6. menu entry on a starter keyword
7. numeric menu dispatch

Events are dispatched as independent tasks. Handlers for different
senders may interleave at any await; events from one sender are
handled one after another under that sender's lock. The per-session
`busy` flag additionally refuses a bundle started outside that order.
"""

import logging
import os
from dataclasses import dataclass
from typing import Iterable, Optional

from .dedup import ExpiringSet
from .errors import EmptyCommandBody, TransportError
from .menu import Menu, MenuAction, build_menu, is_menu_starter, normalize
from .pacing import Pacer
from .reliability import DeliveryReliability
from .sessions import SessionStore, Step
from .store import GreetingRecord, RecipientDirectory
from .transport.base import Attachment, InboundEvent, OutgoingMessage, Transport

logger = logging.getLogger("wagate.engine")


@dataclass
class AdminBroadcastResult:
    total: int = 0
    delivered: int = 0
    failed: int = 0
    pruned: int = 0


class ConversationEngine:
    """Auto-responder for inbound WhatsApp conversations."""

    def __init__(
        self,
        transport: Transport,
        directory: RecipientDirectory,
        greetings: GreetingRecord,
        reliability: DeliveryReliability,
        menu: Optional[Menu] = None,
        admin_ids: Iterable[str] = (),
        broadcast_prefix: str = "!broadcast",
        dedup_ttl: float = 120,
        catalogue_dir: str = ".",
        bundle_interval: float = 1.0,
        admin_broadcast_interval: float = 1.5,
    ):
        self.transport = transport
        self.directory = directory
        self.greetings = greetings
        self.reliability = reliability
        self.menu = menu or build_menu("wagate")
        self.admin_ids = frozenset(admin_ids)
        self.broadcast_prefix = broadcast_prefix
        self.catalogue_dir = os.path.expanduser(catalogue_dir)
        self.bundle_interval = bundle_interval
        self.admin_broadcast_interval = admin_broadcast_interval
        self.sessions = SessionStore()
        self.processed = ExpiringSet(dedup_ttl)

    @classmethod
    def from_settings(cls, settings, transport, directory, greetings, reliability) -> "ConversationEngine":
        return cls(
            transport=transport,
            directory=directory,
            greetings=greetings,
            reliability=reliability,
            menu=build_menu(settings.business_name),
            admin_ids=settings.admin_ids,
            broadcast_prefix=settings.broadcast_prefix,
            dedup_ttl=settings.dedup_ttl_seconds,
            catalogue_dir=settings.catalogue_dir,
            bundle_interval=settings.bundle_interval,
            admin_broadcast_interval=settings.admin_broadcast_interval,
        )

    # ── Entry point ────────────────────────────────────────────

    async def handle_event(self, event: InboundEvent):
        """Process one inbound event. Never raises."""
        try:
            await self._handle(event)
        except Exception as e:
            logger.error(f"Error handling event {event.event_id} from {event.sender_id}: {e}", exc_info=True)

    async def _handle(self, event: InboundEvent):
        if not self.processed.add(event.event_id):
            logger.debug(f"drop duplicate event {event.event_id}")
            return

        # One sender's events run in arrival order; other senders are not blocked.
        async with self.sessions.lock(event.sender_id):
            await self._process(event)

    async def _process(self, event: InboundEvent):
        sender = event.sender_id
        text = (event.text or "").strip()
        is_command = self._is_broadcast_command(text)

        if (
            event.is_private
            and not event.is_self_echo
            and sender not in self.admin_ids
            and sender not in self.directory
        ):
            self.directory.add(sender)

        if event.is_self_echo and not is_command:
            return

        if event.is_private and not event.is_self_echo:
            await self._maybe_greet(sender, text)

        if is_command and self.is_admin(event):
            await self.admin_broadcast(sender, text)
            return

        # The menu is a private-chat feature; group traffic stops here.
        if not event.is_private:
            return

        if is_menu_starter(text):
            self.sessions.reset(sender)
            await self._reply(sender, self.menu.render(Step.MAIN_MENU))
            return

        await self._dispatch(sender, normalize(text))

    def is_admin(self, event: InboundEvent) -> bool:
        """Configured admins, plus the linked phone itself."""
        return event.is_self_echo or event.sender_id in self.admin_ids

    # ── Greeting ───────────────────────────────────────────────

    async def _maybe_greet(self, sender: str, text: str):
        if is_menu_starter(text):
            # The menu reply follows right away; no separate greeting.
            self.greetings.record(sender)
            return
        if self.greetings.is_due(sender):
            if await self._reply(sender, self.menu.greeting()):
                self.greetings.record(sender)

    # ── Admin broadcast ────────────────────────────────────────

    def _is_broadcast_command(self, text: str) -> bool:
        if not self.broadcast_prefix or not text.startswith(self.broadcast_prefix):
            return False
        rest = text[len(self.broadcast_prefix):]
        # "!broadcastfoo" is ordinary text, not the command
        return not rest or rest[0].isspace()

    def _command_body(self, text: str) -> str:
        body = text[len(self.broadcast_prefix):].strip()
        if not body:
            raise EmptyCommandBody("broadcast command has no message")
        return body

    async def admin_broadcast(self, sender: str, text: str) -> Optional[AdminBroadcastResult]:
        """Relay an admin message to every subscriber except the admin."""
        try:
            body = self._command_body(text)
        except EmptyCommandBody:
            await self._reply(sender, f"Usage: {self.broadcast_prefix} <message>")
            return None

        recipients = [r for r in self.directory.snapshot() if r != sender]
        result = AdminBroadcastResult(total=len(recipients))
        await self._reply(sender, f"📢 Broadcasting to {result.total} recipients...")
        logger.info(f"Admin broadcast from {sender} to {result.total} recipients")

        pacer = Pacer(self.admin_broadcast_interval)
        for recipient in recipients:
            await pacer.wait()
            if not await self.reliability.is_alive(recipient):
                self.reliability.prune_recipient(recipient)
                result.pruned += 1
                continue
            if await self.reliability.send_with_retry(recipient, body):
                result.delivered += 1
            else:
                result.failed += 1

        await self._reply(
            sender,
            f"✅ Broadcast complete: {result.delivered} delivered, "
            f"{result.failed} failed, {result.pruned} removed.",
        )
        logger.info(
            f"Admin broadcast done: {result.delivered} delivered, "
            f"{result.failed} failed, {result.pruned} pruned"
        )
        return result

    # ── Menu ───────────────────────────────────────────────────

    async def _dispatch(self, sender: str, choice: str):
        session = self.sessions.get(sender)
        if session is None or not session.menu_active:
            return

        action = self.menu.action(session.step, choice)
        if action is None:
            logger.debug(f"invalid choice {choice!r} from {sender} at {session.step.value}, leaving menu")
            session.close_menu()
            return

        if action.kind == "reply":
            await self._reply(sender, action.text)
            session.close_menu()
        elif action.kind in ("submenu", "back"):
            session.open_menu(action.target)
            await self._reply(sender, self.menu.render(action.target))
        elif action.kind == "bundle":
            await self.send_bundle(sender, action)
        else:
            logger.error(f"Unknown menu action kind: {action.kind}")
            session.close_menu()

    async def send_bundle(self, sender: str, action: MenuAction) -> bool:
        """Send a set of catalogue documents, one after another.

        Returns False without sending if a bundle is already in flight for
        this recipient.
        """
        session = self.sessions.upsert(sender)
        if session.busy:
            await self._reply(sender, self.menu.busy_notice())
            return False

        session.busy = True
        try:
            await self._reply(sender, self.menu.bundle_announcement(action.text, len(action.documents)))
            pacer = Pacer(self.bundle_interval)
            for name in action.documents:
                await pacer.wait()
                attachment = Attachment(
                    path=os.path.join(self.catalogue_dir, name),
                    filename=name,
                    mimetype="application/pdf",
                )
                try:
                    await self.transport.send(sender, OutgoingMessage.document(attachment))
                except TransportError as e:
                    logger.warning(f"Failed to send {name} to {sender}: {e}")
        finally:
            session.busy = False
        return True

    # ── Outbound ───────────────────────────────────────────────

    async def _reply(self, recipient_id: str, text: str) -> bool:
        try:
            await self.transport.send_text(recipient_id, text)
            return True
        except TransportError as e:
            logger.warning(f"Reply to {recipient_id} failed: {e}")
            return False
