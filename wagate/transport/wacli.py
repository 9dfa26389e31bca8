"""wacli transport — WhatsApp connection via the wacli command line client.

`wacli sync --follow` keeps the WhatsApp WebSocket alive and writes new
messages into a local SQLite store. Inbound messages are picked up by a
separate DB poller; outbound messages go through `wacli send`.

Requires: wacli binary installed and authenticated (`wacli auth`).
"""

import asyncio
import logging
import os
import shutil
import sqlite3
import tempfile
from typing import Optional

from .base import (
    ConnectionState,
    EventCallback,
    InboundEvent,
    OutgoingMessage,
    StateCallback,
    Transport,
)
from ..errors import TransportError

logger = logging.getLogger("wagate.transport.wacli")

_POLL_INTERVAL = 2.0
_RESTART_DELAY = 5.0
_SEND_TIMEOUT = 30
_FILE_TIMEOUT = 60


def _resolve_wacli(configured: str) -> Optional[str]:
    """Find the wacli binary: configured path, PATH, then Go binary dirs."""
    if os.path.isfile(configured) and os.access(configured, os.X_OK):
        return configured

    found = shutil.which(configured)
    if found:
        return found

    candidates = [os.path.expanduser("~/.local/bin/wacli")]
    env_gopath = os.environ.get("GOPATH", "").strip()
    if env_gopath:
        candidates.append(os.path.join(env_gopath, "bin", "wacli"))
    candidates.append(os.path.expanduser("~/go/bin/wacli"))

    for candidate in candidates:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
    return None


class WacliTransport(Transport):
    """WhatsApp transport backed by a wacli subprocess."""

    def __init__(self, wacli_path: str = "wacli", store_path: Optional[str] = None, follow: bool = True):
        self._wacli_path = wacli_path
        self._follow = follow  # False: send-only, no sync process and no inbound poller
        self._wacli_db = store_path or os.path.expanduser("~/.wacli/wacli.db")
        self._process: Optional[asyncio.subprocess.Process] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._last_rowid: int = 0
        self._running = False
        self._connected = False
        self._send_lock = asyncio.Lock()
        self._on_event: Optional[EventCallback] = None
        self._on_state: Optional[StateCallback] = None

    @property
    def connected(self) -> bool:
        return self._connected

    # ── Lifecycle ──────────────────────────────────────────────

    async def start(self, on_event: EventCallback, on_state: Optional[StateCallback] = None) -> bool:
        """Start the sync process and the inbound poller, or just check the binary when send-only."""
        resolved = _resolve_wacli(self._wacli_path)
        if not resolved:
            logger.error(
                "wacli binary not found. Install: go install github.com/steipete/wacli@latest"
            )
            return False
        self._wacli_path = resolved
        self._on_event = on_event
        self._on_state = on_state
        self._running = True

        if not self._follow:
            # Each `wacli send` connects on its own; leave the store to a
            # running gateway, if any.
            await self._set_connected(True)
            logger.info("wacli transport started (send-only).")
            return True

        if not os.path.isfile(self._wacli_db):
            logger.error(f"wacli database not found at {self._wacli_db} — inbound messages will not work")

        ok = await self._start_sync()
        if not ok:
            self._running = False
            return False

        if os.path.isfile(self._wacli_db):
            self._poll_task = asyncio.create_task(self._poll_loop())

        logger.info("wacli transport started.")
        return True

    async def stop(self):
        """Stop the poller and the sync process."""
        self._running = False

        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None

        await self._stop_sync()
        await self._set_connected(False)
        logger.info("wacli transport stopped.")

    async def _set_connected(self, value: bool):
        if value == self._connected:
            return
        self._connected = value
        state = ConnectionState.CONNECTED if value else ConnectionState.DISCONNECTED
        logger.info(f"WhatsApp {state.value}")
        if self._on_state:
            try:
                await self._on_state(state)
            except Exception as e:
                logger.error(f"Connection state callback failed: {e}", exc_info=True)

    async def _start_sync(self) -> bool:
        """Start the long-running `wacli sync --follow` process."""
        await self._stop_sync()

        try:
            self._process = await asyncio.create_subprocess_exec(
                self._wacli_path, "sync", "--follow",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except Exception as e:
            logger.error(f"Failed to start wacli sync: {e}")
            self._process = None
            await self._set_connected(False)
            return False

        await self._set_connected(True)
        self._monitor_task = asyncio.create_task(self._monitor_loop())
        return True

    async def _stop_sync(self):
        """Stop the sync process (if any) without flagging a disconnect."""
        if self._monitor_task and not self._monitor_task.done():
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
        self._monitor_task = None

        if self._process:
            try:
                self._process.terminate()
                await asyncio.wait_for(self._process.wait(), timeout=5)
            except (asyncio.TimeoutError, ProcessLookupError):
                try:
                    self._process.kill()
                except ProcessLookupError:
                    pass
            self._process = None

    async def _monitor_loop(self):
        """Watch the sync process and restart it if it dies unexpectedly."""
        try:
            if self._process:
                await self._process.wait()
            if self._running:
                logger.warning("wacli process ended unexpectedly, restarting...")
                await self._set_connected(False)
                await asyncio.sleep(_RESTART_DELAY)
                if self._running and not await self._start_sync():
                    logger.error("Failed to restart wacli sync")
        except asyncio.CancelledError:
            pass

    # ── Inbound DB poller ─────────────────────────────────────

    def _read_new_rows(self) -> list[sqlite3.Row]:
        conn = sqlite3.connect(self._wacli_db, timeout=5)
        conn.row_factory = sqlite3.Row
        try:
            cur = conn.execute("""
                SELECT rowid, chat_jid, text, from_me, msg_id
                FROM messages
                WHERE rowid > ?
                  AND text IS NOT NULL AND text != ''
                  AND chat_jid != 'status@broadcast'
                ORDER BY rowid ASC
            """, (self._last_rowid,))
            return cur.fetchall()
        finally:
            conn.close()

    async def _poll_loop(self):
        """Poll the wacli SQLite store for new inbound messages."""
        try:
            conn = sqlite3.connect(self._wacli_db, timeout=5)
            cur = conn.execute("SELECT MAX(rowid) FROM messages")
            self._last_rowid = cur.fetchone()[0] or 0
            conn.close()
            logger.info(f"wacli poller started (last_rowid={self._last_rowid})")
        except Exception as e:
            logger.error(f"Failed to read wacli DB: {e}")
            return

        while self._running:
            try:
                await asyncio.sleep(_POLL_INTERVAL)
                if not self._running:
                    break

                rows = self._read_new_rows()
                if rows:
                    logger.debug(f"poll: {len(rows)} new row(s) after rowid {self._last_rowid}")

                for row in rows:
                    self._last_rowid = row["rowid"]
                    event = InboundEvent(
                        event_id=row["msg_id"] or f"row-{row['rowid']}",
                        sender_id=row["chat_jid"] or "",
                        text=row["text"] or "",
                        is_self_echo=bool(row["from_me"]),
                    )
                    if self._on_event:
                        await self._on_event(event)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in wacli poll loop: {e}", exc_info=True)
                await asyncio.sleep(5)

    # ── Outbound ───────────────────────────────────────────────

    async def send(self, recipient_id: str, message: OutgoingMessage):
        """Send one message via wacli.

        `wacli sync --follow` holds an exclusive lock on the store, so sync
        is paused for the duration of the send and resumed afterwards.
        """
        if not self._running:
            raise TransportError("transport not running")

        async with self._send_lock:
            was_syncing = self._process is not None
            if was_syncing:
                await self._stop_sync()
            try:
                if message.kind == "text":
                    await self._run_wacli(
                        ["send", "text", "--to", recipient_id, "--message", message.text],
                        timeout=_SEND_TIMEOUT,
                    )
                else:
                    await self._send_file(recipient_id, message)
            finally:
                if self._running and was_syncing:
                    if not await self._start_sync():
                        logger.error("Failed to restart wacli sync after sending message")

    async def _send_file(self, recipient_id: str, message: OutgoingMessage):
        attachment = message.attachment
        if attachment is None:
            raise TransportError(f"{message.kind} message without attachment")

        # wacli names the document after the file, so stage a copy when a
        # display name was requested.
        with tempfile.TemporaryDirectory() as tmpdir:
            path = attachment.path
            if attachment.filename and os.path.basename(path) != attachment.filename:
                path = os.path.join(tmpdir, os.path.basename(attachment.filename))
                shutil.copyfile(attachment.path, path)

            cmd = ["send", "file", "--to", recipient_id, "--file", path]
            if attachment.caption:
                cmd.extend(["--caption", attachment.caption])
            await self._run_wacli(cmd, timeout=_FILE_TIMEOUT)
        logger.debug(f"sent {message.kind} to {recipient_id}: {attachment.path}")

    async def _run_wacli(self, args: list[str], timeout: float):
        try:
            proc = await asyncio.create_subprocess_exec(
                self._wacli_path, *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            raise TransportError(f"wacli {args[0]} {args[1]} timed out")
        except OSError as e:
            raise TransportError(f"wacli could not be started: {e}")
        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace") if stderr else ""
            raise TransportError(f"wacli {args[0]} {args[1]} failed (rc={proc.returncode}): {err[:200]}")

    # ── Liveness ───────────────────────────────────────────────

    async def probe(self, recipient_id: str) -> bool:
        """Check the recipient against the chats wacli has synced.

        wacli has no on-network lookup, so a JID counts as reachable when
        the local store still knows a chat with it.
        """
        if not self._running:
            raise TransportError("transport not running")
        try:
            conn = sqlite3.connect(f"file:{self._wacli_db}?mode=ro", uri=True, timeout=5)
            try:
                cur = conn.execute(
                    "SELECT 1 FROM messages WHERE chat_jid = ? LIMIT 1",
                    (recipient_id,),
                )
                return cur.fetchone() is not None
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise TransportError(f"wacli store lookup failed: {e}")
