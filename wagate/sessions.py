"""Per-recipient menu sessions (in memory, process lifetime)."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Step(str, Enum):
    NONE = "none"
    MAIN_MENU = "main_menu"
    PRODUCTS = "products"


@dataclass
class Session:
    step: Step = Step.NONE
    menu_active: bool = False
    busy: bool = False  # a multi-document send is in flight

    def open_menu(self, step: Step = Step.MAIN_MENU):
        self.step = step
        self.menu_active = True

    def close_menu(self):
        self.step = Step.NONE
        self.menu_active = False


class SessionStore:
    """Owns every Session; callers never see the underlying dict."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, recipient_id: str) -> Optional[Session]:
        return self._sessions.get(recipient_id)

    def upsert(self, recipient_id: str) -> Session:
        """Return the session for recipient_id, creating it on first use."""
        session = self._sessions.get(recipient_id)
        if session is None:
            session = Session()
            self._sessions[recipient_id] = session
        return session

    def reset(self, recipient_id: str) -> Session:
        """(Re)start the menu flow at the main menu."""
        session = self.upsert(recipient_id)
        session.open_menu(Step.MAIN_MENU)
        return session

    def lock(self, recipient_id: str) -> asyncio.Lock:
        """Lock serializing event handling for one recipient."""
        lock = self._locks.get(recipient_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[recipient_id] = lock
        return lock

    def remove(self, recipient_id: str):
        self._sessions.pop(recipient_id, None)
        lock = self._locks.get(recipient_id)
        if lock is not None and not lock.locked():
            del self._locks[recipient_id]
