"""
In-memory conversation state keyed by canonical phone.

Sessions are created lazily and every read checks the TTLs first;
``sweep_forever`` clears sessions nobody reads again. ``hold(key)`` takes the
per-key ``asyncio.Lock`` callers must hold around any read-modify-write
sequence for that key, and forgets it once no session or caller needs it.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal, NamedTuple

from loguru import logger

from chatledger.schemas.transactions import PendingTransaction

Role = Literal["user", "assistant"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ChatEntry:
    role: Role
    content: str
    timestamp: datetime


@dataclass
class ConversationSession:
    key: str
    user_id: int
    last_interaction_at: datetime
    messages: deque[ChatEntry] = field(default_factory=deque)
    pending: PendingTransaction | None = None
    language: str | None = None
    last_intent: str | None = None


class PendingLookup(NamedTuple):
    pending: PendingTransaction | None
    expired: bool


class InMemorySessionStore:
    """Single-instance session store. Construct once at startup and inject it."""

    def __init__(
        self,
        session_ttl: timedelta = timedelta(minutes=30),
        pending_ttl: timedelta = timedelta(minutes=5),
        message_limit: int = 20,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_ttl = session_ttl
        self.pending_ttl = pending_ttl
        self.message_limit = message_limit
        self._clock = clock
        self._sessions: dict[str, ConversationSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    def now(self) -> datetime:
        return self._clock()

    def lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self.lock(key)
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                if key not in self._sessions:
                    self._locks.pop(key, None)

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    def get(self, key: str) -> ConversationSession | None:
        session = self._sessions.get(key)
        if session is None:
            return None
        if self.now() - session.last_interaction_at > self.session_ttl:
            logger.debug("Session expired", key=key)
            self._evict(key)
            return None
        return session

    def get_or_create(self, key: str, user_id: int) -> ConversationSession:
        session = self.get(key)
        now = self.now()
        if session is None or session.user_id != user_id:
            session = ConversationSession(
                key=key,
                user_id=user_id,
                last_interaction_at=now,
                messages=deque(maxlen=self.message_limit),
            )
            self._sessions[key] = session
            logger.debug("Session created", key=key, user_id=user_id)
        else:
            session.last_interaction_at = now
        return session

    def append_message(self, key: str, role: Role, text: str) -> None:
        session = self.get(key)
        if session is None:
            raise KeyError(f"No active session for {key}")
        now = self.now()
        session.messages.append(ChatEntry(role=role, content=text, timestamp=now))
        session.last_interaction_at = now

    def set_pending(self, key: str, candidate: PendingTransaction) -> None:
        session = self.get(key)
        if session is None:
            raise KeyError(f"No active session for {key}")
        if session.pending is not None:
            logger.info("Replacing pending transaction", key=key)
        session.pending = candidate
        session.last_interaction_at = self.now()

    def lookup_pending(self, key: str) -> PendingLookup:
        """Return the live pending candidate, or report that it just expired."""
        session = self.get(key)
        if session is None or session.pending is None:
            return PendingLookup(None, False)
        if self.now() - session.pending.created_at > self.pending_ttl:
            logger.info("Pending transaction expired", key=key)
            session.pending = None
            return PendingLookup(None, True)
        return PendingLookup(session.pending, False)

    def get_pending(self, key: str) -> PendingTransaction | None:
        return self.lookup_pending(key).pending

    def clear_pending(self, key: str) -> None:
        session = self._sessions.get(key)
        if session is not None:
            session.pending = None

    def clear_session(self, key: str) -> None:
        self._evict(key)

    def set_language(self, key: str, language: str) -> None:
        session = self.get(key)
        if session is not None:
            session.language = language

    def set_last_intent(self, key: str, intent: str) -> None:
        session = self.get(key)
        if session is not None:
            session.last_intent = intent

    def format_history(self, key: str, limit: int = 6) -> str:
        session = self.get(key)
        if session is None:
            return ""
        entries = list(session.messages)[-limit:]
        lines = []
        for entry in entries:
            speaker = "User" if entry.role == "user" else "Assistant"
            lines.append(f"{speaker}: {entry.content}")
        return "\n".join(lines)

    def sweep(self) -> int:
        """Drop every expired session and every idle lock without one."""
        expired = [key for key in list(self._sessions) if self.get(key) is None]
        for key in list(self._locks):
            if key not in self._sessions and key not in self._holders:
                del self._locks[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict(self, key: str) -> None:
        self._sessions.pop(key, None)
        if key not in self._holders:
            self._locks.pop(key, None)


async def sweep_forever(store: InMemorySessionStore, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        removed = store.sweep()
        if removed:
            logger.info("Expired sessions swept", removed=removed, remaining=len(store))
