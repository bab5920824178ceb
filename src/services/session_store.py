from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from src.orchestrator.state import AuthContext, ChatSession

logger = logging.getLogger(__name__)

DEFAULT_SESSION_SEGMENT = "default"
MAX_SESSION_ID_LENGTH = 80


def resolve_session_key(session_id: Optional[str], auth: AuthContext, client_id: str) -> str:
    normalized = (session_id or "").strip()[:MAX_SESSION_ID_LENGTH]
    if auth.is_authenticated and auth.user_id:
        return f"user:{auth.user_id}:{normalized or DEFAULT_SESSION_SEGMENT}"
    fallback = (client_id or "unknown").strip() or "unknown"
    return f"anon:{normalized or fallback}"


class _KeyLock:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class SessionStore:
    """In-memory conversational memory with TTL eviction and per-key locks.

    Sessions live only as long as the process. Expired entries are removed by
    ``sweep_expired`` (called on every chat turn) and the store never holds more
    than ``max_sessions`` entries; the least recently written key is dropped
    first when the cap is reached.
    """

    def __init__(
        self,
        ttl_seconds: float = 6 * 60 * 60,
        max_messages: int = 20,
        max_sessions: int = 5000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_messages < 2:
            raise ValueError("max_messages must allow at least one exchange")
        self._ttl = ttl_seconds
        self._max_messages = max_messages
        self._max_sessions = max(1, max_sessions)
        self._clock = clock
        self._sessions: "OrderedDict[str, ChatSession]" = OrderedDict()
        self._key_locks: Dict[str, _KeyLock] = {}
        self._lock = threading.RLock()

    @property
    def max_messages(self) -> int:
        return self._max_messages

    def get(self, key: str) -> Optional[ChatSession]:
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                return None
            if self._is_expired(session, self._clock()):
                del self._sessions[key]
                return None
            return session.copy()

    def put(self, key: str, session: ChatSession) -> ChatSession:
        stored = session.copy()
        stored.history = stored.history[-self._max_messages:]
        stored.updated_at = self._clock()
        with self._lock:
            self._sessions[key] = stored
            self._sessions.move_to_end(key)
            while len(self._sessions) > self._max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info("Session store full; evicted %s", _redact(evicted))
        return stored.copy()

    def sweep_expired(self, now: Optional[float] = None) -> int:
        current = self._clock() if now is None else now
        with self._lock:
            expired = [key for key, session in self._sessions.items() if self._is_expired(session, current)]
            for key in expired:
                del self._sessions[key]
        if expired:
            logger.debug("Swept %d expired chat sessions", len(expired))
        return len(expired)

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        """Serialize read-modify-write of a single session key."""
        with self._lock:
            entry = self._key_locks.setdefault(key, _KeyLock())
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.holders -= 1
                if entry.holders == 0 and self._key_locks.get(key) is entry:
                    del self._key_locks[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _is_expired(self, session: ChatSession, now: float) -> bool:
        return session.updated_at + self._ttl <= now


def _redact(key: str) -> str:
    prefix, _, rest = key.partition(":")
    return f"{prefix}:{rest[:8]}..."
