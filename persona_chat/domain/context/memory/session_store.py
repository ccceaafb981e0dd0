from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
import asyncio
import structlog

from persona_chat.domain.models.chat_state import Session, Turn, utcnow

logger = structlog.get_logger(__name__)


class SessionStore:
    """In-memory session history with per-session locking and idle TTL"""

    def __init__(self, ttl_seconds: float = 3600, clock: Callable[[], datetime] = utcnow):
        self.sessions: Dict[str, Session] = {}
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._session_locks: Dict[str, asyncio.Lock] = {}
        # Holders plus waiters per session lock
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Own a session for the duration of one request.

        The lock object lives only while someone holds or waits on it, so
        it is dropped by the last user rather than by eviction.
        """

        lock = self._session_locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if not self._lock_users[session_id]:
                del self._lock_users[session_id]
                del self._session_locks[session_id]

    def is_busy(self, session_id: str) -> bool:
        """True while a request holds or waits for the session"""

        return session_id in self._lock_users

    async def get_or_create(self, session_id: str, owned: bool = False) -> Session:
        """Return a snapshot of the session, creating it if missing or expired.

        ``owned`` is set by the caller holding ``session_lock``; an expired
        session is then reset even though it counts as busy.
        """

        async with self._lock:
            session = self.sessions.get(session_id)
            if session is not None and self._is_expired(session) and (owned or not self.is_busy(session_id)):
                logger.info("Session expired", session_id=session_id)
                session = None

            if session is None:
                now = self._clock()
                session = Session(id=session_id, created_at=now, last_active=now)
                self.sessions[session_id] = session
                logger.info("Session created", session_id=session_id)

            return self._snapshot(session)

    async def append(self, session_id: str, turn: Turn) -> None:
        """Append a single turn"""

        await self.append_many(session_id, [turn])

    async def append_many(self, session_id: str, turns: Sequence[Turn]) -> None:
        """Append the turns of one request, all or nothing"""

        async with self._lock:
            session = self.sessions.get(session_id)
            if session is None:
                now = self._clock()
                session = Session(id=session_id, created_at=now, last_active=now)
                self.sessions[session_id] = session

            session.turns.extend(turns)
            session.last_active = self._clock()

    async def history(self, session_id: str, max_turns: Optional[int] = None) -> Tuple[Turn, ...]:
        """Ordered turns of a session, truncated from the oldest end"""

        if max_turns is not None and max_turns < 0:
            raise ValueError("max_turns must be >= 0")

        async with self._lock:
            session = self.sessions.get(session_id)
            if session is None or max_turns == 0:
                return ()
            turns = session.turns if max_turns is None else session.turns[-max_turns:]
            return tuple(turns)

    async def close(self, session_id: str) -> bool:
        """Explicitly evict a session"""

        async with self._lock:
            removed = self.sessions.pop(session_id, None) is not None

        if removed:
            logger.info("Session closed", session_id=session_id)
        return removed

    async def evict_expired(self) -> List[str]:
        """Evict idle sessions and return their ids"""

        async with self._lock:
            expired = [
                session_id for session_id, session in self.sessions.items()
                if self._is_expired(session) and not self.is_busy(session_id)
            ]

            for session_id in expired:
                del self.sessions[session_id]

        if expired:
            logger.info("Evicted idle sessions", count=len(expired))
        return expired

    async def run_eviction(self, interval_seconds: float = 60) -> None:
        """Periodically evict idle sessions until cancelled"""

        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.evict_expired()
            except Exception as e:
                logger.exception("Session eviction failed", error=str(e))

    async def session_ids(self) -> List[str]:
        async with self._lock:
            return list(self.sessions.keys())

    def _is_expired(self, session: Session) -> bool:
        return self._clock() - session.last_active > self.ttl

    @staticmethod
    def _snapshot(session: Session) -> Session:
        return session.model_copy(update={"turns": list(session.turns)})
