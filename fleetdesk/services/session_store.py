"""
Durable conversation sessions, one per canonical address.

Read-modify-write for an address is serialized through ``transaction()``,
which holds a per-address ``asyncio.Lock`` from load until save.
"""
import asyncio
import weakref
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional, Sequence

from fleetdesk.core.logging import get_logger, mask_address
from fleetdesk.models.session import Session, SessionPhase, Turn
from fleetdesk.services.document_store import DocumentStore

logger = get_logger(__name__)

SESSIONS = "conversation_sessions"


class SessionStore:
    """Load, expire, trim and persist sessions."""

    def __init__(
        self,
        store: DocumentStore,
        reasoning_idle: timedelta = timedelta(minutes=5),
        registration_idle: timedelta = timedelta(minutes=60),
        max_turns: int = 20,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.reasoning_idle = reasoning_idle
        self.registration_idle = registration_idle
        self.max_turns = max_turns
        self._clock = clock or datetime.utcnow
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def now(self) -> datetime:
        return self._clock()

    def idle_window(self, session: Session) -> timedelta:
        """Wizards (registration included) get the long window; free conversation the short one."""
        if session.active_flow is not None:
            return self.registration_idle
        return self.reasoning_idle

    def lock_for(self, canonical: str) -> asyncio.Lock:
        lock = self._locks.get(canonical)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[canonical] = lock
        return lock

    @asynccontextmanager
    async def transaction(self, canonical: str) -> AsyncIterator[Session]:
        """Hold the address lock for one load/modify/save cycle."""
        lock = self.lock_for(canonical)
        async with lock:
            yield await self.load(canonical)

    async def load(self, canonical: str) -> Session:
        """
        Return the stored session, or a fresh IDLE one.

        An expired session comes back reset to IDLE with no flow, keeping
        language and summary, and ``was_expired`` set so the caller can tell
        the user.
        """
        record = await self.store.get(SESSIONS, canonical)
        if record is None:
            return self._fresh(canonical)

        session = Session.from_record(record)
        if self.is_expired(session):
            logger.info("Session expired, resetting", phone=mask_address(canonical),
                        active_flow=session.active_flow, phase=session.phase)
            expired_flow = session.active_flow
            reset = self._fresh(canonical)
            reset.user_id = session.user_id
            reset.tenant_id = session.tenant_id
            reset.language = session.language
            reset.summary = session.summary
            reset.created_at = session.created_at
            reset.was_expired = expired_flow is not None
            return reset
        return session

    def is_expired(self, session: Session) -> bool:
        return self.now() - session.last_activity_at > self.idle_window(session)

    async def save(self, session: Session, turns: Sequence[Turn] = ()) -> Session:
        """Append ``turns``, stamp activity and expiry, enforce the history cap, persist."""
        now = self.now()
        session.turn_history.extend(turns)
        if len(session.turn_history) > self.max_turns:
            session.turn_history = session.turn_history[-self.max_turns:]
        session.last_activity_at = now
        session.expires_at = now + self.idle_window(session)
        if session.phase == SessionPhase.IDLE:
            session.active_flow = None

        await self.store.set(SESSIONS, session.phone_number, session.to_record())
        return session

    async def delete(self, canonical: str) -> None:
        await self.store.delete(SESSIONS, canonical)

    def _fresh(self, canonical: str) -> Session:
        now = self.now()
        return Session(
            phone_number=canonical,
            created_at=now,
            last_activity_at=now,
            expires_at=now + self.reasoning_idle,
        )
