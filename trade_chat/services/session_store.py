"""In-memory conversation sessions.

A session holds at most one pending confirmation. Nothing here is durable:
losing a session (restart, eviction) only loses an unconfirmed trade.
"""
import threading
import time
from typing import Callable, Dict, Optional, Tuple
from trade_chat.agents.schemas import ConfirmationState, PendingConfirmation
from trade_chat.core.config import get_settings
from trade_chat.core.logging import get_logger

logger = get_logger(__name__)


class SessionOwnerMismatch(Exception):
    """Session id is already bound to a different owner."""
    pass


class SessionState:
    """Confirmation state for one conversation session."""

    def __init__(self, session_id: str, owner_id: str, last_seen: float):
        self.session_id = session_id
        self.owner_id = owner_id
        self.state = ConfirmationState.IDLE
        self.pending: Optional[PendingConfirmation] = None
        self.pin_attempts = 0
        self.last_seen = last_seen
        # Serialises turns of this session
        self.lock = threading.Lock()

    def set_pending(self, pending: PendingConfirmation, pin_attempts: int = 0) -> None:
        self.pending = pending
        self.state = ConfirmationState.AWAITING_PIN
        self.pin_attempts = pin_attempts

    def clear(self) -> None:
        self.pending = None
        self.state = ConfirmationState.IDLE
        self.pin_attempts = 0

    def pending_echo(self) -> Optional[dict]:
        """Serializable copy of the pending confirmation for stateless callers."""
        if self.pending is None:
            return None
        return self.pending.model_dump(mode="json")


class SessionStore:
    """Session states keyed by session id, each bound to one owner."""

    def __init__(self, idle_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.idle_seconds = idle_seconds or get_settings().session_idle_seconds
        self._clock = clock
        self._sessions: Dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def get_or_create(self, session_id: str, owner_id: str) -> Tuple[SessionState, bool]:
        """Return (state, created). Raises SessionOwnerMismatch for a foreign session."""
        now = self._clock()
        with self._lock:
            self._evict_idle_locked(now)
            state = self._sessions.get(session_id)
            if state is not None:
                if state.owner_id != owner_id:
                    raise SessionOwnerMismatch(session_id)
                state.last_seen = now
                return state, False
            state = SessionState(session_id, owner_id, now)
            self._sessions[session_id] = state
            return state, True

    def get(self, session_id: str) -> Optional[SessionState]:
        with self._lock:
            return self._sessions.get(session_id)

    def end_session(
        self,
        session_id: str,
        owner_id: str,
        on_discard: Optional[Callable[[PendingConfirmation], None]] = None,
    ) -> bool:
        """Drop a session. Any pending confirmation is discarded unexecuted.

        ``on_discard`` is called with that confirmation while the session lock
        is held.
        """
        with self._lock:
            state = self._sessions.get(session_id)
            if state is None:
                return False
            if state.owner_id != owner_id:
                raise SessionOwnerMismatch(session_id)
            del self._sessions[session_id]

        with state.lock:
            had_pending = state.pending is not None
            try:
                if had_pending and on_discard is not None:
                    on_discard(state.pending)
            finally:
                state.clear()
        logger.info(
            "Session ended (pending trade discarded: %s)", had_pending,
            extra={"session_id": session_id},
        )
        return True

    def evict_idle(self) -> int:
        with self._lock:
            return self._evict_idle_locked(self._clock())

    def _evict_idle_locked(self, now: float) -> int:
        expired = [
            sid for sid, s in self._sessions.items()
            if now - s.last_seen > self.idle_seconds and not s.lock.locked()
        ]
        for sid in expired:
            self._sessions.pop(sid).clear()
        if expired:
            logger.debug("Evicted %d idle sessions", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
