# agents/session.py

import copy
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


@dataclass
class Session:
    session_id: str
    user_id: str
    request_history: List[Any] = field(default_factory=list)
    context: Dict[str, str] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    def touch(self, now: Optional[float] = None) -> None:
        self.last_activity = time.time() if now is None else now


class SessionStore:
    """
    Lock-guarded session table with optional idle expiry.

    ttl is in seconds; None or 0 keeps sessions until end() is called.
    Expired sessions are swept lazily on every access.
    """

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time.time):
        if ttl is not None and ttl < 0:
            raise ValueError(f"Session ttl must be zero or positive, got {ttl}")
        self.ttl = ttl or None
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def _sweep(self) -> List[str]:
        # caller holds the lock
        if self.ttl is None:
            return []
        cutoff = self._clock() - self.ttl
        expired = [sid for sid, s in self._sessions.items() if s.last_activity < cutoff]
        for sid in expired:
            del self._sessions[sid]
        return expired

    def sweep_expired(self) -> List[str]:
        with self._lock:
            return self._sweep()

    def create(self, session_id: str, user_id: str) -> Session:
        now = self._clock()
        with self._lock:
            self._sweep()
            session = Session(session_id=session_id, user_id=user_id, created_at=now, last_activity=now)
            self._sessions[session_id] = session
            return copy.deepcopy(session)

    def end(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            self._sweep()
            session = self._sessions.get(session_id)
            return copy.deepcopy(session) if session else None

    def record_request(self, session_id: str, request: Any) -> bool:
        with self._lock:
            self._sweep()
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.request_history.append(request)
            session.touch(self._clock())
            return True

    def update_context(self, session_id: str, key: str, value: str) -> bool:
        with self._lock:
            self._sweep()
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.context[key] = value
            session.touch(self._clock())
            return True

    def __len__(self) -> int:
        with self._lock:
            self._sweep()
            return len(self._sessions)
