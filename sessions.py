"""
In-memory session tracking for the session server.

Sessions live for the lifetime of the process: there is no logout and no
expiry. A single SessionStore is created by the server and shared by every
worker thread.
"""

import logging
import threading
import uuid
from typing import Dict, Iterable, NamedTuple, Optional, Tuple

SESSION_COOKIE_NAME = "session-id"

logger = logging.getLogger("SessionServer.sessions")


class Session(NamedTuple):
    session_id: str
    name: str


class SessionStore:
    """
    Thread-safe map from session identifier to display name.

    Naming a new session reads the current size of the store, so the size
    read and the insert happen under the same lock.
    """

    def __init__(self):
        self._sessions: Dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id) -> bool:
        with self._lock:
            return session_id in self._sessions

    def resolve(self, session_id: Optional[str]) -> Optional[Session]:
        """Return the tracked session for session_id, or None."""
        if session_id is None:
            return None
        with self._lock:
            name = self._sessions.get(session_id)
        if name is None:
            return None
        return Session(session_id, name)

    def create_session(self) -> Session:
        with self._lock:
            return self._create_locked()

    def get_or_create(self, session_id: Optional[str]) -> Tuple[Session, bool]:
        """
        Resolve session_id, minting a new session when it is absent or unknown.

        Args:
            session_id: Identifier taken from the request cookie, may be None

        Returns:
            Tuple of (session, created)
        """
        with self._lock:
            if session_id is not None and session_id in self._sessions:
                return Session(session_id, self._sessions[session_id]), False
            return self._create_locked(), True

    def _create_locked(self) -> Session:
        session_id = str(uuid.uuid4())
        while session_id in self._sessions:
            session_id = str(uuid.uuid4())
        name = f"User_{len(self._sessions)}"
        self._sessions[session_id] = name
        logger.info(f"Created session {session_id} for {name}")
        return Session(session_id, name)


def get_session_id(header_lines: Iterable[str]) -> Optional[str]:
    """
    Extract the session identifier from the request's Cookie headers.

    Fragments that are not a single key=value pair are skipped. When the
    cookie appears more than once, the last occurrence wins.

    Args:
        header_lines: Raw header lines of the request

    Returns:
        Session identifier or None if no session cookie was sent
    """
    session_id = None
    for line in header_lines:
        if not line.startswith("Cookie:"):
            continue
        cookie_line = line[len("Cookie:"):].strip()
        for cookie in cookie_line.split(";"):
            parts = cookie.split("=")
            if len(parts) == 2 and parts[0].strip() == SESSION_COOKIE_NAME:
                session_id = parts[1].strip()
    return session_id
