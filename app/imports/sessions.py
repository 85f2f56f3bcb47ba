"""In-memory storage for import sessions.

A session holds the parsed upload between the preview call and the
execute or cancel call. Sessions are consumed at most once and expire
after a TTL; expired entries are reaped on every store access.
For multi-instance deployments this should move to a shared store
such as Redis.
"""

import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.config import get_settings
from app.imports.errors import SessionNotFoundError
from app.imports.parsers import ParsedSheet

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class ImportSession:
    """A parsed upload waiting for the operator's mapping.

    Attributes:
        session_id: Opaque, unguessable handle.
        sheet: The parsed file.
        owner_id: User who uploaded the file.
        created_at: Creation time.
        expires_at: Time after which the session is gone.
    """

    session_id: str
    sheet: ParsedSheet
    owner_id: str | None
    created_at: datetime
    expires_at: datetime


class ImportSessionStore:
    """Keyed store of import sessions with create/consume/discard semantics."""

    def __init__(
        self,
        ttl: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the store.

        Args:
            ttl: Lifetime of a session that is never consumed or discarded.
            clock: Source of the current time.
        """
        self.ttl = ttl
        self._clock = clock
        self._sessions: dict[str, ImportSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            self._cleanup_expired()
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            self._cleanup_expired()
            return session_id in self._sessions

    def create(self, sheet: ParsedSheet, owner_id: str | None = None) -> ImportSession:
        """Store a parsed upload under a fresh identifier.

        Args:
            sheet: The parsed file.
            owner_id: User who uploaded it.

        Returns:
            ImportSession: The new session.
        """
        now = self._clock()
        session = ImportSession(
            session_id=secrets.token_urlsafe(24),
            sheet=sheet,
            owner_id=owner_id,
            created_at=now,
            expires_at=now + self.ttl,
        )
        with self._lock:
            self._cleanup_expired()
            self._sessions[session.session_id] = session
        logger.info(
            f"Import session {session.session_id} created "
            f"({sheet.total_rows} rows, {len(sheet.headers)} columns)"
        )
        return session

    def consume(self, session_id: str, owner_id: str | None = None) -> ParsedSheet:
        """Retrieve a session's upload and invalidate the session.

        Args:
            session_id: Session handle.
            owner_id: User asking; must match the uploader when both are set.

        Returns:
            ParsedSheet: The parsed file.

        Raises:
            SessionNotFoundError: If the session is unknown, consumed,
                expired or owned by someone else.
        """
        with self._lock:
            self._cleanup_expired()
            session = self._sessions.get(session_id)
            if session is None or not self._owned_by(session, owner_id):
                raise SessionNotFoundError()
            del self._sessions[session_id]
        logger.info(f"Import session {session_id} consumed")
        return session.sheet

    def discard(self, session_id: str | None, owner_id: str | None = None) -> bool:
        """Drop a session if it exists.

        Safe to call on unknown, consumed or already discarded sessions.

        Args:
            session_id: Session handle.
            owner_id: User asking; sessions of other users are left alone.

        Returns:
            bool: Whether a session was removed.
        """
        if not session_id:
            return False
        with self._lock:
            self._cleanup_expired()
            session = self._sessions.get(session_id)
            if session is None or not self._owned_by(session, owner_id):
                return False
            del self._sessions[session_id]
        logger.info(f"Import session {session_id} discarded")
        return True

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    @staticmethod
    def _owned_by(session: ImportSession, owner_id: str | None) -> bool:
        return owner_id is None or session.owner_id is None or session.owner_id == owner_id

    def _cleanup_expired(self) -> None:
        """Remove expired sessions. Caller must hold the lock."""
        now = self._clock()
        expired = [sid for sid, s in self._sessions.items() if now >= s.expires_at]
        for sid in expired:
            del self._sessions[sid]
            logger.info(f"Import session {sid} expired")


# Singleton instance
_session_store: ImportSessionStore | None = None


def get_session_store() -> ImportSessionStore:
    """Get the process-wide import session store.

    Returns:
        ImportSessionStore: The store.
    """
    global _session_store
    if _session_store is None:
        settings = get_settings()
        _session_store = ImportSessionStore(
            ttl=timedelta(minutes=settings.import_session_ttl_minutes)
        )
    return _session_store
