"""
Registry of open review sessions.

Sessions live in process memory, so the API runs as a single worker.
A session expires after settings.review_session_ttl_minutes without
activity: storing or retrieving it pushes the expiry forward.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
import structlog

from config import settings
from services.review_service import ReviewSession

logger = structlog.get_logger(__name__)


@dataclass
class SessionEntry:
    session: ReviewSession
    ttl: timedelta
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def extend(self, now: datetime) -> None:
        self.expires_at = now + self.ttl


_sessions: dict[str, SessionEntry] = {}


def store_session(session_id: str, session: ReviewSession, ttl_minutes: Optional[int] = None) -> str:
    """Register (or re-register) a session. Returns its id."""
    now = datetime.now()
    ttl = timedelta(minutes=ttl_minutes or settings.review_session_ttl_minutes)
    _sessions[session_id] = SessionEntry(session=session, ttl=ttl, expires_at=now + ttl)
    _evict_expired(now)
    return session_id


def retrieve_session(session_id: str) -> Optional[ReviewSession]:
    """Open session by id, or None if unknown or expired."""
    entry = _sessions.get(session_id)
    if entry is None:
        return None

    now = datetime.now()
    if entry.expired(now):
        _drop(session_id)
        return None

    entry.extend(now)
    return entry.session


def delete_session(session_id: str) -> bool:
    """Forget a session. Returns False if it was not open."""
    return _sessions.pop(session_id, None) is not None


def open_session_count() -> int:
    _evict_expired(datetime.now())
    return len(_sessions)


def clear_sessions() -> None:
    _sessions.clear()


def _evict_expired(now: datetime) -> None:
    for session_id in [sid for sid, entry in _sessions.items() if entry.expired(now)]:
        _drop(session_id)


def _drop(session_id: str) -> None:
    del _sessions[session_id]
    logger.info("review_session_expired", session_id=session_id)
