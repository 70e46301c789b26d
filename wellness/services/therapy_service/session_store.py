"""In-memory store for therapy sessions, encrypted messages and crisis events.

Message content is only ever held as EncryptedPayload; the store never
sees plaintext.
"""
import dataclasses
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from wellness.shared.models import CrisisLevel
from wellness.shared.security import EncryptedPayload
from wellness.shared.utils import hash_pii

logger = logging.getLogger(__name__)


class SessionNotFoundError(Exception):
    """No session exists with the given id."""
    pass


@dataclass
class TherapySession:
    """One conversation between a user (or anonymous visitor) and the assistant."""
    session_id: str
    user_id: Optional[str] = None
    is_active: bool = True
    started_at: datetime = field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=datetime.utcnow)
    mood_start: Optional[str] = None
    mood_end: Optional[str] = None
    techniques: List[str] = field(default_factory=list)
    topics: List[str] = field(default_factory=list)
    crisis_detected: bool = False
    crisis_level: Optional[CrisisLevel] = None

    @property
    def anonymous(self) -> bool:
        return self.user_id is None


@dataclass(frozen=True)
class StoredMessage:
    """Encrypted message at rest."""
    message_id: str
    session_id: str
    role: str  # "user" or "assistant"
    payload: EncryptedPayload
    timestamp: datetime = field(default_factory=datetime.utcnow)
    flagged: bool = False
    flag_reason: Optional[str] = None


@dataclass(frozen=True)
class CrisisEventRecord:
    """CRITICAL classification kept for human follow-up."""
    event_id: str
    session_id: str
    user_id: Optional[str]
    level: CrisisLevel
    triggers: List[str]
    contacts_provided: List[str]
    resources_shown: bool = True
    user_acknowledged: bool = False
    follow_up_needed: bool = True
    created_at: datetime = field(default_factory=datetime.utcnow)


_UPDATABLE_FIELDS = frozenset({
    "is_active",
    "ended_at",
    "mood_end",
    "techniques",
    "topics",
    "crisis_detected",
    "crisis_level",
})


def _copy(session: TherapySession) -> TherapySession:
    return dataclasses.replace(
        session,
        techniques=list(session.techniques),
        topics=list(session.topics),
    )


class SessionStore:
    """Thread-safe, process-local session storage.

    Callers always receive copies; changes go through update_session().
    """

    def __init__(self):
        self._sessions: Dict[str, TherapySession] = {}
        self._messages: Dict[str, List[StoredMessage]] = {}
        self._crisis_events: List[CrisisEventRecord] = []
        self._lock = threading.Lock()

        logger.info("SESSION_STORE_INITIALIZED", extra={"backend": "memory"})

    def create_session(
        self,
        user_id: Optional[str] = None,
        mood_start: Optional[str] = None,
    ) -> TherapySession:
        session = TherapySession(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            mood_start=mood_start,
        )

        with self._lock:
            self._sessions[session.session_id] = session
            self._messages[session.session_id] = []

        logger.info(
            "SESSION_CREATED",
            extra={
                "session_id_hash": hash_pii(session.session_id),
                "anonymous": session.anonymous,
            }
        )
        return _copy(session)

    def get_session(self, session_id: str) -> TherapySession:
        """Raises SessionNotFoundError for unknown ids."""
        with self._lock:
            return _copy(self._require(session_id))

    def update_session(self, session_id: str, **changes: Any) -> TherapySession:
        """Apply field changes and bump updated_at.

        Raises:
            SessionNotFoundError: Unknown session
            ValueError: A field that cannot be changed
        """
        invalid = set(changes) - _UPDATABLE_FIELDS
        if invalid:
            raise ValueError(f"Cannot update fields: {sorted(invalid)}")

        with self._lock:
            session = self._require(session_id)
            for name, value in changes.items():
                setattr(session, name, value)
            session.updated_at = datetime.utcnow()
            return _copy(session)

    def add_message(
        self,
        session_id: str,
        role: str,
        payload: EncryptedPayload,
        flagged: bool = False,
        flag_reason: Optional[str] = None,
    ) -> StoredMessage:
        message = StoredMessage(
            message_id=f"msg_{uuid.uuid4().hex[:16]}",
            session_id=session_id,
            role=role,
            payload=payload,
            flagged=flagged,
            flag_reason=flag_reason,
        )

        with self._lock:
            self._require(session_id)
            self._messages[session_id].append(message)

        return message

    def messages(self, session_id: str, limit: Optional[int] = None) -> List[StoredMessage]:
        """Oldest first, at most `limit` messages."""
        with self._lock:
            self._require(session_id)
            stored = list(self._messages[session_id])
        return stored if limit is None else stored[:limit]

    def recent_messages(self, session_id: str, limit: int = 10) -> List[StoredMessage]:
        """Newest first, at most `limit` messages."""
        with self._lock:
            self._require(session_id)
            stored = self._messages[session_id][-limit:] if limit > 0 else []
        return list(reversed(stored))

    def record_crisis_event(
        self,
        session_id: str,
        level: CrisisLevel,
        triggers: List[str],
        contacts_provided: List[str],
    ) -> CrisisEventRecord:
        with self._lock:
            session = self._require(session_id)
            event = CrisisEventRecord(
                event_id=f"crisis_{uuid.uuid4().hex[:16]}",
                session_id=session_id,
                user_id=session.user_id,
                level=level,
                triggers=list(triggers),
                contacts_provided=list(contacts_provided),
            )
            self._crisis_events.append(event)

        logger.critical(
            "CRISIS_EVENT_RECORDED",
            extra={
                "event_id": event.event_id,
                "session_id_hash": hash_pii(session_id),
                "level": level.value,
                "trigger_count": len(event.triggers),
            }
        )
        return event

    def crisis_events(self, session_id: Optional[str] = None) -> List[CrisisEventRecord]:
        with self._lock:
            events = list(self._crisis_events)
        if session_id is not None:
            events = [e for e in events if e.session_id == session_id]
        return events

    def ping(self) -> bool:
        """Health probe; the in-memory backend is always reachable."""
        with self._lock:
            return True

    def _require(self, session_id: str) -> TherapySession:
        # Caller holds self._lock
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session
