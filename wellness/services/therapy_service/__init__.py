"""Therapy Service: chat sessions with an AI wellness assistant.

Messages are classified by the Safety Service first, stored encrypted
and audited. The Flask app lives in handler.py.
"""

from .config import TherapyConfig
from .rate_limiter import RateLimiter, RateLimitExceededError
from .service import (
    InvalidMessageError,
    MessageContext,
    SessionInactiveError,
    TherapyService,
)
from .session_store import (
    CrisisEventRecord,
    SessionNotFoundError,
    SessionStore,
    StoredMessage,
    TherapySession,
)

__all__ = [
    "TherapyConfig",
    "RateLimiter",
    "RateLimitExceededError",
    "InvalidMessageError",
    "MessageContext",
    "SessionInactiveError",
    "TherapyService",
    "CrisisEventRecord",
    "SessionNotFoundError",
    "SessionStore",
    "StoredMessage",
    "TherapySession",
]
