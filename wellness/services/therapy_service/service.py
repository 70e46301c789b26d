"""Therapy Service - orchestrates sessions and the message pipeline.

Message pipeline:
    1. Rate limit per session
    2. Session must exist and be active
    3. Classify the message. CRITICAL bypasses the AI entirely: a crisis
       event is recorded and published, the session is flagged and static
       emergency resources are returned. The message itself is not stored.
    4. Store the user message encrypted
    5. Build the prompt (crisis prompt for HIGH/MEDIUM, technique otherwise)
    6. Generate the AI reply
    7. Re-check the AI reply; crisis language in it is replaced by a
       flagged fallback
    8. Store the AI reply encrypted, update session metadata
    9. Suggest professional help on HIGH/MEDIUM or a deteriorating pattern
   10. Audit
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from wellness.shared.models import CrisisAssessment, CrisisLevel
from wellness.shared.security import (
    DataEncryption,
    EncryptionError,
    SessionEncryption,
)
from wellness.shared.utils import hash_pii, hash_text_for_audit
from wellness.services.audit_service import AuditAction, SecureAuditLog
from wellness.services.llm_service import (
    BaseLLM,
    LLMUnavailableError,
    AsyncRunner,
    SafetyBlockedError,
    Technique,
    get_async_runner,
    get_prompt_system,
)
from wellness.services.safety_service import CrisisDetector, CrisisEventPublisher
from .config import TherapyConfig
from .rate_limiter import RateLimiter, RateLimitExceededError
from .session_store import SessionStore, StoredMessage, TherapySession

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"
HISTORY_DECRYPT_FALLBACK = "[Message could not be decrypted]"
SESSION_DECRYPT_FALLBACK = "[Unable to decrypt message]"
AI_REPLY_FLAG_REASON = "AI response contained crisis content"

# Static reply when the user's message is CRITICAL
CRISIS_REPLIES: Dict[str, str] = {
    "pt-BR": (
        "Por sua segurança, detectamos sinais que requerem atenção profissional imediata. "
        "Por favor, entre em contato com um dos serviços de emergência: CVV (188), "
        "SAMU (192) ou procure o CAPS mais próximo. Sua vida tem valor e há pessoas "
        "prontas para ajudar."
    ),
    "en-US": (
        "For your safety, we detected signs that need immediate professional attention. "
        "Please contact one of the emergency services: the 988 Suicide & Crisis Lifeline, "
        "text HOME to 741741, or call 911. Your life has value and there are people "
        "ready to help."
    ),
}

# Replaces an AI reply that itself contained crisis language
FALLBACK_REPLIES: Dict[str, str] = {
    "pt-BR": (
        "Percebo que você está passando por um momento difícil. É importante lembrar "
        "que você não está sozinho. Existem pessoas e recursos disponíveis para apoiá-lo. "
        "Como posso ajudar você a encontrar o suporte necessário neste momento?"
    ),
    "en-US": (
        "I can tell you're going through a difficult time. It's important to remember "
        "that you're not alone. There are people and resources available to support you. "
        "How can I help you find the support you need right now?"
    ),
}

# Returned when the AI provider refuses to answer
SAFETY_BLOCK_REPLIES: Dict[str, str] = {
    "pt-BR": (
        "Desculpe, não posso responder a essa mensagem por razões de segurança. "
        "Se você está passando por dificuldades, considere buscar ajuda profissional."
    ),
    "en-US": (
        "Sorry, I can't respond to that message for safety reasons. "
        "If you're going through a hard time, please consider seeking professional help."
    ),
}


class SessionInactiveError(Exception):
    """Session has ended or was deleted."""
    pass


class InvalidMessageError(ValueError):
    """Message or its context failed validation; nothing was stored."""
    pass


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() + "Z" if value else None


_CONTEXT_FIELDS = {
    "mood": "mood",
    "preferredTechnique": "preferred_technique",
    "detectedIssue": "detected_issue",
}


@dataclass(frozen=True)
class MessageContext:
    """Optional client hints sent with a message."""
    mood: Optional[str] = None
    preferred_technique: Optional[str] = None
    detected_issue: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MessageContext":
        """Build from the request's "context" object.

        Raises:
            InvalidMessageError: context is not an object or a hint is not a string
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise InvalidMessageError("Context must be an object")

        values = {}
        for key, name in _CONTEXT_FIELDS.items():
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise InvalidMessageError(f"Context field {key} must be a string")
            values[name] = value or None

        return cls(**values)


class TherapyService:
    """Session lifecycle and message processing.

    Session encryption helpers and crisis detectors live in per-process
    registries keyed by session id. A SessionEncryption key is tied to the
    instance that created it, so messages written before a restart can no
    longer be decrypted and read back as fallback text. Ending or deleting
    a session destroys its key and drops its detector and rate-limit
    window; its messages then read back as fallback text too.

    AI calls run on one long-lived event loop (AsyncRunner) so pooled
    client connections stay valid across requests.
    """

    def __init__(
        self,
        store: SessionStore,
        encryption: DataEncryption,
        audit_log: SecureAuditLog,
        llm: Optional[BaseLLM] = None,
        publisher: Optional[CrisisEventPublisher] = None,
        config: Optional[TherapyConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        runner: Optional[AsyncRunner] = None,
    ):
        self.store = store
        self.encryption = encryption
        self.audit_log = audit_log
        self.llm = llm
        self.publisher = publisher or CrisisEventPublisher(enabled=False)
        self.config = config or TherapyConfig()
        self.rate_limiter = rate_limiter or RateLimiter(
            limit=self.config.rate_limit_per_minute,
            window_seconds=self.config.rate_limit_window_seconds,
        )
        self.runner = runner or get_async_runner()
        self.prompt_system = get_prompt_system(self.config.language)

        self._session_crypto: Dict[str, SessionEncryption] = {}
        self._detectors: Dict[str, CrisisDetector] = {}
        self._registry_lock = threading.Lock()

        logger.info(
            "THERAPY_SERVICE_INITIALIZED",
            extra={
                "language": self.config.language,
                "location": self.config.location,
                "llm_configured": llm is not None,
                "rate_limit_per_minute": self.config.rate_limit_per_minute,
            }
        )

    def session_encryption(self, session_id: str) -> SessionEncryption:
        with self._registry_lock:
            crypto = self._session_crypto.get(session_id)
            if crypto is None:
                crypto = SessionEncryption(session_id, encryption=self.encryption)
                self._session_crypto[session_id] = crypto
            return crypto

    def crisis_detector(self, session_id: str) -> CrisisDetector:
        with self._registry_lock:
            detector = self._detectors.get(session_id)
            if detector is None:
                detector = CrisisDetector(location=self.config.location)
                self._detectors[session_id] = detector
            return detector

    def release_session(self, session_id: str) -> None:
        """Destroy the session key and drop per-session detector and rate-limit state."""
        with self._registry_lock:
            crypto = self._session_crypto.pop(session_id, None)
            self._detectors.pop(session_id, None)

        if crypto is not None:
            crypto.destroy_session()
        self.rate_limiter.reset(session_id)

        logger.info(
            "SESSION_RESOURCES_RELEASED",
            extra={"session_id_hash": hash_pii(session_id), "had_key": crypto is not None}
        )

    def _localized(self, replies: Dict[str, str]) -> str:
        return replies.get(self.config.language, replies["pt-BR"])

    def _audit(
        self,
        session: TherapySession,
        action: AuditAction,
        ip: Optional[str],
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.audit_log.log_access(
            session.user_id or ANONYMOUS_USER,
            action,
            session.session_id,
            ip=ip,
            details=details,
        )

    def create_session(
        self,
        user_id: Optional[str] = None,
        mood_start: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        session = self.store.create_session(user_id=user_id, mood_start=mood_start)
        self._audit(session, AuditAction.CREATE_SESSION, ip)

        return {
            "sessionId": session.session_id,
            "isActive": session.is_active,
            "startedAt": _iso(session.started_at),
        }

    def get_session_view(self, session_id: str, ip: Optional[str] = None) -> Dict[str, Any]:
        """Session details with up to session_view_size decrypted messages.

        Raises:
            SessionNotFoundError: Unknown session
        """
        session = self.store.get_session(session_id)
        stored = self.store.messages(session_id, limit=self.config.session_view_size)
        messages = self._decrypt_messages(session, stored, SESSION_DECRYPT_FALLBACK)

        self._audit(session, AuditAction.GET_SESSION, ip)

        return {
            "sessionId": session.session_id,
            "isActive": session.is_active,
            "startedAt": _iso(session.started_at),
            "endedAt": _iso(session.ended_at),
            "messages": messages,
            "moodStart": session.mood_start,
            "moodEnd": session.mood_end,
            "techniques": session.techniques,
            "topics": session.topics,
            "anonymous": session.anonymous,
        }

    def get_history(self, session_id: str, ip: Optional[str] = None) -> Dict[str, Any]:
        """Full decrypted message history, oldest first.

        Raises:
            SessionNotFoundError: Unknown session
        """
        session = self.store.get_session(session_id)
        stored = self.store.messages(session_id)
        messages = self._decrypt_messages(session, stored, HISTORY_DECRYPT_FALLBACK)

        self._audit(session, AuditAction.GET_HISTORY, ip)

        return {
            "sessionId": session.session_id,
            "messages": messages,
            "startedAt": _iso(session.started_at),
            "moodStart": session.mood_start,
            "moodEnd": session.mood_end,
            "techniques": session.techniques,
        }

    def update_session(
        self,
        session_id: str,
        mood_end: Optional[str] = None,
        end_session: bool = False,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record the closing mood and/or end the session.

        Raises:
            SessionNotFoundError: Unknown session
        """
        changes: Dict[str, Any] = {}
        if mood_end is not None:
            changes["mood_end"] = mood_end
        if end_session:
            changes["is_active"] = False
            changes["ended_at"] = datetime.utcnow()

        session = self.store.update_session(session_id, **changes)
        self._audit(session, AuditAction.UPDATE_SESSION, ip)
        if end_session:
            self.release_session(session_id)

        return {
            "success": True,
            "sessionId": session.session_id,
            "isActive": session.is_active,
            "endedAt": _iso(session.ended_at),
            "moodEnd": session.mood_end,
        }

    def delete_session(self, session_id: str, ip: Optional[str] = None) -> Dict[str, Any]:
        """Soft delete: the session is deactivated, messages are kept.

        Raises:
            SessionNotFoundError: Unknown session
        """
        session = self.store.update_session(
            session_id,
            is_active=False,
            ended_at=datetime.utcnow(),
        )
        self._audit(session, AuditAction.DELETE_SESSION, ip)
        self.release_session(session_id)

        return {
            "success": True,
            "message": "Session deleted successfully",
        }

    def _decrypt_messages(
        self,
        session: TherapySession,
        stored: List[StoredMessage],
        fallback: str,
    ) -> List[Dict[str, Any]]:
        session_id = session.session_id
        # Ended sessions have no key left
        crypto = self.session_encryption(session_id) if session.is_active else None
        result = []

        for message in stored:
            if crypto is None:
                result.append(self._message_view(message, fallback))
                continue

            try:
                content = crypto.decrypt_message(message.payload)
            except EncryptionError as e:
                logger.warning(
                    "MESSAGE_DECRYPT_FAILED",
                    extra={
                        "message_id": message.message_id,
                        "session_id_hash": hash_pii(session_id),
                        "error_type": type(e).__name__,
                    }
                )
                content = fallback

            result.append(self._message_view(message, content))

        return result

    @staticmethod
    def _message_view(message: StoredMessage, content: str) -> Dict[str, Any]:
        return {
            "id": message.message_id,
            "role": message.role,
            "content": content,
            "timestamp": _iso(message.timestamp),
            "flagged": message.flagged,
        }

    def process_message(
        self,
        session_id: str,
        message: str,
        context: Optional[MessageContext] = None,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run one user message through the safety and AI pipeline.

        Raises:
            RateLimitExceededError: Session over its per-minute budget
            SessionNotFoundError: Unknown session
            InvalidMessageError: Message longer than max_message_length
            SessionInactiveError: Session has ended
            LLMUnavailableError: No AI backend configured
        """
        context = context or MessageContext()
        session_id_hash = hash_pii(session_id)

        if len(message) > self.config.max_message_length:
            logger.warning(
                "MESSAGE_TOO_LONG",
                extra={"session_id_hash": session_id_hash, "length": len(message)}
            )
            raise InvalidMessageError(
                f"Message exceeds {self.config.max_message_length} characters"
            )

        if not self.rate_limiter.check(session_id):
            raise RateLimitExceededError(session_id_hash)

        session = self.store.get_session(session_id)
        if not session.is_active:
            raise SessionInactiveError(session_id_hash)

        detector = self.crisis_detector(session_id)
        assessment = detector.analyze_message(message)

        if assessment.level == CrisisLevel.CRITICAL:
            return self._handle_critical(session, detector, assessment, ip)

        if self.llm is None:
            raise LLMUnavailableError("No AI backend configured")

        crypto = self.session_encryption(session_id)
        self.store.add_message(session_id, "user", crypto.encrypt_message(message))

        if assessment.level in (CrisisLevel.HIGH, CrisisLevel.MEDIUM):
            system_prompt = self.prompt_system.create_crisis_prompt(message, assessment.level)
        else:
            technique = Technique.parse(
                context.preferred_technique,
                Technique.parse(self.config.default_technique),
            )
            system_prompt = self.prompt_system.create_technique_prompt(
                technique,
                context.detected_issue or self.config.default_issue,
            )

        user_prompt = self.prompt_system.create_session_prompt(
            message,
            assessment.level,
            mood=context.mood,
            technique=context.preferred_technique,
        )

        try:
            response = self.runner.run(self.llm.generate(user_prompt, system_prompt=system_prompt))
        except SafetyBlockedError:
            logger.warning(
                "AI_SAFETY_BLOCK",
                extra={"session_id_hash": session_id_hash}
            )
            return {
                "message": self._localized(SAFETY_BLOCK_REPLIES),
                "suggestProfessionalHelp": True,
                "error": "safety_block",
            }

        ai_message = response.text

        reply_check = detector.classify(ai_message)
        if reply_check.level in (CrisisLevel.CRITICAL, CrisisLevel.HIGH):
            fallback = self._localized(FALLBACK_REPLIES)
            self.store.add_message(
                session_id,
                "assistant",
                crypto.encrypt_message(fallback),
                flagged=True,
                flag_reason=AI_REPLY_FLAG_REASON,
            )
            logger.warning(
                "AI_REPLY_REPLACED",
                extra={
                    "session_id_hash": session_id_hash,
                    "reply_level": reply_check.level.value,
                }
            )
            return {
                "message": fallback,
                "suggestProfessionalHelp": True,
            }

        self.store.add_message(session_id, "assistant", crypto.encrypt_message(ai_message))

        changes: Dict[str, Any] = {
            "techniques": session.techniques + [context.preferred_technique or "general"],
        }
        if assessment.level != CrisisLevel.LOW:
            changes["crisis_detected"] = True
            changes["crisis_level"] = assessment.level
        self.store.update_session(session_id, **changes)

        suggest_help = (
            assessment.level in (CrisisLevel.HIGH, CrisisLevel.MEDIUM)
            or detector.check_deterioration_pattern()
        )

        self._audit(
            session,
            AuditAction.MESSAGE_PROCESSED,
            ip,
            details={
                "crisisLevel": assessment.level.value,
                "messageFingerprint": hash_text_for_audit(message),
            },
        )

        logger.info(
            "MESSAGE_PROCESSED",
            extra={
                "session_id_hash": session_id_hash,
                "crisis_level": assessment.level.value,
                "suggest_professional_help": suggest_help,
                "latency_ms": response.latency_ms,
            }
        )

        result: Dict[str, Any] = {
            "message": ai_message,
            "suggestProfessionalHelp": suggest_help,
            "crisisLevel": assessment.level.value,
        }
        if assessment.level != CrisisLevel.LOW:
            result["resources"] = [c.to_dict() for c in detector.get_emergency_contacts()]

        return result

    def _handle_critical(
        self,
        session: TherapySession,
        detector: CrisisDetector,
        assessment: CrisisAssessment,
        ip: Optional[str],
    ) -> Dict[str, Any]:
        """Static crisis reply; the AI never sees the message."""
        contacts = detector.get_emergency_contacts()
        contact_names = [c.name for c in contacts]

        self.store.record_crisis_event(
            session.session_id,
            level=assessment.level,
            triggers=list(assessment.triggers),
            contacts_provided=contact_names,
        )

        published = self.publisher.publish_crisis(
            session_id_hash=hash_pii(session.session_id),
            level=assessment.level.value,
            confidence=assessment.confidence,
            triggers=list(assessment.triggers),
            pattern_version=detector.config.pattern_version,
            contacts_provided=contact_names,
            user_id_hash=hash_pii(session.user_id) if session.user_id else None,
        )

        self.store.update_session(
            session.session_id,
            crisis_detected=True,
            crisis_level=CrisisLevel.CRITICAL,
        )

        self._audit(
            session,
            AuditAction.CRISIS_DETECTED,
            ip,
            details={"published": published},
        )

        return {
            "message": self._localized(CRISIS_REPLIES),
            "crisis": True,
            "crisisLevel": CrisisLevel.CRITICAL.value,
            "emergencyContacts": [c.to_dict() for c in contacts],
            "suggestProfessionalHelp": True,
        }
