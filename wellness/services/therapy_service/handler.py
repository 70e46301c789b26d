"""Therapy Service HTTP handler.

Every user message goes through the Safety Service classifier before the
AI backend sees it; CRITICAL messages never reach the AI.

Endpoints:
- GET /health, GET /ready
- POST /therapy/session
- GET|PUT|DELETE /therapy/session/<session_id>
- POST /therapy/message, GET /therapy/message?sessionId=
"""
import logging
import os
import time
from datetime import datetime

from flask import Flask, request, jsonify

from wellness.shared.security import DataEncryption
from wellness.shared.utils import configure_pii_salt, hash_pii
from wellness.services.audit_service import SecureAuditLog
from wellness.services.llm_service import LLMConfig, LLMUnavailableError, create_llm
from wellness.services.safety_service import CrisisEventPublisher
from .config import TherapyConfig
from .rate_limiter import RateLimitExceededError
from .service import (
    InvalidMessageError,
    MessageContext,
    SessionInactiveError,
    TherapyService,
)
from .session_store import SessionNotFoundError, SessionStore

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)

_STARTED_AT = time.monotonic()
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

# Configure PII salt from environment
pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

# Development defaults keep the app importable; /health reports them as missing
encryption = DataEncryption(
    os.getenv("ENCRYPTION_MASTER_KEY", "default_dev_master_key_change_in_production")
)
audit_log = SecureAuditLog(
    DataEncryption(os.getenv("AUDIT_ENCRYPTION_KEY", "default_dev_audit_key_change_in_production"))
)

llm_config = LLMConfig.from_env()
llm = create_llm(llm_config) if llm_config.is_configured else None

crisis_publisher = CrisisEventPublisher(
    stream_name=os.getenv("KINESIS_STREAM_NAME", "wellness-crisis-events"),
    enabled=os.getenv("CRISIS_PUBLISHING_ENABLED", "false").lower() == "true",
)

store = SessionStore()
therapy_service = TherapyService(
    store=store,
    encryption=encryption,
    audit_log=audit_log,
    llm=llm,
    publisher=crisis_publisher,
    config=TherapyConfig.from_env(),
)


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint for the load balancer.

    Returns:
        200 if store, encryption keys and AI backend are all in place,
        503 otherwise
    """
    checks = {
        "database": False,
        "encryption": False,
        "ai": False,
    }

    try:
        checks["database"] = store.ping()
    except Exception as e:
        logger.error("HEALTH_STORE_CHECK_FAILED", extra={"error": str(e)})

    checks["encryption"] = bool(
        os.getenv("ENCRYPTION_MASTER_KEY") and os.getenv("AUDIT_ENCRYPTION_KEY")
    )
    checks["ai"] = therapy_service.llm is not None

    healthy = all(checks.values())

    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "service": "therapy-service",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "version": APP_VERSION,
        "checks": checks,
    }), 200 if healthy else 503


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check - verifies the service is initialized."""
    if therapy_service is None:
        return jsonify({"status": "not_ready", "reason": "service_not_initialized"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/therapy/session", methods=["POST"])
def create_session():
    """Start a new session.

    Request Body (optional):
        {"userId": "...", "moodStart": "..."}

    Response (201):
        {"sessionId": "...", "isActive": true, "startedAt": "..."}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = therapy_service.create_session(
            user_id=data.get("userId"),
            mood_start=data.get("moodStart"),
            ip=request.remote_addr,
        )
        return jsonify(result), 201

    except Exception as e:
        logger.error(
            "CREATE_SESSION_ERROR",
            extra={"error": str(e), "error_type": type(e).__name__}
        )
        return jsonify({"error": "Failed to create session"}), 500


@app.route("/therapy/session/<session_id>", methods=["GET"])
def get_session(session_id: str):
    """Session details with up to 50 decrypted messages."""
    try:
        return jsonify(therapy_service.get_session_view(session_id, ip=request.remote_addr)), 200

    except SessionNotFoundError:
        return jsonify({"error": "Session not found"}), 404

    except Exception as e:
        logger.error(
            "GET_SESSION_ERROR",
            extra={
                "session_id_hash": hash_pii(session_id),
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        return jsonify({"error": "Failed to fetch session"}), 500


@app.route("/therapy/session/<session_id>", methods=["PUT"])
def update_session(session_id: str):
    """Update closing mood and/or end the session.

    Request Body:
        {"moodEnd": "...", "endSession": true}
    """
    try:
        data = request.get_json(silent=True) or {}
        result = therapy_service.update_session(
            session_id,
            mood_end=data.get("moodEnd"),
            end_session=bool(data.get("endSession")),
            ip=request.remote_addr,
        )
        return jsonify(result), 200

    except SessionNotFoundError:
        return jsonify({"error": "Session not found"}), 404

    except Exception as e:
        logger.error(
            "UPDATE_SESSION_ERROR",
            extra={
                "session_id_hash": hash_pii(session_id),
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        return jsonify({"error": "Failed to update session"}), 500


@app.route("/therapy/session/<session_id>", methods=["DELETE"])
def delete_session(session_id: str):
    """Soft delete - the session is deactivated, never erased."""
    try:
        return jsonify(therapy_service.delete_session(session_id, ip=request.remote_addr)), 200

    except SessionNotFoundError:
        return jsonify({"error": "Session not found"}), 404

    except Exception as e:
        logger.error(
            "DELETE_SESSION_ERROR",
            extra={
                "session_id_hash": hash_pii(session_id),
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        return jsonify({"error": "Failed to delete session"}), 500


@app.route("/therapy/message", methods=["POST"])
def post_message():
    """Process one user message.

    Request Body:
        {
            "sessionId": "...",
            "message": "User message text",
            "context": {"mood": ..., "preferredTechnique": ..., "detectedIssue": ...}
        }

    Response:
        {
            "message": "Assistant reply",
            "suggestProfessionalHelp": true | false,
            "crisisLevel": "LOW" | "MEDIUM" | "HIGH",
            "resources": [...] (level above LOW)
        }
        CRITICAL messages instead return "crisis": true and
        "emergencyContacts"; the AI backend is never called for them.
    """
    data = request.get_json(silent=True) or {}
    session_id = data.get("sessionId")
    message = data.get("message")

    if not isinstance(session_id, str) or not isinstance(message, str) or not session_id or not message:
        logger.warning("MESSAGE_REQUEST_INVALID", extra={"reason": "missing_fields"})
        return jsonify({"error": "Session ID and message are required"}), 400

    try:
        result = therapy_service.process_message(
            session_id,
            message,
            context=MessageContext.from_dict(data.get("context")),
            ip=request.remote_addr,
        )
        return jsonify(result), 200

    except InvalidMessageError as e:
        logger.warning("MESSAGE_REQUEST_INVALID", extra={"reason": str(e)})
        return jsonify({"error": str(e)}), 400

    except RateLimitExceededError:
        return jsonify({"error": "Rate limit exceeded. Please wait a moment."}), 429

    except SessionNotFoundError:
        return jsonify({"error": "Session not found"}), 404

    except SessionInactiveError:
        return jsonify({"error": "Session has expired"}), 403

    except LLMUnavailableError:
        logger.error(
            "AI_BACKEND_UNAVAILABLE",
            extra={"session_id_hash": hash_pii(session_id)}
        )
        return jsonify({"error": "AI service unavailable"}), 503

    except Exception as e:
        logger.error(
            "PROCESS_MESSAGE_ERROR",
            extra={
                "session_id_hash": hash_pii(session_id),
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        return jsonify({"error": "Failed to process message"}), 500


@app.route("/therapy/message", methods=["GET"])
def get_messages():
    """Full decrypted history for ?sessionId=."""
    session_id = request.args.get("sessionId")
    if not session_id:
        return jsonify({"error": "Session ID is required"}), 400

    try:
        return jsonify(therapy_service.get_history(session_id, ip=request.remote_addr)), 200

    except SessionNotFoundError:
        return jsonify({"error": "Session not found"}), 404

    except Exception as e:
        logger.error(
            "GET_HISTORY_ERROR",
            extra={
                "session_id_hash": hash_pii(session_id),
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        return jsonify({"error": "Failed to fetch message history"}), 500


if __name__ == "__main__":
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Run development server
    port = int(os.getenv("PORT", "8000"))
    app.run(host="0.0.0.0", port=port, debug=False)
