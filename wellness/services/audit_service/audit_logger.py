"""Secure audit log - hash-chained record of data access.

Every session and message operation emits an audit entry. User and
resource identifiers are stored only as keyed hashes, never in clear.
"""
import hashlib
import json
import logging
import os
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from wellness.shared.security import DataEncryption

logger = logging.getLogger(__name__)

GENESIS_HASH = "genesis"


class AuditAction(Enum):
    """Actions that require audit logging."""
    # Conversation
    MESSAGE_PROCESSED = "message_processed"
    CRISIS_DETECTED = "crisis_detected"
    GET_HISTORY = "get_history"

    # Session lifecycle
    CREATE_SESSION = "create_session"
    GET_SESSION = "get_session"
    UPDATE_SESSION = "update_session"
    DELETE_SESSION = "delete_session"


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit log entry."""
    entry_id: str
    timestamp: datetime
    action: AuditAction
    user_id_hash: str
    resource_hash: str
    ip: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    previous_hash: str = ""  # Chain to previous entry for verification
    entry_hash: str = ""     # Hash of this entry

    def compute_hash(self) -> str:
        """Compute SHA-256 hash of entry for verification.

        Returns:
            Hex-encoded hash string
        """
        content = {
            "entry_id": self.entry_id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "user_id_hash": self.user_id_hash,
            "resource_hash": self.resource_hash,
            "ip": self.ip,
            "details": self.details,
            "previous_hash": self.previous_hash,
        }
        content_str = json.dumps(content, sort_keys=True)
        return hashlib.sha256(content_str.encode()).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entryId": self.entry_id,
            "timestamp": self.timestamp.isoformat() + "Z",
            "action": self.action.value,
            "userId": self.user_id_hash,
            "resource": self.resource_hash,
            "ip": self.ip,
            "details": self.details,
        }


class SecureAuditLog:
    """Append-only, hash-chained audit log.

    Entries live in memory for the lifetime of the process. Identifiers
    are hashed with a dedicated audit key so the log cannot be joined
    against conversation data without that key.
    """

    def __init__(self, encryption: Optional[DataEncryption] = None):
        """Initialize audit log.

        Args:
            encryption: Hasher for identifiers. Defaults to a DataEncryption
                keyed by AUDIT_ENCRYPTION_KEY.
        """
        if encryption is None:
            encryption = DataEncryption(os.getenv("AUDIT_ENCRYPTION_KEY"))
        self._encryption = encryption
        self._entries: List[AuditEntry] = []
        self._last_hash: str = GENESIS_HASH
        self._lock = threading.Lock()

        logger.info("AUDIT_LOG_INITIALIZED")

    def log_access(
        self,
        user_id: str,
        action: AuditAction,
        resource: str,
        ip: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        """Record one access.

        Args:
            user_id: Acting user or session identifier (hashed before storage)
            action: Action being audited
            resource: Resource identifier (hashed before storage)
            ip: Client address when known
            details: Additional non-identifying context

        Returns:
            Created AuditEntry

        Logs:
            - AUDIT_ENTRY_CREATED: After entry is stored
        """
        with self._lock:
            entry = AuditEntry(
                entry_id=f"audit_{uuid.uuid4().hex[:16]}",
                timestamp=datetime.utcnow(),
                action=action,
                user_id_hash=self._encryption.hash(user_id),
                resource_hash=self._encryption.hash(resource),
                ip=ip,
                details=dict(details or {}),
                previous_hash=self._last_hash,
            )
            entry = replace(entry, entry_hash=entry.compute_hash())

            self._entries.append(entry)
            self._last_hash = entry.entry_hash

        logger.info(
            "AUDIT_ENTRY_CREATED",
            extra={
                "entry_id": entry.entry_id,
                "action": action.value,
                "entry_hash": entry.entry_hash[:16],  # Truncated for logs
            }
        )

        return entry

    def verify_chain(self) -> bool:
        """Verify integrity of audit chain.

        Returns:
            True if chain is valid, False if tampered
        """
        with self._lock:
            entries = list(self._entries)

        expected_prev = GENESIS_HASH
        for entry in entries:
            if entry.previous_hash != expected_prev:
                logger.critical(
                    "AUDIT_CHAIN_VERIFICATION_FAILED",
                    extra={
                        "entry_id": entry.entry_id,
                        "expected_prev": expected_prev[:16],
                        "actual_prev": entry.previous_hash[:16],
                    }
                )
                return False

            computed = entry.compute_hash()
            if computed != entry.entry_hash:
                logger.critical(
                    "AUDIT_ENTRY_HASH_MISMATCH",
                    extra={
                        "entry_id": entry.entry_id,
                        "computed": computed[:16],
                        "stored": entry.entry_hash[:16],
                    }
                )
                return False

            expected_prev = entry.entry_hash

        logger.info(
            "AUDIT_CHAIN_VERIFIED",
            extra={"entry_count": len(entries)}
        )
        return True

    def query(
        self,
        action: Optional[AuditAction] = None,
        user_id: Optional[str] = None,
        resource: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[AuditEntry]:
        """Query audit entries.

        Args:
            action: Filter by action
            user_id: Filter by user (clear identifier, hashed for matching)
            resource: Filter by resource (clear identifier, hashed for matching)
            start_date: Filter by start date
            end_date: Filter by end date

        Returns:
            List of matching AuditEntry objects, oldest first
        """
        with self._lock:
            results = list(self._entries)

        if action:
            results = [e for e in results if e.action == action]
        if user_id is not None:
            user_hash = self._encryption.hash(user_id)
            results = [e for e in results if e.user_id_hash == user_hash]
        if resource is not None:
            resource_hash = self._encryption.hash(resource)
            results = [e for e in results if e.resource_hash == resource_hash]
        if start_date:
            results = [e for e in results if e.timestamp >= start_date]
        if end_date:
            results = [e for e in results if e.timestamp <= end_date]

        return results

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


_audit_log_instance: Optional[SecureAuditLog] = None


def get_audit_log() -> SecureAuditLog:
    """Get or create the process-wide audit log."""
    global _audit_log_instance

    if _audit_log_instance is None:
        _audit_log_instance = SecureAuditLog()

    return _audit_log_instance
