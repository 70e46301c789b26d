"""Audit Service: hash-chained audit trail of session and message access.

Identifiers are stored as keyed hashes (AUDIT_ENCRYPTION_KEY) and every
entry links to the previous one, so tampering is detectable with
verify_chain().
"""

from .audit_logger import (
    AuditAction,
    AuditEntry,
    SecureAuditLog,
    get_audit_log,
)

__all__ = [
    "AuditAction",
    "AuditEntry",
    "SecureAuditLog",
    "get_audit_log",
]
