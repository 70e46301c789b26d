"""Tests for SecureAuditLog - hash-chained audit trail."""
import dataclasses
from datetime import datetime, timedelta

import pytest

from wellness.shared.security import DataEncryption, EncryptionError
from wellness.services.audit_service import audit_logger as audit_module
from wellness.services.audit_service.audit_logger import (
    AuditAction,
    AuditEntry,
    SecureAuditLog,
    get_audit_log,
)

AUDIT_KEY = "test_audit_key_that_is_long_enough_123"


@pytest.fixture
def encryption():
    return DataEncryption(AUDIT_KEY)


@pytest.fixture
def audit_log(encryption):
    return SecureAuditLog(encryption=encryption)


class TestAuditEntryCreation:

    def test_log_access_creates_entry(self, audit_log):
        entry = audit_log.log_access("user_123", AuditAction.GET_SESSION, "session_abc")

        assert entry.entry_id.startswith("audit_")
        assert entry.action == AuditAction.GET_SESSION
        assert entry.ip is None
        assert len(audit_log) == 1

    def test_identifiers_are_hashed(self, audit_log, encryption):
        entry = audit_log.log_access(
            "user_123", AuditAction.CREATE_SESSION, "session_abc", ip="10.0.0.1"
        )

        assert entry.user_id_hash == encryption.hash("user_123")
        assert entry.resource_hash == encryption.hash("session_abc")
        assert "user_123" not in str(entry.to_dict())
        assert "session_abc" not in str(entry.to_dict())
        assert entry.ip == "10.0.0.1"

    def test_entry_has_hash(self, audit_log):
        entry = audit_log.log_access("u", AuditAction.GET_HISTORY, "r")

        assert len(entry.entry_hash) == 64  # SHA-256 hex
        assert entry.entry_hash == entry.compute_hash()

    def test_entry_is_immutable(self, audit_log):
        entry = audit_log.log_access("u", AuditAction.GET_HISTORY, "r")

        with pytest.raises(Exception):  # FrozenInstanceError
            entry.action = AuditAction.DELETE_SESSION

    def test_details_are_copied(self, audit_log):
        details = {"crisisLevel": "LOW"}
        entry = audit_log.log_access("u", AuditAction.MESSAGE_PROCESSED, "r", details=details)
        details["crisisLevel"] = "CRITICAL"

        assert entry.details == {"crisisLevel": "LOW"}

    def test_to_dict(self, audit_log):
        entry = audit_log.log_access("u", AuditAction.CRISIS_DETECTED, "r")

        data = entry.to_dict()

        assert data["action"] == "crisis_detected"
        assert data["timestamp"].endswith("Z")
        assert set(data) == {"entryId", "timestamp", "action", "userId", "resource", "ip", "details"}


class TestHashChain:

    def test_first_entry_links_to_genesis(self, audit_log):
        entry = audit_log.log_access("u", AuditAction.CREATE_SESSION, "r")

        assert entry.previous_hash == "genesis"

    def test_entries_are_chained(self, audit_log):
        first = audit_log.log_access("u", AuditAction.CREATE_SESSION, "r")
        second = audit_log.log_access("u", AuditAction.GET_SESSION, "r")

        assert second.previous_hash == first.entry_hash

    def test_empty_chain_is_valid(self, audit_log):
        assert audit_log.verify_chain() is True

    def test_intact_chain_verifies(self, audit_log):
        for action in AuditAction:
            audit_log.log_access("u", action, "r")

        assert audit_log.verify_chain() is True

    def test_tampered_entry_detected(self, audit_log):
        audit_log.log_access("u", AuditAction.CREATE_SESSION, "r")
        audit_log.log_access("u", AuditAction.MESSAGE_PROCESSED, "r")

        original = audit_log._entries[1]
        audit_log._entries[1] = dataclasses.replace(original, details={"forged": True})

        assert audit_log.verify_chain() is False

    def test_removed_entry_detected(self, audit_log):
        for _ in range(3):
            audit_log.log_access("u", AuditAction.GET_HISTORY, "r")

        del audit_log._entries[1]

        assert audit_log.verify_chain() is False


class TestQuery:

    def test_filter_by_action(self, audit_log):
        audit_log.log_access("u", AuditAction.CREATE_SESSION, "r")
        audit_log.log_access("u", AuditAction.GET_SESSION, "r")

        results = audit_log.query(action=AuditAction.GET_SESSION)

        assert [e.action for e in results] == [AuditAction.GET_SESSION]

    def test_filter_by_user_and_resource(self, audit_log):
        audit_log.log_access("alice", AuditAction.GET_SESSION, "s1")
        audit_log.log_access("bob", AuditAction.GET_SESSION, "s1")
        audit_log.log_access("alice", AuditAction.GET_SESSION, "s2")

        assert len(audit_log.query(user_id="alice")) == 2
        assert len(audit_log.query(resource="s1")) == 2
        assert len(audit_log.query(user_id="alice", resource="s2")) == 1

    def test_filter_by_date(self, audit_log):
        audit_log.log_access("u", AuditAction.GET_SESSION, "r")
        now = datetime.utcnow()

        assert audit_log.query(start_date=now + timedelta(minutes=1)) == []
        assert len(audit_log.query(end_date=now + timedelta(minutes=1))) == 1


class TestDefaults:

    def test_default_encryption_uses_audit_key(self, monkeypatch):
        monkeypatch.setenv("AUDIT_ENCRYPTION_KEY", AUDIT_KEY)

        entry = SecureAuditLog().log_access("u", AuditAction.GET_SESSION, "r")

        assert entry.user_id_hash == DataEncryption(AUDIT_KEY).hash("u")

    def test_missing_audit_key_raises(self, monkeypatch):
        monkeypatch.delenv("AUDIT_ENCRYPTION_KEY", raising=False)
        monkeypatch.delenv("ENCRYPTION_MASTER_KEY", raising=False)

        with pytest.raises(EncryptionError):
            SecureAuditLog()

    def test_get_audit_log_singleton(self, monkeypatch):
        monkeypatch.setenv("AUDIT_ENCRYPTION_KEY", AUDIT_KEY)
        monkeypatch.setattr(audit_module, "_audit_log_instance", None)

        assert get_audit_log() is get_audit_log()
