"""Encryption of conversation content at rest."""
from .encryption import (
    DataEncryption,
    DecryptionError,
    EncryptedPayload,
    EncryptionConfig,
    EncryptionError,
    SessionEncryption,
    get_encryption,
)

__all__ = [
    "DataEncryption",
    "DecryptionError",
    "EncryptedPayload",
    "EncryptionConfig",
    "EncryptionError",
    "SessionEncryption",
    "get_encryption",
]
