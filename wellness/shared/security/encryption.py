"""Password-based encryption for conversation content at rest.

Key derivation: PBKDF2-HMAC-SHA256 over (master key + optional context
key) and a random 16-byte salt. The 64 derived bytes are split into an
AES-256 key and an HMAC-SHA256 key.

Cipher: AES-256-CBC with PKCS7 padding. The MAC covers salt, IV and
ciphertext (encrypt-then-MAC), so a wrong key or any tampered field fails
loudly instead of returning garbage plaintext.

Envelope: base64 ciphertext, IV, salt and MAC plus the creation timestamp
and the iteration count. Salt and IV are fresh for every call.
"""
import base64
import binascii
import hashlib
import json
import logging
import os
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Base exception for encryption failures."""
    pass


class DecryptionError(EncryptionError):
    """Payload could not be decrypted (wrong key or corrupted data)."""
    pass


@dataclass(frozen=True)
class EncryptionConfig:
    """Cipher and key-derivation parameters."""
    algorithm: str = "AES-256-CBC"
    iterations: int = 10000
    key_size: int = 256         # bits, AES key
    salt_size: int = 16         # bytes
    iv_size: int = 16           # bytes, one AES block


@dataclass(frozen=True)
class EncryptedPayload:
    """Everything needed to decrypt one message or object.

    Immutable - a payload is written once next to the stored message.
    """
    data: str               # base64 ciphertext
    iv: str                 # base64
    salt: str               # base64
    timestamp: int          # epoch milliseconds at encryption
    mac: str = ""           # base64 HMAC-SHA256 over salt|iv|ciphertext
    iterations: int = 10000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data,
            "iv": self.iv,
            "salt": self.salt,
            "timestamp": self.timestamp,
            "mac": self.mac,
            "iterations": self.iterations,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EncryptedPayload":
        """Rebuild a payload from its stored dictionary form.

        Raises:
            DecryptionError: If a field is missing or has the wrong type
        """
        try:
            payload = cls(
                data=data["data"],
                iv=data["iv"],
                salt=data["salt"],
                timestamp=int(data.get("timestamp", 0)),
                mac=data.get("mac", ""),
                iterations=int(data.get("iterations", EncryptionConfig.iterations)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecryptionError(f"Malformed encrypted payload: {e}") from e

        for name in ("data", "iv", "salt", "mac"):
            if not isinstance(getattr(payload, name), str):
                raise DecryptionError(f"Malformed encrypted payload: {name} must be a string")
        if payload.iterations < 1:
            raise DecryptionError("Malformed encrypted payload: iterations must be positive")

        return payload


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


class DataEncryption:
    """Encrypts strings and JSON objects under a master secret.

    An optional per-call context key (for example a session key) is
    appended to the master secret before key derivation, so the same
    context key is required to decrypt.
    """

    def __init__(
        self,
        master_key: Optional[str] = None,
        config: Optional[EncryptionConfig] = None,
    ):
        """Initialize with a master secret.

        Args:
            master_key: Master secret; falls back to ENCRYPTION_MASTER_KEY
            config: Cipher parameters

        Raises:
            EncryptionError: If no master key is available
        """
        self.config = config or EncryptionConfig()
        self._master_key = master_key or os.getenv("ENCRYPTION_MASTER_KEY", "")

        if not self._master_key:
            logger.critical(
                "ENCRYPTION_KEY_MISSING",
                extra={"env_var": "ENCRYPTION_MASTER_KEY"}
            )
            raise EncryptionError("Encryption master key is required")

    def _derive_keys(self, user_key: str, salt: bytes, iterations: int) -> tuple:
        """Derive (aes_key, mac_key) from master key + user key and salt."""
        key_bytes = self.config.key_size // 8
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=key_bytes * 2,
            salt=salt,
            iterations=iterations,
        )
        material = kdf.derive(f"{self._master_key}{user_key}".encode("utf-8"))
        return material[:key_bytes], material[key_bytes:]

    @staticmethod
    def _mac(mac_key: bytes, salt: bytes, iv: bytes, ciphertext: bytes) -> bytes:
        h = hmac.HMAC(mac_key, hashes.SHA256())
        h.update(salt + iv + ciphertext)
        return h.finalize()

    def encrypt(self, plain_text: str, user_key: Optional[str] = None) -> EncryptedPayload:
        """Encrypt a string.

        Args:
            plain_text: Text to protect
            user_key: Optional context key mixed into key derivation

        Returns:
            EncryptedPayload with fresh salt and IV

        Raises:
            EncryptionError: If the input cannot be encrypted
        """
        try:
            salt = secrets.token_bytes(self.config.salt_size)
            iv = secrets.token_bytes(self.config.iv_size)
            aes_key, mac_key = self._derive_keys(user_key or "", salt, self.config.iterations)

            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(plain_text.encode("utf-8")) + padder.finalize()

            encryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except (TypeError, ValueError, AttributeError) as e:
            logger.error(
                "ENCRYPTION_FAILED",
                extra={"error_type": type(e).__name__}
            )
            raise EncryptionError("Failed to encrypt data") from e

        return EncryptedPayload(
            data=_b64encode(ciphertext),
            iv=_b64encode(iv),
            salt=_b64encode(salt),
            timestamp=int(time.time() * 1000),
            mac=_b64encode(self._mac(mac_key, salt, iv, ciphertext)),
            iterations=self.config.iterations,
        )

    def decrypt(self, payload: EncryptedPayload, user_key: Optional[str] = None) -> str:
        """Decrypt a payload produced by encrypt().

        Args:
            payload: Stored envelope
            user_key: The same context key used to encrypt

        Returns:
            Original plaintext

        Raises:
            DecryptionError: If the key is wrong or the payload corrupted
        """
        try:
            salt = _b64decode(payload.salt)
            iv = _b64decode(payload.iv)
            ciphertext = _b64decode(payload.data)
            mac = _b64decode(payload.mac)

            aes_key, mac_key = self._derive_keys(user_key or "", salt, payload.iterations)

            verifier = hmac.HMAC(mac_key, hashes.SHA256())
            verifier.update(salt + iv + ciphertext)
            verifier.verify(mac)

            decryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode("utf-8")
        except (
            InvalidSignature,
            binascii.Error,
            ValueError,
            TypeError,
            AttributeError,
            OverflowError,
        ) as e:
            # UnicodeDecodeError is a ValueError
            logger.warning(
                "DECRYPTION_FAILED",
                extra={"error_type": type(e).__name__}
            )
            raise DecryptionError("Failed to decrypt - invalid key or corrupted data") from e

    def hash(self, data: str) -> str:
        """Keyed SHA-256 fingerprint for lookups without decrypting."""
        return hashlib.sha256(f"{data}{self._master_key}".encode("utf-8")).hexdigest()

    def verify_hash(self, plain_text: str, hashed: str) -> bool:
        """Check plaintext against a value produced by hash()."""
        return secrets.compare_digest(self.hash(plain_text), hashed)

    def encrypt_object(self, obj: Any, user_key: Optional[str] = None) -> EncryptedPayload:
        """Encrypt any JSON-serializable object."""
        return self.encrypt(json.dumps(obj), user_key)

    def decrypt_object(self, payload: EncryptedPayload, user_key: Optional[str] = None) -> Any:
        """Decrypt a payload produced by encrypt_object()."""
        json_string = self.decrypt(payload, user_key)
        try:
            return json.loads(json_string)
        except json.JSONDecodeError as e:
            raise DecryptionError("Decrypted payload is not valid JSON") from e

    @staticmethod
    def generate_secure_key(length: int = 32) -> str:
        """Generate a random base64 key suitable for ENCRYPTION_MASTER_KEY."""
        return _b64encode(secrets.token_bytes(length))

    def encrypt_for_storage(self, data: str) -> str:
        """Encrypt into a single opaque token for non-critical client data.

        Token layout (base64): salt | iv | mac | ciphertext
        """
        payload = self.encrypt(data)
        raw = (
            _b64decode(payload.salt)
            + _b64decode(payload.iv)
            + _b64decode(payload.mac)
            + _b64decode(payload.data)
        )
        return _b64encode(raw)

    def decrypt_from_storage(self, token: str) -> str:
        """Decrypt a token produced by encrypt_for_storage()."""
        try:
            raw = _b64decode(token)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Storage token is not valid base64") from e

        salt_end = self.config.salt_size
        iv_end = salt_end + self.config.iv_size
        mac_end = iv_end + 32
        if len(raw) <= mac_end:
            raise DecryptionError("Storage token is truncated")

        payload = EncryptedPayload(
            data=_b64encode(raw[mac_end:]),
            iv=_b64encode(raw[salt_end:iv_end]),
            salt=_b64encode(raw[:salt_end]),
            timestamp=0,
            mac=_b64encode(raw[iv_end:mac_end]),
            iterations=self.config.iterations,
        )
        return self.decrypt(payload)


class SessionEncryption:
    """Per-session facade over DataEncryption for chat messages.

    The session key is SHA-256(session_id + wall-clock ms at construction),
    so only this instance can decrypt what it encrypted. A new instance for
    the same session derives a different key.
    """

    def __init__(
        self,
        session_id: str,
        master_key: Optional[str] = None,
        encryption: Optional[DataEncryption] = None,
    ):
        self.session_id = session_id
        seed = f"{session_id}{int(time.time() * 1000)}"
        self._session_key = hashlib.sha256(seed.encode("utf-8")).hexdigest()
        self._encryption = encryption or DataEncryption(master_key)

    def _require_key(self) -> str:
        if not self._session_key:
            raise EncryptionError("Session key destroyed")
        return self._session_key

    def encrypt_message(self, message: str) -> EncryptedPayload:
        return self._encryption.encrypt(message, self._require_key())

    def decrypt_message(self, payload: EncryptedPayload) -> str:
        return self._encryption.decrypt(payload, self._require_key())

    def destroy_session(self) -> None:
        """Clear the session key from memory."""
        self._session_key = ""


_encryption_instance: Optional[DataEncryption] = None


def get_encryption() -> DataEncryption:
    """Get or create the process-wide DataEncryption (ENCRYPTION_MASTER_KEY)."""
    global _encryption_instance

    if _encryption_instance is None:
        _encryption_instance = DataEncryption()

    return _encryption_instance
