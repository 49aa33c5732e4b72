"""
Token encryption at rest and secret redaction for logs.

Rules:
- Meta long-lived tokens are stored only as TokenCipher output
- Log fields named like tokens, secrets or keys are replaced before output
- Key material and environment values are never logged

Blob layout:
    base64( nonce(12 bytes) || ciphertext || auth_tag(16 bytes) )

AES-256-GCM with a fresh random nonce per call. The 32-byte key is supplied
out-of-band as 64 hex characters in TOKEN_ENCRYPTION_KEY. There is no
default key: a missing or malformed key fails with CONFIG_ERROR on first use.

Usage:
    from adlink.platform.secrets import encrypt_token, decrypt_token, redact_secrets

    blob = encrypt_token(long_lived_token)
    token = decrypt_token(blob)

    safe_data = redact_secrets({"access_token": "EAAB...", "name": "test"})
"""

import base64
import binascii
import logging
import os
import re
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from adlink.platform.errors import ErrorCode, OAuthError

ENCRYPTION_KEY_ENV = "TOKEN_ENCRYPTION_KEY"

NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32

# Field names whose values are always replaced in logs and payload dumps
SECRET_KEY_PATTERN = re.compile(
    r"secret|password|credentials|authorization|api[_-]?key|private[_-]?key|encryption[_-]?key"
    r"|(access|refresh|exchange|bearer|id|developer)[_-]?token|^code$|^state$",
    re.IGNORECASE,
)

# Token shapes recognised inside free text
SECRET_VALUE_PATTERNS = (
    re.compile(r"ya29\.[\w.-]{20,}"),
    re.compile(r"1//[\w.-]{20,}"),
    re.compile(r"EAA[a-zA-Z0-9]{20,}"),
    re.compile(r"Bearer\s+[\w.-]+"),
    re.compile(r"(?:access_token|refresh_token|client_secret|fb_exchange_token|code)=[^&\s]+"),
)

REDACTED_VALUE = "[REDACTED]"

# Nested payloads deeper than this are returned unchanged
MAX_REDACTION_DEPTH = 10


class EncryptionError(OAuthError):
    """Raised when key provisioning or an encrypt/decrypt operation fails.

    error_code is CONFIG_ERROR for key problems and DECRYPTION_ERROR for
    malformed or tampered ciphertext.
    """

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.DECRYPTION_ERROR):
        super().__init__(message, error_code)


def load_encryption_key(raw_key: Optional[str] = None) -> bytes:
    """
    Parse the 32-byte AES key from its hex representation.

    Args:
        raw_key: 64 hex characters. Defaults to TOKEN_ENCRYPTION_KEY.

    Raises:
        EncryptionError(CONFIG_ERROR): If the key is absent or malformed
    """
    if raw_key is None:
        raw_key = os.getenv(ENCRYPTION_KEY_ENV)

    if not raw_key:
        raise EncryptionError(
            f"{ENCRYPTION_KEY_ENV} environment variable is not set",
            ErrorCode.CONFIG_ERROR,
        )
    if len(raw_key) != KEY_LENGTH * 2:
        raise EncryptionError(
            f"{ENCRYPTION_KEY_ENV} must be {KEY_LENGTH * 2} hex characters ({KEY_LENGTH} bytes)",
            ErrorCode.CONFIG_ERROR,
        )
    try:
        return bytes.fromhex(raw_key)
    except ValueError:
        raise EncryptionError(
            f"{ENCRYPTION_KEY_ENV} is not valid hex",
            ErrorCode.CONFIG_ERROR,
        )


class TokenCipher:
    """
    AES-256-GCM cipher for provider tokens stored at rest.

    Constructed per use from explicit key material; there is no module-level
    instance.
    """

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
            raise EncryptionError(
                f"Encryption key must be exactly {KEY_LENGTH} bytes",
                ErrorCode.CONFIG_ERROR,
            )
        self._aead = AESGCM(bytes(key))

    @classmethod
    def from_env(cls) -> "TokenCipher":
        return cls(load_encryption_key())

    @classmethod
    def from_hex(cls, hex_key: str) -> "TokenCipher":
        return cls(load_encryption_key(hex_key))

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a plaintext string.

        Returns:
            base64(nonce || ciphertext || tag)
        """
        nonce = os.urandom(NONCE_LENGTH)
        # AESGCM appends the 16-byte tag to the ciphertext
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """
        Decrypt a blob produced by encrypt().

        Raises:
            EncryptionError(DECRYPTION_ERROR): On malformed input, a bad
                authentication tag or the wrong key
        """
        if not isinstance(blob, str) or not blob:
            raise EncryptionError("Ciphertext is empty")

        try:
            combined = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError):
            raise EncryptionError("Ciphertext is not valid base64")

        if len(combined) < NONCE_LENGTH + TAG_LENGTH:
            raise EncryptionError("Ciphertext is too short")

        nonce = combined[:NONCE_LENGTH]
        tag = combined[-TAG_LENGTH:]
        ciphertext = combined[NONCE_LENGTH:-TAG_LENGTH]

        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            raise EncryptionError("Invalid ciphertext or wrong encryption key")

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise EncryptionError("Decrypted payload is not valid UTF-8")


def encrypt_token(plaintext: str) -> str:
    """Encrypt a provider token for storage using TOKEN_ENCRYPTION_KEY."""
    return TokenCipher.from_env().encrypt(plaintext)


def decrypt_token(blob: str) -> str:
    """Decrypt a stored provider token using TOKEN_ENCRYPTION_KEY."""
    return TokenCipher.from_env().decrypt(blob)


def is_secret_key(key: str) -> bool:
    return bool(SECRET_KEY_PATTERN.search(key))


def redact_value(value: Any) -> Any:
    """Replace recognised token shapes in a string; other types pass through."""
    if not isinstance(value, str):
        return value
    for pattern in SECRET_VALUE_PATTERNS:
        value = pattern.sub(REDACTED_VALUE, value)
    return value


def redact_secrets(data: Any, _depth: int = 0) -> Any:
    """
    Copy of a dict/list payload with secret fields and token shapes replaced.

    Run provider responses through this before they reach a log line.
    """
    if _depth > MAX_REDACTION_DEPTH:
        return data
    if isinstance(data, dict):
        return {
            key: REDACTED_VALUE
            if isinstance(key, str) and is_secret_key(key)
            else redact_secrets(value, _depth + 1)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact_secrets(item, _depth + 1) for item in data]
    return redact_value(data)


def mask_secret(secret: Optional[str], visible_chars: int = 4) -> str:
    """
    Keep the first visible_chars characters of a token, star the rest.

    Short or missing values are fully starred ("****" at minimum).
    """
    length = len(secret) if secret else 0
    if length <= visible_chars * 2:
        return "*" * max(length, 4)
    return secret[:visible_chars] + "*" * (length - visible_chars)


# Attributes every LogRecord carries; anything else arrived through extra=
_STANDARD_RECORD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class SecretRedactingFilter(logging.Filter):
    """
    Scrubs tokens from the message, its args and secret-named extra fields.

    Installed on the root handlers in main.py.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_value(record.msg)

        if isinstance(record.args, dict):
            record.args = redact_secrets(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(redact_value(arg) for arg in record.args)

        for name in [n for n in vars(record) if n not in _STANDARD_RECORD_FIELDS]:
            if is_secret_key(name):
                setattr(record, name, REDACTED_VALUE)

        return True


def validate_encryption_configured() -> bool:
    """
    Check if a well-formed encryption key is configured.

    Returns:
        True if TOKEN_ENCRYPTION_KEY parses, False otherwise
    """
    try:
        load_encryption_key()
    except EncryptionError:
        return False
    return True
