"""
Cryptographic primitives for AES-256-GCM envelope encryption.

This module provides:
- SecureKey: Secure key wrapper with automatic zeroization
- EncryptedEnvelope: Encrypted journal text as three base64 fields
- WrappedDataKey: Data key wrapped under the master key (nonce || tag || ciphertext)
- AesGcmCipher: AES-256-GCM encryption/decryption operations
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import Any, Mapping, Tuple, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .errors import CryptoError, DecryptionError

# Cryptographic constants
AES_256_KEY_SIZE: int = 32  # 256 bits
NONCE_SIZE: int = 12  # 96 bits (standard for AES-GCM)
TAG_SIZE: int = 16  # 128 bits (authentication tag)
WRAPPED_HEADER_SIZE: int = NONCE_SIZE + TAG_SIZE


class SecureKey:
    """
    Secure key wrapper with automatic memory cleanup on deletion.

    Uses bytearray internally for mutable zeroing in __del__.
    Note: Python's garbage collector doesn't guarantee immediate cleanup,
    so this is best-effort zeroization.
    """

    __slots__ = ("_bytes",)

    def __init__(self, key_bytes: bytes | bytearray) -> None:
        """
        Create a SecureKey from raw bytes.

        Args:
            key_bytes: Raw key material (should be 32 bytes for AES-256)
        """
        if not isinstance(key_bytes, (bytes, bytearray)):
            raise CryptoError("Key must be bytes or bytearray")
        self._bytes = bytearray(key_bytes)

    @classmethod
    def generate(cls) -> SecureKey:
        """Generate a cryptographically secure random 32-byte key."""
        return cls(secrets.token_bytes(AES_256_KEY_SIZE))

    def as_bytes(self) -> bytes:
        """Return key as immutable bytes."""
        return bytes(self._bytes)

    def __len__(self) -> int:
        """Return key length in bytes."""
        return len(self._bytes)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecureKey):
            return secrets.compare_digest(self.as_bytes(), other.as_bytes())
        if isinstance(other, (bytes, bytearray)):
            return secrets.compare_digest(self.as_bytes(), bytes(other))
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        """Redacted representation to prevent accidental key disclosure."""
        return "SecureKey([REDACTED])"

    def __del__(self) -> None:
        """Zero memory on deletion (best-effort)."""
        if hasattr(self, "_bytes"):
            for i in range(len(self._bytes)):
                self._bytes[i] = 0


KeyLike = Union[SecureKey, bytes, bytearray]


def _b64encode(data: bytes) -> str:
    return base64.standard_b64encode(data).decode("ascii")


def _b64decode(encoded: Any, field: str) -> bytes:
    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError, TypeError):
        raise DecryptionError(f"Malformed base64 in {field}") from None
    # Non-canonical padding bits decode to the same bytes; reject them
    if _b64encode(decoded) != (encoded.decode("ascii") if isinstance(encoded, bytes) else encoded):
        raise DecryptionError(f"Malformed base64 in {field}")
    return decoded


def _key_bytes(key: KeyLike) -> bytes:
    if isinstance(key, SecureKey):
        return key.as_bytes()
    if isinstance(key, (bytes, bytearray)):
        return bytes(key)
    raise CryptoError("Key must be a SecureKey, bytes or bytearray")


@dataclass(frozen=True)
class EncryptedEnvelope:
    """
    Encrypted journal text.

    Three independently base64-encoded fields, stored as separate text
    columns next to the owning record.
    """

    ciphertext: str
    nonce: str  # 12 bytes decoded
    auth_tag: str  # 16 bytes decoded

    def to_record(self, prefix: str = "text") -> dict:
        """
        Map to content-row columns, e.g. text_ciphertext / text_nonce / text_auth_tag.

        Args:
            prefix: Column prefix of the owning record

        Returns:
            Dict of column name to base64 value
        """
        return {
            f"{prefix}_ciphertext": self.ciphertext,
            f"{prefix}_nonce": self.nonce,
            f"{prefix}_auth_tag": self.auth_tag,
        }

    @classmethod
    def from_record(cls, row: Mapping[str, Any], prefix: str = "text") -> EncryptedEnvelope:
        """
        Build an envelope from a content row.

        Raises:
            DecryptionError: If any of the three columns is missing
        """
        try:
            return cls(
                ciphertext=row[f"{prefix}_ciphertext"],
                nonce=row[f"{prefix}_nonce"],
                auth_tag=row[f"{prefix}_auth_tag"],
            )
        except KeyError as e:
            raise DecryptionError(f"Envelope column missing: {e.args[0]}") from None


@dataclass(frozen=True)
class WrappedDataKey:
    """
    A data key encrypted under the master key.

    Storage format: base64(nonce(12) || auth_tag(16) || ciphertext(32)).
    """

    nonce: bytes
    auth_tag: bytes
    ciphertext: bytes

    def to_blob(self) -> bytes:
        """Concatenate to the fixed-offset blob layout."""
        return self.nonce + self.auth_tag + self.ciphertext

    @classmethod
    def from_blob(cls, blob: bytes) -> WrappedDataKey:
        """
        Split a blob at its fixed offsets.

        Raises:
            DecryptionError: If blob is shorter than nonce + tag
        """
        if len(blob) < WRAPPED_HEADER_SIZE:
            raise DecryptionError(
                f"Wrapped key too small: expected at least {WRAPPED_HEADER_SIZE} bytes, "
                f"got {len(blob)}"
            )
        return cls(
            nonce=blob[:NONCE_SIZE],
            auth_tag=blob[NONCE_SIZE:WRAPPED_HEADER_SIZE],
            ciphertext=blob[WRAPPED_HEADER_SIZE:],
        )

    def to_base64(self) -> str:
        """Encode as base64 string."""
        return _b64encode(self.to_blob())

    @classmethod
    def from_base64(cls, encoded: str) -> WrappedDataKey:
        """
        Decode from base64 string.

        Raises:
            DecryptionError: If decoding fails or data is too short
        """
        return cls.from_blob(_b64decode(encoded, "wrapped data key"))


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption.

    Every encrypt call draws a fresh random 96-bit nonce, so encrypting the
    same plaintext twice under the same key gives unrelated outputs.
    """

    @staticmethod
    def seal(key: KeyLike, data: bytes) -> Tuple[bytes, bytes, bytes]:
        """
        Encrypt raw bytes.

        Args:
            key: 32-byte encryption key
            data: Bytes to encrypt

        Returns:
            Tuple of (nonce, auth_tag, ciphertext)

        Raises:
            CryptoError: If key size is invalid or encryption fails
        """
        raw_key = _key_bytes(key)
        if len(raw_key) != AES_256_KEY_SIZE:
            raise CryptoError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(raw_key)}"
            )

        nonce = secrets.token_bytes(NONCE_SIZE)
        try:
            sealed = AESGCM(raw_key).encrypt(nonce, data, None)
        except Exception as e:
            raise CryptoError(f"Encryption error: {e}")

        # AESGCM appends the tag to the ciphertext
        return nonce, sealed[-TAG_SIZE:], sealed[:-TAG_SIZE]

    @staticmethod
    def unseal(key: KeyLike, nonce: bytes, auth_tag: bytes, ciphertext: bytes) -> bytes:
        """
        Decrypt raw bytes and verify the tag.

        Raises:
            DecryptionError: On any size mismatch or failed authentication
        """
        raw_key = _key_bytes(key)
        if len(raw_key) != AES_256_KEY_SIZE:
            raise DecryptionError(
                f"Invalid key size: expected {AES_256_KEY_SIZE}, got {len(raw_key)}"
            )
        if len(nonce) != NONCE_SIZE:
            raise DecryptionError(
                f"Invalid nonce size: expected {NONCE_SIZE}, got {len(nonce)}"
            )
        if len(auth_tag) != TAG_SIZE:
            raise DecryptionError(
                f"Invalid tag size: expected {TAG_SIZE}, got {len(auth_tag)}"
            )

        try:
            return AESGCM(raw_key).decrypt(nonce, ciphertext + auth_tag, None)
        except InvalidTag:
            # Generic error to prevent oracle attacks
            raise DecryptionError("Decryption failed") from None

    @classmethod
    def encrypt(cls, plaintext: str, key: KeyLike) -> EncryptedEnvelope:
        """
        Encrypt UTF-8 text with AES-256-GCM.

        Args:
            plaintext: Text to encrypt
            key: 32-byte data key

        Returns:
            EncryptedEnvelope with base64 ciphertext, nonce and auth tag
        """
        nonce, auth_tag, ciphertext = cls.seal(key, plaintext.encode("utf-8"))
        return EncryptedEnvelope(
            ciphertext=_b64encode(ciphertext),
            nonce=_b64encode(nonce),
            auth_tag=_b64encode(auth_tag),
        )

    @classmethod
    def decrypt(cls, envelope: EncryptedEnvelope, key: KeyLike) -> str:
        """
        Decrypt an envelope back to text.

        Args:
            envelope: EncryptedEnvelope produced by encrypt()
            key: 32-byte data key used for encryption

        Returns:
            Decrypted text

        Raises:
            DecryptionError: If any field is malformed, the key is wrong, or
                the data was tampered with
        """
        ciphertext = _b64decode(envelope.ciphertext, "ciphertext")
        nonce = _b64decode(envelope.nonce, "nonce")
        auth_tag = _b64decode(envelope.auth_tag, "auth tag")

        plaintext = cls.unseal(key, nonce, auth_tag, ciphertext)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted payload is not UTF-8 text") from None

