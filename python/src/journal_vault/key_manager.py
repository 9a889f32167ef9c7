"""
Key manager for the two-tier master key / data key hierarchy.

This module provides:
- KeyManager: data key generation, wrapping, unwrapping and re-wrapping

Architecture:
- MasterKey: one per deployment, supplied by configuration, never persisted
- DataKey: one per user, persisted only as a WrappedDataKey

Hierarchy: MasterKey -> WrappedDataKey (per user) -> EncryptedEnvelope (per entry)
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from .config import parse_master_key, resolve_master_key
from .crypto import (
    AES_256_KEY_SIZE,
    AesGcmCipher,
    KeyLike,
    SecureKey,
    WrappedDataKey,
)
from .errors import CryptoError, DecryptionError

logger = logging.getLogger("journal_vault.key_manager")


class KeyManager:
    """
    Wraps and unwraps per-user data keys under the master key.

    The master key is normally injected once at the composition root. When
    it is not, it is resolved from configuration on the first wrap/unwrap
    and kept for the lifetime of the instance, so a misconfigured deployment
    fails with ConfigurationError on its first cryptographic operation.
    """

    def __init__(self, master_key: Optional[KeyLike] = None) -> None:
        """
        Initialize KeyManager.

        Args:
            master_key: 32-byte master key; resolved lazily from
                ENCRYPTION_MASTER_KEY when omitted

        Raises:
            ConfigurationError: If an explicit master key is not 32 bytes
        """
        if isinstance(master_key, SecureKey):
            master_key = master_key.as_bytes()
        self._master_key: Optional[SecureKey] = (
            parse_master_key(master_key, name="master key") if master_key is not None else None
        )

    @classmethod
    def from_env(cls) -> KeyManager:
        """Create a KeyManager with the master key resolved eagerly from configuration."""
        return cls(resolve_master_key())

    @property
    def master_key(self) -> SecureKey:
        """Get the master key, resolving it from configuration on first access."""
        if self._master_key is None:
            self._master_key = resolve_master_key()
        return self._master_key

    @staticmethod
    def generate_data_key() -> SecureKey:
        """Generate a fresh 32-byte data key."""
        return SecureKey.generate()

    def wrap_data_key(self, data_key: KeyLike) -> str:
        """
        Encrypt a data key under the master key.

        Args:
            data_key: Raw 32-byte data key

        Returns:
            base64(nonce || auth_tag || ciphertext)
        """
        return self._wrap(self.master_key, data_key)

    def unwrap_data_key(self, wrapped: str) -> SecureKey:
        """
        Decrypt a wrapped data key under the master key.

        Args:
            wrapped: base64(nonce || auth_tag || ciphertext)

        Returns:
            Raw data key

        Raises:
            ConfigurationError: If the master key is not configured
            DecryptionError: If the blob is malformed or fails authentication
        """
        return self._unwrap(self.master_key, wrapped)

    def rewrap_data_key(self, wrapped: str, new_master_key: Union[str, KeyLike]) -> str:
        """
        Re-wrap a data key from the current master key to a new one.

        This is the only rotation primitive. Applying it to every stored row
        and switching the configured master key is up to the caller.

        Args:
            wrapped: Data key wrapped under the current master key
            new_master_key: Target master key as base64 text, raw bytes or a SecureKey

        Returns:
            The same data key wrapped under new_master_key

        Raises:
            ConfigurationError: If new_master_key is not a valid 32-byte key
            DecryptionError: If wrapped does not unwrap under the current key
        """
        target = parse_master_key(new_master_key, name="new master key")
        data_key = self.unwrap_data_key(wrapped)
        return self._wrap(target, data_key)

    def is_wrapped_under(self, wrapped: str, master_key: KeyLike) -> bool:
        """Return True if wrapped authenticates under master_key."""
        try:
            self._unwrap(master_key, wrapped)
        except DecryptionError:
            return False
        return True

    @staticmethod
    def _wrap(master_key: KeyLike, data_key: KeyLike) -> str:
        raw = data_key.as_bytes() if isinstance(data_key, SecureKey) else bytes(data_key)
        if len(raw) != AES_256_KEY_SIZE:
            raise CryptoError(
                f"Invalid data key size: expected {AES_256_KEY_SIZE}, got {len(raw)}"
            )
        nonce, auth_tag, ciphertext = AesGcmCipher.seal(master_key, raw)
        return WrappedDataKey(nonce=nonce, auth_tag=auth_tag, ciphertext=ciphertext).to_base64()

    @staticmethod
    def _unwrap(master_key: KeyLike, wrapped: str) -> SecureKey:
        blob = WrappedDataKey.from_base64(wrapped)
        raw = AesGcmCipher.unseal(master_key, blob.nonce, blob.auth_tag, blob.ciphertext)
        if len(raw) != AES_256_KEY_SIZE:
            logger.warning("Unwrapped data key has unexpected length %d", len(raw))
            raise DecryptionError("Unwrapped data key has wrong length")
        return SecureKey(raw)
