"""
Exception classes for journal vault operations.

Every failure in this package is a subclass of VaultError. None of them is
safe to show to an end user verbatim: request handlers should log the
exception and answer with a generic internal error.
"""

from __future__ import annotations


class VaultError(Exception):
    """Base exception for all journal vault operations."""

    pass


class ConfigurationError(VaultError):
    """Master key missing, not base64, or not exactly 32 bytes."""

    pass


class CryptoError(VaultError):
    """Cryptographic operation failed (encryption, key size, key generation)."""

    pass


class DecryptionError(CryptoError):
    """Authentication failed or the encoded envelope / wrapped key is malformed."""

    pass


class StorageError(VaultError):
    """Key store backend error (database, in-memory, etc.)."""

    pass


class KeyProvisioningError(VaultError):
    """A user's data key could neither be inserted nor read back."""

    pass
