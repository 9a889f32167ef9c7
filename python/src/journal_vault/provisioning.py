"""
Per-user data key provisioning.

Resolves "the data key for user U", creating it on first use. Concurrent
first-use requests may each generate a candidate key, but only the one that
wins the insert into the key store ever becomes authoritative; every loser
re-reads and returns the winner's key.
"""

from __future__ import annotations

import logging
from uuid import UUID

from .crypto import SecureKey
from .errors import KeyProvisioningError, StorageError
from .key_manager import KeyManager
from .storage import InsertOutcome, KeyStore

logger = logging.getLogger("journal_vault.provisioning")


class KeyProvisioningService:
    """
    Maps a user identity to its raw data key.

    Performs at most one generate, one insert and one extra read per call.
    There is no retry loop: a broken store surfaces as an error right away.
    """

    def __init__(self, key_manager: KeyManager, store: KeyStore) -> None:
        """
        Initialize provisioning service.

        Args:
            key_manager: KeyManager holding the master key
            store: KeyStore with a uniqueness constraint on user_id
        """
        self._key_manager = key_manager
        self._store = store

    @property
    def key_manager(self) -> KeyManager:
        return self._key_manager

    async def get_or_create_user_data_key(self, user_id: UUID) -> SecureKey:
        """
        Get a user's data key, creating it on first use.

        Flow:
        1. Look up the wrapped key; if present, unwrap and return it
        2. Otherwise generate and wrap a new key, then insert-if-absent
        3. INSERTED -> return the new key (no read-back)
        4. ALREADY_EXISTS -> a concurrent request won; re-read and unwrap its key

        Args:
            user_id: User UUID

        Returns:
            Raw 32-byte data key

        Raises:
            ConfigurationError: If the master key is not configured
            DecryptionError: If the stored wrapped key does not unwrap
            KeyProvisioningError: If no key could be inserted or read back
        """
        wrapped = await self._store.find(user_id)
        if wrapped is not None:
            return self._key_manager.unwrap_data_key(wrapped)

        data_key = self._key_manager.generate_data_key()
        new_wrapped = self._key_manager.wrap_data_key(data_key)

        try:
            outcome = await self._store.insert_if_absent(user_id, new_wrapped)
        except StorageError as e:
            logger.warning("Data key insert failed for user %s: %s", user_id, e)
            return await self._read_back(user_id, cause=e)

        if outcome is InsertOutcome.INSERTED:
            logger.info("Provisioned data key for user %s", user_id)
            return data_key

        logger.debug("Lost data key creation race for user %s, using stored key", user_id)
        return await self._read_back(user_id)

    async def _read_back(self, user_id: UUID, cause: Exception | None = None) -> SecureKey:
        """Internal: Re-read the row written by a concurrent request."""
        try:
            wrapped = await self._store.find(user_id)
        except StorageError as e:
            raise KeyProvisioningError(
                f"Failed to create or retrieve data key for user {user_id}"
            ) from (cause or e)

        if wrapped is None:
            logger.error("No data key could be created or read for user %s", user_id)
            raise KeyProvisioningError(
                f"Failed to create or retrieve data key for user {user_id}"
            ) from cause
        return self._key_manager.unwrap_data_key(wrapped)
