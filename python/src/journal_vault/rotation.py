"""
Master key rotation: batch re-wrapping of every stored data key.

Walks the key store in user_id order and re-wraps each row from the current
master key to a new one. Each row is written with a compare-and-swap, so
the run can be interrupted and restarted: rows already wrapped under the new
key are detected and skipped. There is no atomicity across rows.

Once a run reports failed == 0, the operator switches ENCRYPTION_MASTER_KEY
to the new key. Until then the old key must stay configured.

Security Note:
    Data keys exist in memory only while their row is being re-wrapped.
    Never log key material or wrapped values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

from .config import parse_master_key
from .crypto import KeyLike
from .errors import DecryptionError, StorageError
from .key_manager import KeyManager
from .storage import KeyStore

logger = logging.getLogger("journal_vault.rotation")


@dataclass
class RotationResult:
    """Counts from one rotation run."""

    total: int = 0
    rotated: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def complete(self) -> bool:
        return self.failed == 0

    def __str__(self) -> str:
        return (
            f"{self.rotated} rotated, {self.skipped} skipped, "
            f"{self.failed} failed of {self.total}"
        )


class MasterKeyRotation:
    """Re-wraps every user's data key under a new master key."""

    def __init__(self, key_manager: KeyManager, store: KeyStore) -> None:
        """
        Args:
            key_manager: KeyManager holding the current master key
            store: KeyStore to migrate
        """
        self._key_manager = key_manager
        self._store = store

    async def run(
        self, new_master_key: Union[str, KeyLike], batch_size: int = 100
    ) -> RotationResult:
        """
        Re-wrap all stored data keys.

        Args:
            new_master_key: Target master key (base64 text, raw bytes or a SecureKey)
            batch_size: Rows fetched per page

        Returns:
            RotationResult with per-row counts

        Raises:
            ConfigurationError: If either master key is invalid
            StorageError: If a page of rows cannot be listed
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        target = parse_master_key(new_master_key, name="new master key")
        # Fail on a missing current key before touching any row
        _ = self._key_manager.master_key

        result = RotationResult()
        after: Optional[UUID] = None
        batch_num = 0

        logger.info("Starting master key rotation (batch_size=%d)", batch_size)

        while True:
            rows = await self._store.list_user_keys(after=after, limit=batch_size)
            if not rows:
                break

            batch_num += 1
            logger.info("Processing batch %d (%d rows)", batch_num, len(rows))

            for row in rows:
                result.total += 1
                if self._key_manager.is_wrapped_under(row.wrapped_data_key, target):
                    result.skipped += 1
                    continue
                try:
                    rewrapped = self._key_manager.rewrap_data_key(
                        row.wrapped_data_key, target.as_bytes()
                    )
                    replaced = await self._store.replace(
                        row.user_id, row.wrapped_data_key, rewrapped
                    )
                except (DecryptionError, StorageError) as err:
                    logger.error("Error rotating data key for user %s: %s", row.user_id, err)
                    result.failed += 1
                    continue

                if replaced:
                    result.rotated += 1
                else:
                    # Row changed or vanished since it was listed
                    logger.warning("Data key for user %s changed during rotation", row.user_id)
                    result.failed += 1

            after = rows[-1].user_id

        logger.info("Master key rotation complete: %s", result)
        return result
