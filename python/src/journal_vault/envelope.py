"""
Journal text encryption service.

This module provides:
- JournalEncryptionService: encrypt/decrypt journal text on behalf of a user

Architecture:
- MasterKey wraps one DataKey per user (see KeyManager)
- DataKey encrypts each journal text into an EncryptedEnvelope
- Envelopes are stored as three text columns on the owning entry row
"""

from __future__ import annotations

import logging
from typing import Iterable, List
from uuid import UUID

from .crypto import AesGcmCipher, EncryptedEnvelope
from .errors import DecryptionError
from .key_manager import KeyManager
from .provisioning import KeyProvisioningService
from .storage import KeyStore

logger = logging.getLogger("journal_vault.envelope")


class JournalEncryptionService:
    """
    High-level encryption of journal text.

    Resolves the user's data key through KeyProvisioningService on every
    call; nothing is cached between calls.
    """

    def __init__(self, provisioning: KeyProvisioningService) -> None:
        """
        Initialize JournalEncryptionService.

        Args:
            provisioning: KeyProvisioningService resolving per-user data keys
        """
        self._provisioning = provisioning

    @classmethod
    def new(cls, store: KeyStore, key_manager: KeyManager | None = None) -> JournalEncryptionService:
        """
        Wire up a service from a key store.

        Args:
            store: KeyStore backend
            key_manager: KeyManager; one reading ENCRYPTION_MASTER_KEY lazily if omitted

        Returns:
            JournalEncryptionService instance
        """
        manager = key_manager if key_manager is not None else KeyManager()
        return cls(KeyProvisioningService(manager, store))

    async def encrypt_text(self, user_id: UUID, text: str) -> EncryptedEnvelope:
        """
        Encrypt journal text for a user.

        Args:
            user_id: Owner of the text
            text: Plaintext transcript

        Returns:
            EncryptedEnvelope ready for storage
        """
        data_key = await self._provisioning.get_or_create_user_data_key(user_id)
        return AesGcmCipher.encrypt(text, data_key)

    async def decrypt_text(self, user_id: UUID, envelope: EncryptedEnvelope) -> str:
        """
        Decrypt journal text for a user.

        Raises:
            DecryptionError: If the envelope was not produced with this user's key
                or has been altered
        """
        data_key = await self._provisioning.get_or_create_user_data_key(user_id)
        return AesGcmCipher.decrypt(envelope, data_key)

    async def decrypt_many(
        self,
        user_id: UUID,
        envelopes: Iterable[EncryptedEnvelope],
        skip_failures: bool = False,
    ) -> List[str]:
        """
        Decrypt several envelopes with one key lookup.

        Args:
            user_id: Owner of the envelopes
            envelopes: Envelopes to decrypt, in order
            skip_failures: Log and drop envelopes that fail to decrypt instead
                of raising (summary jobs use this to work with what is readable)

        Returns:
            Decrypted texts in input order, minus skipped failures
        """
        data_key = await self._provisioning.get_or_create_user_data_key(user_id)
        texts: List[str] = []
        failed = 0
        for envelope in envelopes:
            try:
                texts.append(AesGcmCipher.decrypt(envelope, data_key))
            except DecryptionError:
                if not skip_failures:
                    raise
                failed += 1
        if failed:
            logger.error(
                "Skipped %d undecryptable entries for user %s", failed, user_id
            )
        return texts
