"""
Journal Vault

Envelope encryption for per-user journal text: a deployment-wide master key
wraps one data key per user, and each user's data key encrypts their entries
with AES-256-GCM.

Overview
--------
- **Master key** comes from ENCRYPTION_MASTER_KEY and is never persisted
- **Data keys** are generated once per user and stored only wrapped
- **Envelopes** carry ciphertext, nonce and auth tag as three base64 fields

Quick Start
-----------
```python
import asyncio
import asyncpg
from uuid import uuid4
from journal_vault import (
    JournalEncryptionService,
    KeyManager,
    PostgresKeyStore,
)

async def main():
    pool = await asyncpg.create_pool("postgresql://localhost/journal")
    store = PostgresKeyStore(pool)
    service = JournalEncryptionService.new(store, KeyManager.from_env())

    user_id = uuid4()
    envelope = await service.encrypt_text(user_id, "Hello, journal.")
    row = envelope.to_record()  # text_ciphertext / text_nonce / text_auth_tag

    text = await service.decrypt_text(user_id, envelope)

asyncio.run(main())
```

Modules
-------
- `crypto`: AES-256-GCM primitives and envelope / wrapped-key formats
- `config`: Master key resolution
- `key_manager`: Data key generation, wrapping and re-wrapping
- `storage`: Key store interface and in-memory store
- `postgres_storage`: PostgreSQL key store
- `provisioning`: Per-user data key get-or-create
- `envelope`: Journal text encryption service
- `rotation`: Master key rotation runner
- `errors`: Error types
"""

__version__ = "0.1.0"

# ============================================================================
# Crypto Exports
# ============================================================================

from .crypto import (
    AES_256_KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    AesGcmCipher,
    EncryptedEnvelope,
    SecureKey,
    WrappedDataKey,
)

# ============================================================================
# Error Exports
# ============================================================================

from .errors import (
    ConfigurationError,
    CryptoError,
    DecryptionError,
    KeyProvisioningError,
    StorageError,
    VaultError,
)

# ============================================================================
# Configuration / Key Management Exports
# ============================================================================

from .config import generate_master_key, resolve_master_key
from .key_manager import KeyManager

# ============================================================================
# Storage Exports
# ============================================================================

from .storage import InMemoryKeyStore, InsertOutcome, KeyStore, StoredUserKey
from .postgres_storage import PostgresKeyStore

# ============================================================================
# Service Exports
# ============================================================================

from .provisioning import KeyProvisioningService
from .envelope import JournalEncryptionService
from .rotation import MasterKeyRotation, RotationResult

# ============================================================================
# Public API
# ============================================================================

__all__ = [
    # Version
    "__version__",
    # Crypto
    "AES_256_KEY_SIZE",
    "NONCE_SIZE",
    "TAG_SIZE",
    "AesGcmCipher",
    "EncryptedEnvelope",
    "SecureKey",
    "WrappedDataKey",
    # Errors
    "VaultError",
    "ConfigurationError",
    "CryptoError",
    "DecryptionError",
    "KeyProvisioningError",
    "StorageError",
    # Key management
    "generate_master_key",
    "resolve_master_key",
    "KeyManager",
    # Storage
    "KeyStore",
    "InMemoryKeyStore",
    "InsertOutcome",
    "StoredUserKey",
    "PostgresKeyStore",
    # Services
    "KeyProvisioningService",
    "JournalEncryptionService",
    "MasterKeyRotation",
    "RotationResult",
]
