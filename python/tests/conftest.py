"""
Pytest configuration and fixtures for journal vault tests.
"""

from __future__ import annotations

import base64
import os
from pathlib import Path
from typing import AsyncGenerator

import asyncpg
import pytest
from dotenv import dotenv_values

import journal_vault.config
from journal_vault import (
    InMemoryKeyStore,
    JournalEncryptionService,
    KeyManager,
    KeyProvisioningService,
    PostgresKeyStore,
    SecureKey,
)
from journal_vault.config import MASTER_KEY_ENV

MASTER_KEY_BYTES = b"\x01" * 32
OTHER_MASTER_KEY_BYTES = bytes(range(32))


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer `.env` from leaking settings into tests."""
    monkeypatch.setattr(journal_vault.config, "_dotenv_loaded", True)


@pytest.fixture
def master_key() -> SecureKey:
    """32 bytes of 0x01."""
    return SecureKey(MASTER_KEY_BYTES)


@pytest.fixture
def master_key_b64() -> str:
    return base64.b64encode(MASTER_KEY_BYTES).decode("ascii")


@pytest.fixture
def new_master_key_b64() -> str:
    return base64.b64encode(OTHER_MASTER_KEY_BYTES).decode("ascii")


@pytest.fixture
def configured_master_key(monkeypatch: pytest.MonkeyPatch, master_key_b64: str) -> str:
    """Set ENCRYPTION_MASTER_KEY for the duration of a test."""
    monkeypatch.setenv(MASTER_KEY_ENV, master_key_b64)
    return master_key_b64


@pytest.fixture
def key_manager(master_key: SecureKey) -> KeyManager:
    return KeyManager(master_key)


@pytest.fixture
def memory_store() -> InMemoryKeyStore:
    """Create an in-memory key store instance for testing."""
    return InMemoryKeyStore()


@pytest.fixture
def provisioning(key_manager: KeyManager, memory_store: InMemoryKeyStore) -> KeyProvisioningService:
    return KeyProvisioningService(key_manager, memory_store)


@pytest.fixture
def journal_service(provisioning: KeyProvisioningService) -> JournalEncryptionService:
    return JournalEncryptionService(provisioning)


@pytest.fixture
async def pg_pool() -> AsyncGenerator[asyncpg.Pool, None]:
    """Create a PostgreSQL connection pool for testing."""
    # Only DATABASE_URL is taken from the project root .env
    env_path = Path(__file__).parent.parent.parent / ".env"
    database_url = os.environ.get("DATABASE_URL") or dotenv_values(env_path).get("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set, skipping PostgreSQL tests")

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        pytest.skip("Failed to create PostgreSQL connection pool")

    yield pool

    await pool.close()


@pytest.fixture
async def postgres_store(pg_pool: asyncpg.Pool) -> PostgresKeyStore:
    """Create a PostgreSQL key store on a freshly truncated table."""
    store = PostgresKeyStore(pg_pool, table="user_keys_test")
    await store.ensure_schema()
    await pg_pool.execute("TRUNCATE TABLE user_keys_test")
    return store
