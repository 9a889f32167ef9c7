"""
Journal Vault Benchmark CLI.

Usage:
    journal-vault-benchmark

Or run directly:
    python -m journal_vault.benchmark

Uses PostgreSQL when DATABASE_URL is set (environment or .env file),
otherwise an in-memory key store. ENCRYPTION_MASTER_KEY must be set.
"""

from __future__ import annotations

import asyncio
import sys
import time
from typing import Optional
from uuid import uuid4

import asyncpg

from journal_vault.config import (
    DATABASE_URL_ENV,
    generate_master_key,
    get_setting,
    parse_master_key,
)
from journal_vault.crypto import AesGcmCipher
from journal_vault.errors import ConfigurationError
from journal_vault.key_manager import KeyManager
from journal_vault.postgres_storage import PostgresKeyStore
from journal_vault.provisioning import KeyProvisioningService
from journal_vault.rotation import MasterKeyRotation
from journal_vault.storage import InMemoryKeyStore, KeyStore

SAMPLE_ENTRY = (
    "Walked to the lake before work. Felt calmer than yesterday; "
    "the meeting went fine and I finally called my sister. "
) * 20


def _banner(title: str) -> None:
    print("+" + "-" * 68 + "+")
    print(f"|  {title}".ljust(69) + "|")
    print("+" + "-" * 68 + "+")


async def run_benchmark() -> None:
    """Run the journal vault benchmark."""
    print("=== Journal Vault Benchmark ===\n")

    try:
        key_manager = KeyManager.from_env()
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    pool: Optional[asyncpg.Pool] = None
    store: KeyStore
    database_url = get_setting(DATABASE_URL_ENV)
    if database_url:
        pool = await asyncpg.create_pool(database_url)
        if pool is None:
            print("ERROR: Failed to create connection pool")
            sys.exit(1)

    try:
        if pool is not None:
            pg_store = PostgresKeyStore(pool)
            await pg_store.ensure_schema()
            try:
                await pool.execute("TRUNCATE TABLE user_keys")
                print("[STARTUP] user_keys truncated")
            except Exception:
                print("[STARTUP] user_keys could not be truncated")
            store = pg_store
        else:
            print("[STARTUP] DATABASE_URL not set, using in-memory key store")
            store = InMemoryKeyStore()

        await _run_demos(key_manager, store)
    finally:
        if pool is not None:
            await pool.close()


async def _run_demos(key_manager: KeyManager, store: KeyStore) -> None:
    try:
        user_input = input("Enter number of users to test (default: 125): ").strip()
        test_quantity = int(user_input) if user_input else 125
    except (ValueError, EOFError):
        test_quantity = 125
    test_quantity = max(test_quantity, 1)
    print(f"Testing with {test_quantity} users\n")

    provisioning = KeyProvisioningService(key_manager, store)

    # ========================================================================
    # Demo 1: Provision data keys
    # ========================================================================
    _banner(f"Demo 1: Provision {test_quantity} User Data Keys")

    user_ids = [uuid4() for _ in range(test_quantity)]
    demo1_start = time.perf_counter()
    for i, user_id in enumerate(user_ids):
        await provisioning.get_or_create_user_data_key(user_id)
        if (i + 1) % 25 == 0 or (i + 1) == test_quantity:
            print(f"  Progress: {i + 1}/{test_quantity}")
    demo1_duration = time.perf_counter() - demo1_start

    print(f"[OK] Provisioned {test_quantity} data keys")
    print(f"[PERF] Time: {demo1_duration * 1000:.3f}ms | Rate: {test_quantity / demo1_duration:.2f} ops/sec\n")

    # ========================================================================
    # Demo 2: Concurrent first use
    # ========================================================================
    _banner("Demo 2: Concurrent First-Use Race (20 requests, 1 user)")

    race_user = uuid4()
    race_start = time.perf_counter()
    keys = await asyncio.gather(
        *(provisioning.get_or_create_user_data_key(race_user) for _ in range(20))
    )
    race_duration = time.perf_counter() - race_start
    distinct = {k.as_bytes() for k in keys}
    status = "OK" if len(distinct) == 1 else "ERROR"
    print(f"[{status}] {len(distinct)} distinct key(s) returned")
    print(f"[PERF] Time: {race_duration * 1000:.3f}ms\n")

    # ========================================================================
    # Demo 3: Encryption/decryption
    # ========================================================================
    _banner("Demo 3: Entry Encryption/Decryption")

    data_key = await provisioning.get_or_create_user_data_key(user_ids[0])

    encrypt_start = time.perf_counter()
    envelope = AesGcmCipher.encrypt(SAMPLE_ENTRY, data_key)
    encrypt_time = time.perf_counter() - encrypt_start

    lookup_start = time.perf_counter()
    recovered_key = await provisioning.get_or_create_user_data_key(user_ids[0])
    lookup_time = time.perf_counter() - lookup_start

    decrypt_start = time.perf_counter()
    decrypted = AesGcmCipher.decrypt(envelope, recovered_key)
    decrypt_time = time.perf_counter() - decrypt_start

    status = "OK" if decrypted == SAMPLE_ENTRY else "ERROR"
    print(f"[{status}] {len(SAMPLE_ENTRY)} chars encrypted/decrypted")
    print(f"[PERF] Encryption:     {encrypt_time * 1000:.3f}ms")
    print(f"[PERF] Key lookup:     {lookup_time * 1000:.3f}ms")
    print(f"[PERF] Decryption:     {decrypt_time * 1000:.3f}ms\n")

    # ========================================================================
    # Demo 4: Master key rotation
    # ========================================================================
    _banner("Demo 4: Master Key Rotation")

    new_master_key = generate_master_key()
    rotation_start = time.perf_counter()
    result = await MasterKeyRotation(key_manager, store).run(new_master_key, batch_size=50)
    rotation_duration = time.perf_counter() - rotation_start

    print(f"[{'OK' if result.complete else 'ERROR'}] {result}")
    print(f"[PERF] Time: {rotation_duration * 1000:.3f}ms | Rate: {result.total / rotation_duration:.2f} rows/sec")

    rotated_manager = KeyManager(parse_master_key(new_master_key))
    rotated_key = await KeyProvisioningService(rotated_manager, store).get_or_create_user_data_key(user_ids[0])
    status = "OK" if rotated_key == data_key else "ERROR"
    print(f"[{status}] Data key unchanged after rotation\n")

    print("=" * 70)
    print("                    BENCHMARK COMPLETE")
    print("=" * 70 + "\n")


def main() -> None:
    """CLI entry point for journal-vault-benchmark command."""
    asyncio.run(run_benchmark())


if __name__ == "__main__":
    main()
