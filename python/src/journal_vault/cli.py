"""
Operator commands.

Usage:
    journal-vault-keygen
        Print a new base64 master key.

    journal-vault-rotate
        Re-wrap every row in user_keys from ENCRYPTION_MASTER_KEY to
        NEW_ENCRYPTION_MASTER_KEY. Requires DATABASE_URL. Safe to re-run.
"""

from __future__ import annotations

import asyncio
import logging
import sys

import asyncpg

from journal_vault.config import (
    DATABASE_URL_ENV,
    NEW_MASTER_KEY_ENV,
    generate_master_key,
    get_setting,
)
from journal_vault.errors import ConfigurationError, StorageError
from journal_vault.key_manager import KeyManager
from journal_vault.postgres_storage import PostgresKeyStore
from journal_vault.rotation import MasterKeyRotation


async def run_rotation() -> int:
    """Rotate all stored data keys to the new master key. Returns an exit code."""
    database_url = get_setting(DATABASE_URL_ENV)
    if not database_url:
        print(f"ERROR: {DATABASE_URL_ENV} must be set in environment or .env file")
        return 1

    try:
        key_manager = KeyManager.from_env()
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return 1

    pool = await asyncpg.create_pool(database_url)
    if pool is None:
        print("ERROR: Failed to create connection pool")
        return 1

    try:
        store = PostgresKeyStore(pool)
        result = await MasterKeyRotation(key_manager, store).run(
            get_setting(NEW_MASTER_KEY_ENV)
        )
    except (ConfigurationError, StorageError) as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        await pool.close()

    print(f"[{'OK' if result.complete else 'ERROR'}] {result}")
    if result.complete:
        print(f"Switch {NEW_MASTER_KEY_ENV} into ENCRYPTION_MASTER_KEY and restart.")
        return 0
    print("Some rows were not rotated; keep the current master key and re-run.")
    return 2


def rotate_main() -> None:
    """CLI entry point for journal-vault-rotate command."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    sys.exit(asyncio.run(run_rotation()))


def keygen_main() -> None:
    """CLI entry point for journal-vault-keygen command."""
    print(generate_master_key())


if __name__ == "__main__":
    rotate_main()
