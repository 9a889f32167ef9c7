"""
PostgreSQL storage backend for wrapped data keys.

This module provides:
- PostgresKeyStore: asyncpg-backed KeyStore over the user_keys table

Table layout:
- user_keys(user_id UUID UNIQUE, wrapped_data_key TEXT, created_at TIMESTAMPTZ)

The UNIQUE constraint on user_id is what makes first-use provisioning safe
under concurrent requests: a losing INSERT hits ON CONFLICT DO NOTHING and
returns no row, which is reported as InsertOutcome.ALREADY_EXISTS.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

import asyncpg

from .errors import StorageError
from .storage import InsertOutcome, KeyStore, StoredUserKey

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS user_keys (
    user_id UUID PRIMARY KEY,
    wrapped_data_key TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""


class PostgresKeyStore(KeyStore):
    """
    PostgreSQL key store.

    Stores only wrapped data keys; raw key material never reaches the database.
    """

    def __init__(self, pool: asyncpg.Pool, table: str = "user_keys") -> None:
        """
        Initialize PostgreSQL key store.

        Args:
            pool: asyncpg connection pool
            table: Key table name
        """
        self._pool = pool
        self._table = table

    async def ensure_schema(self) -> None:
        """Create the key table if it does not exist."""
        try:
            await self._pool.execute(SCHEMA_SQL.replace("user_keys", self._table, 1))
        except Exception as e:
            raise StorageError(f"Failed to create key table: {e}")

    async def find(self, user_id: UUID) -> Optional[str]:
        """
        Get a user's wrapped data key.

        Args:
            user_id: User UUID

        Returns:
            Wrapped key text if found, None otherwise
        """
        query = f"SELECT wrapped_data_key FROM {self._table} WHERE user_id = $1"
        try:
            return await self._pool.fetchval(query, user_id)
        except Exception as e:
            raise StorageError(f"Failed to get user key: {e}")

    async def insert_if_absent(self, user_id: UUID, wrapped_data_key: str) -> InsertOutcome:
        """
        Insert a user's wrapped data key unless a row already exists.

        Args:
            user_id: User UUID
            wrapped_data_key: base64 wrapped key

        Returns:
            INSERTED, or ALREADY_EXISTS if the unique constraint was hit
        """
        query = f"""
            INSERT INTO {self._table} (user_id, wrapped_data_key)
            VALUES ($1, $2)
            ON CONFLICT (user_id) DO NOTHING
            RETURNING user_id
        """
        try:
            inserted = await self._pool.fetchval(query, user_id, wrapped_data_key)
        except Exception as e:
            raise StorageError(f"Failed to insert user key: {e}")
        return InsertOutcome.INSERTED if inserted is not None else InsertOutcome.ALREADY_EXISTS

    async def replace(self, user_id: UUID, expected: str, wrapped_data_key: str) -> bool:
        """
        Compare-and-swap a user's wrapped data key.

        Returns:
            True if updated, False if the row is gone or was changed concurrently
        """
        query = f"""
            UPDATE {self._table}
            SET wrapped_data_key = $3
            WHERE user_id = $1 AND wrapped_data_key = $2
        """
        try:
            status = await self._pool.execute(query, user_id, expected, wrapped_data_key)
        except Exception as e:
            raise StorageError(f"Failed to replace user key: {e}")
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        return status.split()[-1] == "1"

    async def list_user_keys(
        self, after: Optional[UUID] = None, limit: int = 100
    ) -> List[StoredUserKey]:
        """
        List rows ordered by user_id (keyset pagination).

        Args:
            after: Last user_id of the previous page, None for the first page
            limit: Page size

        Returns:
            List of StoredUserKey
        """
        if after is None:
            query = f"""
                SELECT user_id, wrapped_data_key, created_at FROM {self._table}
                ORDER BY user_id LIMIT $1
            """
            args = (limit,)
        else:
            query = f"""
                SELECT user_id, wrapped_data_key, created_at FROM {self._table}
                WHERE user_id > $2 ORDER BY user_id LIMIT $1
            """
            args = (limit, after)
        try:
            rows = await self._pool.fetch(query, *args)
        except Exception as e:
            raise StorageError(f"Failed to list user keys: {e}")
        return [self._row_to_stored_key(row) for row in rows]

    async def delete(self, user_id: UUID) -> bool:
        """Delete a user's key row."""
        query = f"DELETE FROM {self._table} WHERE user_id = $1"
        try:
            status = await self._pool.execute(query, user_id)
        except Exception as e:
            raise StorageError(f"Failed to delete user key: {e}")
        return status.split()[-1] != "0"

    async def count(self) -> int:
        """Count stored key rows."""
        try:
            return await self._pool.fetchval(f"SELECT COUNT(*) FROM {self._table}")
        except Exception as e:
            raise StorageError(f"Failed to count user keys: {e}")

    @staticmethod
    def _row_to_stored_key(row: asyncpg.Record) -> StoredUserKey:
        """Convert database row to StoredUserKey."""
        return StoredUserKey(
            user_id=row["user_id"],
            wrapped_data_key=row["wrapped_data_key"],
            created_at=row["created_at"],
        )
