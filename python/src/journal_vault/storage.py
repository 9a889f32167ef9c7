"""
Storage abstractions for wrapped data keys.

This module provides:
- KeyStore: Abstract interface for key store backends
- InMemoryKeyStore: asyncio-safe in-memory implementation for testing
- Supporting data structures: InsertOutcome, StoredUserKey

A key store holds exactly one row per user: {user_id (unique), wrapped_data_key}.
Backends must enforce the uniqueness of user_id and report a duplicate insert
as InsertOutcome.ALREADY_EXISTS, never by overwriting the existing row.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID


class InsertOutcome(Enum):
    """Result of a conditional insert."""

    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"

    def __str__(self) -> str:
        return self.value


@dataclass
class StoredUserKey:
    """A user's wrapped data key as persisted."""

    user_id: UUID
    wrapped_data_key: str  # base64(nonce || auth_tag || ciphertext)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class KeyStore(ABC):
    """
    Abstract storage interface for wrapped data keys.

    All methods are async to support both in-memory and database backends.
    Retry and timeout policy belongs to the backend client, not to callers.
    """

    @abstractmethod
    async def find(self, user_id: UUID) -> Optional[str]:
        """Get the wrapped data key for a user, or None if there is no row."""
        ...

    @abstractmethod
    async def insert_if_absent(self, user_id: UUID, wrapped_data_key: str) -> InsertOutcome:
        """Insert a row for user_id unless one already exists."""
        ...

    @abstractmethod
    async def replace(self, user_id: UUID, expected: str, wrapped_data_key: str) -> bool:
        """
        Overwrite a user's wrapped key if it still equals `expected`.

        Returns:
            True if the row was updated, False if it was missing or had changed
        """
        ...

    @abstractmethod
    async def list_user_keys(
        self, after: Optional[UUID] = None, limit: int = 100
    ) -> List[StoredUserKey]:
        """List rows ordered by user_id, starting strictly after `after`."""
        ...

    @abstractmethod
    async def delete(self, user_id: UUID) -> bool:
        """Delete a user's key row. Returns True if a row was removed."""
        ...


class InMemoryKeyStore(KeyStore):
    """
    In-memory key store for tests and benchmarks.

    Uses asyncio.Lock for safe concurrent access.
    """

    def __init__(self) -> None:
        self._rows: Dict[UUID, StoredUserKey] = {}
        self._lock = asyncio.Lock()

    async def find(self, user_id: UUID) -> Optional[str]:
        """Get the wrapped data key for a user."""
        async with self._lock:
            row = self._rows.get(user_id)
            return row.wrapped_data_key if row else None

    async def insert_if_absent(self, user_id: UUID, wrapped_data_key: str) -> InsertOutcome:
        """Insert a row unless the user already has one."""
        async with self._lock:
            if user_id in self._rows:
                return InsertOutcome.ALREADY_EXISTS
            self._rows[user_id] = StoredUserKey(
                user_id=user_id, wrapped_data_key=wrapped_data_key
            )
            return InsertOutcome.INSERTED

    async def replace(self, user_id: UUID, expected: str, wrapped_data_key: str) -> bool:
        """Compare-and-swap a user's wrapped key."""
        async with self._lock:
            row = self._rows.get(user_id)
            if row is None or row.wrapped_data_key != expected:
                return False
            row.wrapped_data_key = wrapped_data_key
            return True

    async def list_user_keys(
        self, after: Optional[UUID] = None, limit: int = 100
    ) -> List[StoredUserKey]:
        """List rows in user_id order."""
        async with self._lock:
            ids = sorted(uid for uid in self._rows if after is None or uid > after)
            return [
                StoredUserKey(
                    user_id=uid,
                    wrapped_data_key=self._rows[uid].wrapped_data_key,
                    created_at=self._rows[uid].created_at,
                )
                for uid in ids[:limit]
            ]

    async def delete(self, user_id: UUID) -> bool:
        """Delete a user's key row."""
        async with self._lock:
            return self._rows.pop(user_id, None) is not None

    def __len__(self) -> int:
        return len(self._rows)
