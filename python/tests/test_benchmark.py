"""
Tests for the benchmark entry point's resource handling.
"""

from __future__ import annotations

import pytest

from journal_vault import benchmark
from journal_vault.config import DATABASE_URL_ENV


class FakePool:
    def __init__(self) -> None:
        self.closed = False
        self.statements = []

    async def execute(self, query, *args):
        self.statements.append(query)
        return "OK"

    async def close(self) -> None:
        self.closed = True


class TestRunBenchmark:
    async def test_pool_closed_when_a_demo_fails(self, monkeypatch, configured_master_key):
        pool = FakePool()

        async def create_pool(dsn):
            return pool

        async def failing_demos(key_manager, store):
            raise RuntimeError("demo failed")

        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql://localhost/journal_test")
        monkeypatch.setattr(benchmark.asyncpg, "create_pool", create_pool)
        monkeypatch.setattr(benchmark, "_run_demos", failing_demos)

        with pytest.raises(RuntimeError):
            await benchmark.run_benchmark()

        assert pool.closed
        assert any("CREATE TABLE" in q for q in pool.statements)
