from unittest.mock import AsyncMock, MagicMock

import pytest

from servicedesk.services.postgres import PostgresConnectionTester, to_asyncpg_dsn, to_plain_dsn


@pytest.mark.asyncio
async def test_postgres_connection_tester(monkeypatch):
    connection_mock = AsyncMock()

    class DummyAcquire:
        async def __aenter__(self):
            return connection_mock

        async def __aexit__(self, exc_type, exc, tb):
            return False

    pool_mock = MagicMock()
    pool_mock.acquire.return_value = DummyAcquire()
    pool_mock.close = AsyncMock()
    captured: dict[str, object] = {}

    async def create_pool(**kwargs):
        captured.update(kwargs)
        return pool_mock

    monkeypatch.setattr("servicedesk.services.postgres.asyncpg.create_pool", create_pool)

    tester = PostgresConnectionTester("postgresql+asyncpg://desk@db/servicedesk")
    assert await tester.test_connection() is True
    connection_mock.fetchval.assert_awaited_with("SELECT 1")
    assert captured["dsn"] == "postgresql://desk@db/servicedesk"

    await tester.close()
    pool_mock.close.assert_awaited()


@pytest.mark.asyncio
async def test_postgres_connection_tester_propagates_failures(monkeypatch):
    async def create_pool(**kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr("servicedesk.services.postgres.asyncpg.create_pool", create_pool)

    tester = PostgresConnectionTester("postgresql://desk@db/servicedesk")
    with pytest.raises(OSError):
        await tester.test_connection()
    await tester.close()


@pytest.mark.parametrize(
    "dsn,expected",
    [
        ("postgresql://u@h/db", "postgresql+asyncpg://u@h/db"),
        ("postgres://u@h/db", "postgresql+asyncpg://u@h/db"),
        ("postgresql+asyncpg://u@h/db", "postgresql+asyncpg://u@h/db"),
        ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
    ],
)
def test_to_asyncpg_dsn(dsn, expected):
    assert to_asyncpg_dsn(dsn) == expected


def test_to_plain_dsn():
    assert to_plain_dsn("postgresql+asyncpg://u@h/db") == "postgresql://u@h/db"
