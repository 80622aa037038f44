"""
Tests for the database connection manager
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import OperationalError

from casecore.core.database import DatabaseConnectionManager


async def test_validate_connection(db_manager):
    assert await db_manager.validate_connection(force=True) is True
    # Cached result within the validation interval
    assert await db_manager.validate_connection() is True


async def test_session_with_retry_returns_working_session(db_manager):
    session = await db_manager.get_session_with_retry(max_retries=1, retry_delay=0)
    try:
        assert session.is_active
    finally:
        await session.close()


async def test_session_with_retry_recovers_from_transient_failure():
    manager = DatabaseConnectionManager("sqlite+aiosqlite:///:memory:")
    failing = AsyncMock()
    failing.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("refused")))
    healthy = AsyncMock()
    manager.session_factory = MagicMock(side_effect=[failing, healthy])

    session = await manager.get_session_with_retry(max_retries=2, retry_delay=0)

    assert session is healthy
    failing.close.assert_awaited_once()


async def test_session_with_retry_gives_up():
    manager = DatabaseConnectionManager("sqlite+aiosqlite:///:memory:")
    broken = AsyncMock()
    broken.execute = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("refused")))
    manager.session_factory = MagicMock(return_value=broken)

    with pytest.raises(OperationalError):
        await manager.get_session_with_retry(max_retries=2, retry_delay=0)

    assert manager.session_factory.call_count == 3


async def test_unreachable_database_fails_validation(tmp_path):
    manager = DatabaseConnectionManager(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'db.sqlite'}")
    try:
        assert await manager.validate_connection(force=True) is False
    finally:
        await manager.dispose()
