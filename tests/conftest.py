"""
Shared fixtures: a throwaway SQLite database per test
"""

import pytest

from casecore.core.config import settings
from casecore.core.database import DatabaseConnectionManager
from casecore.services.identifier_allocator import default_reservations
from casecore.services.lifecycle import CaseLifecycle


@pytest.fixture
async def db_manager(tmp_path, monkeypatch):
    # A file rather than :memory: so separate sessions share one database
    monkeypatch.setattr(settings, "TESTING", True)
    default_reservations.clear()
    manager = DatabaseConnectionManager(f"sqlite+aiosqlite:///{tmp_path / 'casecore.db'}")
    await manager.create_all()
    yield manager
    await manager.dispose()
    default_reservations.clear()


@pytest.fixture
def session_factory(db_manager):
    return db_manager.create_session_factory()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def lifecycle(db_session):
    return CaseLifecycle(db_session)


@pytest.fixture
async def client(lifecycle):
    return await lifecycle.create_client("Ada", "Karimi", "0012345678", ["+98 912 000 0000"])
