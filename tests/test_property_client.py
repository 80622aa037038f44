"""
Property-based tests for client creation and the national ID registry
"""

import asyncio
from datetime import datetime, timedelta, UTC

import pytest
from hypothesis import given, strategies as st, settings as hypothesis_settings
from sqlalchemy import func, select
from unittest.mock import AsyncMock, patch

from casecore.core.exceptions import DuplicateKeyError, InvalidArgumentError, NotFoundError
from casecore.models.client import Client, IdentifierRegistryEntry
from casecore.schemas.client import ClientCreate, ClientResponse
from casecore.services.client_service import ClientService


async def _count(session, model):
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar()


class TestClientSchema:
    """Input normalization"""

    @given(numbers=st.lists(st.sampled_from(["0912", " 0912 ", "0935", "", "   ", "021-555"]), max_size=8))
    @hypothesis_settings(max_examples=50, deadline=1000)
    def test_phone_numbers_are_stripped_and_deduplicated(self, numbers):
        data = ClientCreate(first_name="A", last_name="B", national_id="1", phone_numbers=numbers)

        assert all(number and number == number.strip() for number in data.phone_numbers)
        assert len(data.phone_numbers) == len(set(data.phone_numbers))
        assert set(data.phone_numbers) == {n.strip() for n in numbers if n.strip()}

    def test_national_id_longer_than_ten_characters_rejected(self):
        with pytest.raises(ValueError):
            ClientCreate(first_name="A", last_name="B", national_id="12345678901")


class TestClientCreation:
    """Creation through the registry"""

    async def test_created_client_is_registered(self, lifecycle, db_session):
        client = await lifecycle.create_client(" Sara ", "Ahmadi", " 0098765432 ", ["0912", "0912", " "], "hash")

        assert client.first_name == "Sara"
        assert client.national_id == "0098765432"
        assert client.phone_numbers == ["0912"]
        assert len(client.display_id) == 4

        entry = await db_session.get(IdentifierRegistryEntry, "0098765432")
        assert entry is not None
        assert entry.client_id == client.client_id

        response = ClientResponse.model_validate(client)
        assert response.has_credential is True

    async def test_duplicate_national_id_rejected(self, lifecycle, db_session, client):
        with pytest.raises(DuplicateKeyError) as exc_info:
            await lifecycle.create_client("Other", "Person", client.national_id, [])

        assert exc_info.value.error_code == "DUPLICATE_NATIONAL_ID"
        assert await _count(db_session, Client) == 1
        assert await _count(db_session, IdentifierRegistryEntry) == 1

    async def test_concurrent_creation_with_one_national_id(self, session_factory, db_session):
        async def create(index):
            async with session_factory() as session:
                return await ClientService(session).create_client(f"Name{index}", "Same", "5555555555", [])

        results = await asyncio.gather(*(create(i) for i in range(8)), return_exceptions=True)

        created = [r for r in results if isinstance(r, Client)]
        rejected = [r for r in results if isinstance(r, DuplicateKeyError)]
        assert len(created) == 1
        assert len(rejected) == 7
        assert await _count(db_session, Client) == 1
        assert await _count(db_session, IdentifierRegistryEntry) == 1

    async def test_concurrent_creation_with_distinct_national_ids(self, session_factory, db_session):
        async def create(index):
            async with session_factory() as session:
                client = await ClientService(session).create_client("N", "M", f"{index:010d}", [])
                return client.client_id

        ids = await asyncio.gather(*(create(i) for i in range(10)))

        assert len(set(ids)) == 10
        assert await _count(db_session, IdentifierRegistryEntry) == 10

    async def test_registry_and_client_written_together(self, lifecycle, db_session, client):
        # Skip the early registry check so the registry insert itself collides
        service = lifecycle.clients
        with patch.object(service, "_registry_holds", AsyncMock(side_effect=[False, True])):
            with pytest.raises(DuplicateKeyError):
                await service.create_client("A", "B", client.national_id, [])

        assert await _count(db_session, Client) == 1
        assert await _count(db_session, IdentifierRegistryEntry) == 1

    @pytest.mark.parametrize("field,value", [
        ("first_name", ""),
        ("last_name", "   "),
        ("national_id", ""),
    ])
    async def test_blank_fields_rejected(self, lifecycle, field, value):
        kwargs = {"first_name": "A", "last_name": "B", "national_id": "1234", "phone_numbers": []}
        kwargs[field] = value

        with pytest.raises(InvalidArgumentError) as exc_info:
            await lifecycle.create_client(**kwargs)
        assert exc_info.value.error_code == "INVALID_ARGUMENT"


class TestClientUpdates:
    """Mutable client fields"""

    async def test_phone_numbers_replaced(self, lifecycle, client):
        updated = await lifecycle.clients.update_phone_numbers(client.client_id, ["0935", " 0936 ", "0935"])
        assert updated.phone_numbers == ["0935", "0936"]

        reloaded = await lifecycle.clients.get_client(client.client_id)
        assert reloaded.phone_numbers == ["0935", "0936"]

    async def test_credential_set_and_cleared(self, lifecycle, client):
        updated = await lifecycle.clients.set_credential_hash(client.client_id, "pbkdf2$abc")
        assert updated.has_credential

        cleared = await lifecycle.clients.set_credential_hash(client.client_id, None)
        assert not cleared.has_credential

    async def test_lookup_by_national_id(self, lifecycle, client):
        found = await lifecycle.clients.get_client_by_national_id(f" {client.national_id} ")
        assert found.client_id == client.client_id

        with pytest.raises(NotFoundError):
            await lifecycle.clients.get_client_by_national_id("0000000000")

    async def test_unknown_client_not_found(self, lifecycle):
        with pytest.raises(NotFoundError) as exc_info:
            await lifecycle.clients.update_phone_numbers(999, [])
        assert exc_info.value.error_code == "CLIENT_NOT_FOUND"

    async def test_list_clients(self, lifecycle, client):
        other = await lifecycle.create_client("B", "C", "4444444444", [])

        clients = await lifecycle.clients.list_clients()

        assert {c.client_id for c in clients} == {client.client_id, other.client_id}


class TestCaseHistory:
    """Client-facing history view"""

    async def test_history_lists_cases_with_events_most_recent_first(self, lifecycle, client):
        base = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)
        first = await lifecycle.create_case(client.client_id)
        second = await lifecycle.create_case(client.client_id, initial_status="intake")
        await lifecycle.append_event(first.case_id, "pending", occurred_at=base)
        await lifecycle.append_event(first.case_id, "court-hearing", occurred_at=base + timedelta(days=2))
        await lifecycle.append_event(first.case_id, "lawyer-study", occurred_at=base + timedelta(days=1))

        history = await lifecycle.get_case_history(client.client_id)

        by_case = {entry.case.case_id: entry for entry in history}
        assert set(by_case) == {first.case_id, second.case_id}
        assert [e.event_type for e in by_case[first.case_id].events] == ["court-hearing", "lawyer-study", "pending"]
        assert by_case[first.case_id].case.current_status == "court-hearing"
        assert by_case[second.case_id].events == []
        assert by_case[second.case_id].case.current_status == "intake"

    async def test_history_of_unknown_client(self, lifecycle):
        with pytest.raises(NotFoundError):
            await lifecycle.get_case_history(4321)
