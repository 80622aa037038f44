"""
Single entry point over the case lifecycle services sharing one session
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from casecore.core.exceptions import InvalidArgumentError
from casecore.core.identifiers import IdentifierKind
from casecore.models.case import Case, CaseEvent
from casecore.models.client import Client
from casecore.schemas.case import CaseHistory, EventAmendment, ReprojectionSummary
from casecore.services.case_event_service import CaseEventService
from casecore.services.case_service import CaseService
from casecore.services.client_service import ClientService
from casecore.services.identifier_allocator import IdentifierAllocator
from casecore.services.status_projector import StatusProjector

class CaseLifecycle:
    """Wires allocator, event log and projector around one AsyncSession"""

    def __init__(self, db: AsyncSession, allocator: Optional[IdentifierAllocator] = None):
        self.db = db
        self.allocator = allocator or IdentifierAllocator(db)
        self.projector = StatusProjector(db)
        self.clients = ClientService(db, self.allocator)
        self.cases = CaseService(db, self.allocator, self.projector)
        self.events = CaseEventService(db, self.projector)
        # Case ids handed out by allocate_case_id and still reserved for this caller
        self._allocated_case_ids: Set[int] = set()

    async def allocate_client_id(self) -> int:
        """
        A client identifier free at the time of the call

        create_client allocates its own identifier, so nothing stays reserved here.
        """
        client_id = await self.allocator.allocate_client_id()
        self.allocator.release(IdentifierKind.CLIENT, client_id)
        return client_id

    async def allocate_case_id(self, custom_id: Optional[Union[int, str]] = None) -> int:
        """
        Reserve a case identifier for a later create_case on this lifecycle

        The reservation keeps concurrent allocations distinct until the case is
        created or release() is called.
        """
        case_id = await self.allocator.allocate_case_id(custom_id)
        self._allocated_case_ids.add(case_id)
        return case_id

    def release(self, kind: IdentifierKind, value: int) -> None:
        self.allocator.release(kind, value)
        if kind == IdentifierKind.CASE:
            self._allocated_case_ids.discard(value)

    async def create_client(
        self,
        first_name: str,
        last_name: str,
        national_id: str,
        phone_numbers: List[str],
        credential_hash: Optional[str] = None
    ) -> Client:
        return await self.clients.create_client(first_name, last_name, national_id, phone_numbers, credential_hash)

    async def create_case(
        self,
        client_id: int,
        initial_status: Optional[str] = None,
        case_id: Optional[Union[int, str]] = None
    ) -> Case:
        if case_id is not None:
            try:
                parsed = IdentifierAllocator.parse_identifier(IdentifierKind.CASE, case_id)
            except InvalidArgumentError:
                parsed = None
            # Our own reservation must not count as "in use"
            if parsed in self._allocated_case_ids:
                self.release(IdentifierKind.CASE, parsed)
        return await self.cases.create_case(client_id, initial_status, case_id)

    async def append_event(
        self,
        case_id: int,
        event_type: str,
        details: Optional[str] = None,
        occurred_at: Optional[datetime] = None
    ) -> CaseEvent:
        return await self.events.append_event(case_id, event_type, details, occurred_at)

    async def amend_event(self, event_id: Union[UUID, str], patch: Union[EventAmendment, Dict[str, Any]]) -> CaseEvent:
        return await self.events.amend_event(event_id, patch)

    async def delete_event(self, event_id: Union[UUID, str]) -> bool:
        return await self.events.delete_event(event_id)

    async def list_events(self, case_id: int, page: Optional[int] = None, page_size: Optional[int] = None) -> List[CaseEvent]:
        return await self.events.list_events(case_id, page, page_size)

    async def get_case(self, case_id: int) -> Case:
        return await self.cases.get_case(case_id)

    async def get_case_history(self, client_id: int) -> List[CaseHistory]:
        return await self.clients.get_case_history(client_id)

    async def reproject(self, case_id: int) -> Case:
        return await self.projector.reproject(case_id)

    async def reproject_all(self) -> ReprojectionSummary:
        return await self.projector.reproject_all()
