"""
Client service: creation with natural-key registry, updates and case history
"""

from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from casecore.core.exceptions import (
    CaseManagementException, DuplicateKeyError, NamespaceExhaustedError, NotFoundError, TransientError
)
from casecore.core.identifiers import IdentifierKind
from casecore.models.case import Case, CaseEvent
from casecore.models.client import Client, IdentifierRegistryEntry
from casecore.schemas.base import validate_input
from casecore.schemas.case import CaseEventResponse, CaseHistory, CaseResponse
from casecore.schemas.client import ClientCreate, PhoneNumbersUpdate
from casecore.services.identifier_allocator import IdentifierAllocator
from casecore.services.status_projector import EVENT_LOG_ORDER

logger = structlog.get_logger()

class ClientService:
    """Service for client management operations"""

    def __init__(self, db: AsyncSession, allocator: Optional[IdentifierAllocator] = None):
        self.db = db
        self.allocator = allocator or IdentifierAllocator(db)

    async def create_client(
        self,
        first_name: str,
        last_name: str,
        national_id: str,
        phone_numbers: List[str],
        credential_hash: Optional[str] = None
    ) -> Client:
        """
        Create a client and register its national ID in one transaction

        Args:
            first_name: Given name
            last_name: Family name
            national_id: National identity number, unique across all clients
            phone_numbers: Contact phone numbers
            credential_hash: Already-hashed credential, if any

        Returns:
            Created client instance

        Raises:
            DuplicateKeyError: national ID already registered
            InvalidArgumentError: missing or malformed fields
            NamespaceExhaustedError: no free client identifier
        """
        data = validate_input(ClientCreate, {
            "first_name": first_name,
            "last_name": last_name,
            "national_id": national_id,
            "phone_numbers": phone_numbers,
            "credential_hash": credential_hash,
        })

        # Early answer for the common case; the registry insert below is authoritative
        if await self._registry_holds(data.national_id):
            raise self._duplicate_national_id(data.national_id)

        for attempt in range(1, self.allocator.max_attempts + 1):
            client_id = await self.allocator.allocate_client_id()
            try:
                client = Client(
                    client_id=client_id,
                    first_name=data.first_name,
                    last_name=data.last_name,
                    national_id=data.national_id,
                    phone_numbers=data.phone_numbers,
                    credential_hash=data.credential_hash,
                )
                self.db.add(client)
                self.db.add(IdentifierRegistryEntry(national_id=data.national_id, client_id=client_id))
                await self.db.commit()

            except IntegrityError:
                await self.db.rollback()
                if await self._registry_holds(data.national_id):
                    raise self._duplicate_national_id(data.national_id)
                logger.warning("Client identifier collision on insert, retrying", client_id=client_id, attempt=attempt)
                continue
            except OperationalError as e:
                await self.db.rollback()
                logger.error("Failed to create client", error=str(e))
                raise TransientError("Storage unavailable while creating client", error_code="STORAGE_UNAVAILABLE")
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error("Failed to create client", error=str(e))
                raise CaseManagementException(f"Failed to create client: {str(e)}")
            finally:
                self.allocator.release(IdentifierKind.CLIENT, client_id)

            logger.info("Client created successfully", client_id=client.client_id)
            return client

        raise NamespaceExhaustedError(
            f"No free client identifier found after {self.allocator.max_attempts} attempts",
            error_code="NAMESPACE_EXHAUSTED",
            details={"kind": IdentifierKind.CLIENT.value}
        )

    async def get_client(self, client_id: int) -> Client:
        """
        Get a client by ID

        Raises:
            NotFoundError: client does not exist
        """
        client = await self._execute_one(select(Client).where(Client.client_id == client_id))
        if client is None:
            raise NotFoundError(
                f"Client with ID {client_id} not found",
                error_code="CLIENT_NOT_FOUND"
            )
        return client

    async def get_client_by_national_id(self, national_id: str) -> Client:
        """
        Resolve a national ID through the registry

        Raises:
            NotFoundError: national ID is not registered
        """
        client = await self._execute_one(
            select(Client)
            .join(IdentifierRegistryEntry, IdentifierRegistryEntry.client_id == Client.client_id)
            .where(IdentifierRegistryEntry.national_id == national_id.strip())
        )
        if client is None:
            raise NotFoundError(
                "No client registered with this national ID",
                error_code="CLIENT_NOT_FOUND"
            )
        return client

    async def list_clients(self) -> List[Client]:
        """All clients, newest first"""
        try:
            result = await self.db.execute(
                select(Client)
                .order_by(Client.created_at.desc(), Client.client_id.desc())
                .execution_options(populate_existing=True)
            )
        except OperationalError as e:
            raise TransientError("Storage unavailable while listing clients", error_code="STORAGE_UNAVAILABLE") from e
        return list(result.scalars().all())

    async def update_phone_numbers(self, client_id: int, phone_numbers: List[str]) -> Client:
        """Replace a client's contact phone numbers"""
        data = validate_input(PhoneNumbersUpdate, {"phone_numbers": phone_numbers})
        client = await self.get_client(client_id)
        client.phone_numbers = data.phone_numbers
        await self._commit("update phone numbers of", client_id)
        logger.info("Client phone numbers updated", client_id=client_id, count=len(data.phone_numbers))
        return client

    async def set_credential_hash(self, client_id: int, credential_hash: Optional[str]) -> Client:
        """Store an already-hashed credential; None clears it"""
        client = await self.get_client(client_id)
        client.credential_hash = credential_hash
        await self._commit("update credential of", client_id)
        logger.info("Client credential updated", client_id=client_id, cleared=credential_hash is None)
        return client

    async def get_case_history(self, client_id: int) -> List[CaseHistory]:
        """
        Full case history of a client

        Returns:
            One entry per case, newest case first, each with its events most recent first

        Raises:
            NotFoundError: client does not exist
        """
        await self.get_client(client_id)

        try:
            case_result = await self.db.execute(
                select(Case)
                .where(Case.client_id == client_id)
                .order_by(Case.created_at.desc(), Case.case_id.desc())
                .execution_options(populate_existing=True)
            )
            cases = list(case_result.scalars().all())

            events_by_case: Dict[int, List[CaseEvent]] = {case.case_id: [] for case in cases}
            if cases:
                event_result = await self.db.execute(
                    select(CaseEvent)
                    .where(CaseEvent.case_id.in_(list(events_by_case)))
                    .order_by(*EVENT_LOG_ORDER)
                    .execution_options(populate_existing=True)
                )
                for event in event_result.scalars().all():
                    events_by_case[event.case_id].append(event)
        except OperationalError as e:
            raise TransientError(f"Storage unavailable while reading history of client {client_id}", error_code="STORAGE_UNAVAILABLE") from e

        return [
            CaseHistory(
                case=CaseResponse.model_validate(case),
                events=[CaseEventResponse.model_validate(event) for event in events_by_case[case.case_id]]
            )
            for case in cases
        ]

    async def _registry_holds(self, national_id: str) -> bool:
        try:
            result = await self.db.execute(
                select(IdentifierRegistryEntry.client_id)
                .where(IdentifierRegistryEntry.national_id == national_id)
            )
        except OperationalError as e:
            raise TransientError("Storage unavailable while checking national ID", error_code="STORAGE_UNAVAILABLE") from e
        return result.scalar_one_or_none() is not None

    async def _execute_one(self, query) -> Optional[Client]:
        try:
            result = await self.db.execute(query.execution_options(populate_existing=True))
        except OperationalError as e:
            raise TransientError("Storage unavailable while reading client", error_code="STORAGE_UNAVAILABLE") from e
        return result.scalar_one_or_none()

    async def _commit(self, action: str, client_id: int) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action} client", client_id=client_id, error=str(e))
            if isinstance(e, OperationalError):
                raise TransientError(f"Storage unavailable while trying to {action} client", error_code="STORAGE_UNAVAILABLE")
            raise CaseManagementException(f"Failed to {action} client {client_id}: {str(e)}")

    @staticmethod
    def _duplicate_national_id(national_id: str) -> DuplicateKeyError:
        logger.warning("National ID already registered")
        return DuplicateKeyError(
            "A client with this national ID already exists",
            error_code="DUPLICATE_NATIONAL_ID",
            details={"field": "national_id"}
        )
