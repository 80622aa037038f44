"""
Case service: creation and reads of case aggregates
"""

from typing import List, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from casecore.core.config import settings
from casecore.core.exceptions import (
    CaseManagementException, DuplicateKeyError, NamespaceExhaustedError, NotFoundError, TransientError
)
from casecore.core.identifiers import IdentifierKind
from casecore.core.timeutils import utcnow
from casecore.models.case import Case
from casecore.models.client import Client
from casecore.schemas.base import validate_input
from casecore.schemas.case import CaseCreate
from casecore.services.identifier_allocator import IdentifierAllocator
from casecore.services.status_projector import StatusProjector

logger = structlog.get_logger()

class CaseService:
    """Service for case management operations"""

    def __init__(
        self,
        db: AsyncSession,
        allocator: Optional[IdentifierAllocator] = None,
        projector: Optional[StatusProjector] = None
    ):
        self.db = db
        self.allocator = allocator or IdentifierAllocator(db)
        self.projector = projector or StatusProjector(db)

    async def create_case(
        self,
        client_id: int,
        initial_status: Optional[str] = None,
        case_id: Optional[Union[int, str]] = None
    ) -> Case:
        """
        Create a case for an existing client

        Args:
            client_id: Owning client identifier
            initial_status: Status before any event is logged; defaults to INITIAL_CASE_STATUS
            case_id: Caller-supplied identifier; allocated when omitted

        Returns:
            Created case instance

        Raises:
            NotFoundError: client does not exist
            DuplicateKeyError: case_id already in use
            InvalidArgumentError: malformed case_id or blank status
            NamespaceExhaustedError: no free case identifier
        """
        data = validate_input(CaseCreate, {
            "client_id": client_id,
            "initial_status": initial_status,
            "case_id": case_id,
        })
        status = data.initial_status or settings.INITIAL_CASE_STATUS

        await self._require_client(data.client_id)

        for attempt in range(1, self.allocator.max_attempts + 1):
            allocated_id = await self.allocator.allocate_case_id(data.case_id)
            try:
                case = Case(
                    case_id=allocated_id,
                    client_id=data.client_id,
                    case_creation_date=utcnow().date(),
                )
                self.projector.seed_status(case, status)
                self.db.add(case)
                await self.db.commit()

            except IntegrityError:
                await self.db.rollback()
                if data.case_id is not None and str(data.case_id).strip():
                    raise DuplicateKeyError(
                        f"Case identifier {allocated_id} is already in use",
                        error_code="CASE_ID_IN_USE",
                        details={"case_id": allocated_id}
                    )
                logger.warning("Case identifier collision on insert, retrying", case_id=allocated_id, attempt=attempt)
                continue
            except OperationalError as e:
                await self.db.rollback()
                logger.error("Failed to create case", client_id=data.client_id, error=str(e))
                raise TransientError("Storage unavailable while creating case", error_code="STORAGE_UNAVAILABLE")
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error("Failed to create case", client_id=data.client_id, error=str(e))
                raise CaseManagementException(f"Failed to create case: {str(e)}")
            finally:
                self.allocator.release(IdentifierKind.CASE, allocated_id)

            logger.info(
                "Case created successfully",
                case_id=case.case_id,
                client_id=case.client_id,
                status=case.current_status
            )
            return case

        raise NamespaceExhaustedError(
            f"No free case identifier found after {self.allocator.max_attempts} attempts",
            error_code="NAMESPACE_EXHAUSTED",
            details={"kind": IdentifierKind.CASE.value}
        )

    async def get_case(self, case_id: int) -> Case:
        """
        Get a case by ID

        Raises:
            NotFoundError: case does not exist
        """
        try:
            case = await self.db.get(Case, case_id, populate_existing=True)
        except OperationalError as e:
            raise TransientError(f"Storage unavailable while reading case {case_id}", error_code="STORAGE_UNAVAILABLE") from e
        if case is None:
            raise NotFoundError(
                f"Case with ID {case_id} not found",
                error_code="CASE_NOT_FOUND"
            )
        return case

    async def list_client_cases(self, client_id: int) -> List[Case]:
        """Cases of one client, newest first"""
        await self._require_client(client_id)
        return await self._list(select(Case).where(Case.client_id == client_id))

    async def list_cases(self) -> List[Case]:
        """All cases, newest first"""
        return await self._list(select(Case))

    async def _list(self, query) -> List[Case]:
        query = query.order_by(Case.created_at.desc(), Case.case_id.desc()) \
            .execution_options(populate_existing=True)
        try:
            result = await self.db.execute(query)
        except OperationalError as e:
            raise TransientError("Storage unavailable while listing cases", error_code="STORAGE_UNAVAILABLE") from e
        return list(result.scalars().all())

    async def _require_client(self, client_id: int) -> None:
        try:
            result = await self.db.execute(select(Client.client_id).where(Client.client_id == client_id))
        except OperationalError as e:
            raise TransientError(f"Storage unavailable while reading client {client_id}", error_code="STORAGE_UNAVAILABLE") from e
        if result.scalar_one_or_none() is None:
            raise NotFoundError(
                f"Client with ID {client_id} not found",
                error_code="CLIENT_NOT_FOUND"
            )
