"""
Case event log: append, amend, delete and list status events
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from casecore.core.config import settings
from casecore.core.exceptions import (
    CaseManagementException, InvalidArgumentError, NotFoundError, TransientError
)
from casecore.core.timeutils import as_utc, utcnow
from casecore.models.case import Case, CaseEvent
from casecore.schemas.base import validate_input
from casecore.schemas.case import CaseEventCreate, EventAmendment
from casecore.services.status_projector import EVENT_LOG_ORDER, StatusProjector, case_locks

logger = structlog.get_logger()

class CaseEventService:
    """Service for the per-case event log"""

    def __init__(self, db: AsyncSession, projector: Optional[StatusProjector] = None):
        self.db = db
        self.projector = projector or StatusProjector(db)

    async def append_event(
        self,
        case_id: int,
        event_type: str,
        details: Optional[str] = None,
        occurred_at: Optional[datetime] = None
    ) -> CaseEvent:
        """
        Append an event to a case's log and re-project the case

        Args:
            case_id: Case identifier
            event_type: Status label carried by the event
            details: Optional free-text details
            occurred_at: When the event happened; defaults to now

        Returns:
            Created case event

        Raises:
            NotFoundError: case does not exist
            InvalidArgumentError: blank event type
        """
        data = validate_input(CaseEventCreate, {
            "case_id": case_id,
            "event_type": event_type,
            "details": details,
            "occurred_at": occurred_at,
        })
        occurred = as_utc(data.occurred_at) if data.occurred_at else utcnow()

        await self._require_case(data.case_id)

        async with case_locks.hold(data.case_id):
            event = await self._insert_event(data, occurred)
            await self.projector.reproject_locked(data.case_id)

        logger.info(
            "Case event appended",
            event_id=str(event.id),
            case_id=data.case_id,
            event_type=data.event_type,
            sequence=event.sequence
        )
        return event

    async def get_event(self, event_id: Union[UUID, str]) -> CaseEvent:
        """
        Get a case event by ID

        Raises:
            NotFoundError: event does not exist
        """
        event_uuid = self._parse_event_id(event_id)
        try:
            event = await self.db.get(CaseEvent, event_uuid, populate_existing=True)
        except OperationalError as e:
            raise TransientError(f"Storage unavailable while reading event {event_id}", error_code="STORAGE_UNAVAILABLE") from e

        if event is None:
            raise NotFoundError(
                f"Case event with ID {event_id} not found",
                error_code="EVENT_NOT_FOUND"
            )
        return event

    async def amend_event(
        self,
        event_id: Union[UUID, str],
        patch: Union[EventAmendment, Dict[str, Any]]
    ) -> CaseEvent:
        """
        Change an event's type and/or details; occurred_at and identity stay fixed

        Args:
            event_id: Case event identifier
            patch: Fields to change, only those present are applied

        Returns:
            Amended case event

        Raises:
            InvalidArgumentError: patch is empty or invalid
            NotFoundError: event does not exist
        """
        amendment = validate_input(EventAmendment, patch)
        changes = amendment.model_dump(exclude_unset=True)
        if not changes:
            raise InvalidArgumentError(
                "No fields to update",
                error_code="EMPTY_PATCH",
                details={"allowed_fields": sorted(EventAmendment.model_fields)}
            )

        event = await self.get_event(event_id)
        case_id = event.case_id

        async with case_locks.hold(case_id):
            try:
                for field, value in changes.items():
                    setattr(event, field, value)
                await self.db.flush()
            except SQLAlchemyError as e:
                await self.db.rollback()
                raise self._storage_failure("amend", event_id, e)

            await self.projector.reproject_locked(case_id)

        logger.info("Case event amended", event_id=str(event.id), case_id=case_id, fields=sorted(changes))
        return event

    async def delete_event(self, event_id: Union[UUID, str]) -> bool:
        """
        Remove an event from its case's log and re-project the case

        Returns:
            True once the event is gone

        Raises:
            NotFoundError: event does not exist
        """
        event = await self.get_event(event_id)
        case_id = event.case_id

        async with case_locks.hold(case_id):
            try:
                await self.db.delete(event)
                await self.db.flush()
            except SQLAlchemyError as e:
                await self.db.rollback()
                raise self._storage_failure("delete", event_id, e)

            await self.projector.reproject_locked(case_id)

        logger.info("Case event deleted", event_id=str(event_id), case_id=case_id)
        return True

    async def list_events(
        self,
        case_id: int,
        page: Optional[int] = None,
        page_size: Optional[int] = None
    ) -> List[CaseEvent]:
        """
        List a case's events, most recent first

        Args:
            case_id: Case identifier
            page: 1-based page number; None returns the whole log
            page_size: Events per page, capped at MAX_PAGE_SIZE

        Raises:
            NotFoundError: case does not exist
            InvalidArgumentError: page or page_size below 1
        """
        await self._require_case(case_id)

        query = select(CaseEvent).where(CaseEvent.case_id == case_id).order_by(*EVENT_LOG_ORDER)

        if page is not None or page_size is not None:
            page = 1 if page is None else page
            page_size = settings.DEFAULT_PAGE_SIZE if page_size is None else page_size
            if page < 1 or page_size < 1:
                raise InvalidArgumentError(
                    "page and page_size must be positive",
                    error_code="INVALID_PAGINATION",
                    details={"page": page, "page_size": page_size}
                )
            page_size = min(page_size, settings.MAX_PAGE_SIZE)
            query = query.offset((page - 1) * page_size).limit(page_size)

        try:
            result = await self.db.execute(query)
        except OperationalError as e:
            raise TransientError(f"Storage unavailable while listing events of case {case_id}", error_code="STORAGE_UNAVAILABLE") from e
        return list(result.scalars().all())

    async def _insert_event(self, data: CaseEventCreate, occurred_at: datetime) -> CaseEvent:
        # A concurrent writer may take the same sequence; the unique constraint catches it
        for attempt in range(1, settings.ID_ALLOCATION_MAX_ATTEMPTS + 1):
            try:
                result = await self.db.execute(
                    select(func.max(CaseEvent.sequence)).where(CaseEvent.case_id == data.case_id)
                )
                sequence = (result.scalar() or 0) + 1

                event = CaseEvent(
                    case_id=data.case_id,
                    sequence=sequence,
                    event_type=data.event_type,
                    occurred_at=occurred_at,
                    details=data.details
                )
                self.db.add(event)
                await self.db.flush()
                return event

            except IntegrityError:
                await self.db.rollback()
                logger.debug("Event sequence collision, retrying", case_id=data.case_id, attempt=attempt)
            except SQLAlchemyError as e:
                await self.db.rollback()
                raise self._storage_failure("append", data.case_id, e)

        raise TransientError(
            f"Could not assign an event sequence for case {data.case_id}",
            error_code="SEQUENCE_CONTENTION",
            details={"attempts": settings.ID_ALLOCATION_MAX_ATTEMPTS}
        )

    async def _require_case(self, case_id: int) -> None:
        try:
            result = await self.db.execute(select(Case.case_id).where(Case.case_id == case_id))
        except OperationalError as e:
            raise TransientError(f"Storage unavailable while reading case {case_id}", error_code="STORAGE_UNAVAILABLE") from e
        if result.scalar_one_or_none() is None:
            raise NotFoundError(
                f"Case with ID {case_id} not found",
                error_code="CASE_NOT_FOUND"
            )

    @staticmethod
    def _parse_event_id(event_id: Union[UUID, str]) -> UUID:
        if isinstance(event_id, UUID):
            return event_id
        try:
            return UUID(str(event_id))
        except ValueError:
            raise InvalidArgumentError(
                f"Malformed event identifier: {event_id}",
                error_code="INVALID_IDENTIFIER"
            )

    @staticmethod
    def _storage_failure(action: str, ref: Any, error: SQLAlchemyError) -> CaseManagementException:
        logger.error(f"Failed to {action} case event", ref=str(ref), error=str(error))
        if isinstance(error, OperationalError):
            return TransientError(
                f"Storage unavailable while trying to {action} case event",
                error_code="STORAGE_UNAVAILABLE"
            )
        return CaseManagementException(f"Failed to {action} case event: {str(error)}")
