"""
Status projection: derives each case's current status from its event log
"""

from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from casecore.core.config import settings
from casecore.core.exceptions import (
    CaseManagementException, NotFoundError, ProjectionError, TransientError
)
from casecore.core.locks import KeyedLocks
from casecore.core.timeutils import as_utc, utcnow
from casecore.models.case import Case, CaseEvent
from casecore.schemas.case import ReprojectionSummary

logger = structlog.get_logger()

# Most recent first; equal occurred_at falls back to the later insertion
EVENT_LOG_ORDER = (CaseEvent.occurred_at.desc(), CaseEvent.sequence.desc())

# Serializes log mutations and re-projection per case within the process
case_locks = KeyedLocks()

def most_recent_event(events: Iterable[CaseEvent]) -> Optional[CaseEvent]:
    """Event with the greatest (occurred_at, sequence), or None for an empty log"""
    latest = None
    latest_key = None
    for event in events:
        key = (as_utc(event.occurred_at), event.sequence)
        if latest_key is None or key > latest_key:
            latest, latest_key = event, key
    return latest

def select_current_status(events: Iterable[CaseEvent], default: str) -> str:
    """
    Status implied by an event log

    Raises:
        ProjectionError: the most recent event carries no status label
    """
    latest = most_recent_event(events)
    if latest is None:
        return default
    if latest.event_type is None or not latest.event_type.strip():
        raise ProjectionError(
            f"Event {latest.id} of case {latest.case_id} has no event type",
            error_code="CORRUPT_EVENT_LOG",
            details={"event_id": str(latest.id), "case_id": latest.case_id}
        )
    return latest.event_type

class StatusProjector:
    """Sole writer of Case.current_status"""

    def __init__(self, db: AsyncSession, default_status: Optional[str] = None):
        self.db = db
        self.default_status = default_status or settings.DEFAULT_CASE_STATUS

    def seed_status(self, case: Case, initial_status: str) -> None:
        """Set the caller-supplied status of a case that has no events yet"""
        case.current_status = initial_status
        case.last_status_changed_at = utcnow()

    async def reproject(self, case_id: int) -> Case:
        """
        Recompute a case's current status from its event log

        Args:
            case_id: Case identifier

        Returns:
            The updated case

        Raises:
            NotFoundError: case does not exist
            ProjectionError: event log is corrupt; the case is left untouched
            TransientError: storage failed
        """
        async with case_locks.hold(case_id):
            return await self.reproject_locked(case_id)

    async def reproject_locked(self, case_id: int) -> Case:
        """
        Recompute and commit a case's status; the caller must hold case_locks for it.

        Runs inside the caller's open transaction, so a log mutation flushed
        just before is read back and committed together with the new status.
        """
        try:
            case = await self.db.get(Case, case_id, populate_existing=True)
            if case is None:
                raise NotFoundError(
                    f"Case with ID {case_id} not found",
                    error_code="CASE_NOT_FOUND"
                )

            events = await self._load_events(case_id)
            status = select_current_status(events, self.default_status)

            previous_status = case.current_status
            case.current_status = status
            case.last_status_changed_at = utcnow()
            await self.db.commit()

            logger.info(
                "Case status projected",
                case_id=case_id,
                status=status,
                previous_status=previous_status,
                event_count=len(events)
            )
            return case

        except ProjectionError as e:
            await self.db.rollback()
            logger.warning(
                "Case status left stale, projection failed",
                case_id=case_id,
                error_code=e.error_code,
                error=e.message
            )
            raise
        except OperationalError as e:
            await self.db.rollback()
            logger.warning("Case status left stale, storage unavailable", case_id=case_id, error=str(e))
            raise TransientError(
                f"Storage unavailable while projecting case {case_id}",
                error_code="STORAGE_UNAVAILABLE"
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to project case status", case_id=case_id, error=str(e))
            raise CaseManagementException(f"Failed to project case status: {str(e)}")

    async def reproject_all(self) -> ReprojectionSummary:
        """
        Recompute the status of every case, isolating per-case failures

        Returns:
            How many cases were projected and which ones failed
        """
        try:
            result = await self.db.execute(select(Case.case_id).order_by(Case.case_id))
        except OperationalError as e:
            raise TransientError("Storage unavailable while listing cases", error_code="STORAGE_UNAVAILABLE") from e
        case_ids = list(result.scalars().all())

        logger.info("Starting bulk status reprojection", case_count=len(case_ids))

        processed = 0
        failed_case_ids: List[int] = []
        for case_id in case_ids:
            try:
                await self.reproject(case_id)
                processed += 1
            except CaseManagementException as e:
                failed_case_ids.append(case_id)
                logger.warning(
                    "Case reprojection failed, continuing batch",
                    case_id=case_id,
                    error_code=e.error_code,
                    error=e.message
                )
            except SQLAlchemyError as e:
                await self.db.rollback()
                failed_case_ids.append(case_id)
                logger.warning("Case reprojection failed, continuing batch", case_id=case_id, error=str(e))

        summary = ReprojectionSummary(
            processed=processed,
            failed=len(failed_case_ids),
            failed_case_ids=failed_case_ids
        )
        logger.info("Completed bulk status reprojection", processed=summary.processed, failed=summary.failed)
        return summary

    async def _load_events(self, case_id: int) -> List[CaseEvent]:
        result = await self.db.execute(
            select(CaseEvent)
            .where(CaseEvent.case_id == case_id)
            .order_by(*EVENT_LOG_ORDER)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
