"""
Background reprojection jobs
Runs full-corpus status recomputation as cancellable asyncio tasks
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from casecore.core.timeutils import utcnow
from casecore.schemas.case import ReprojectionSummary
from casecore.services.status_projector import StatusProjector

logger = structlog.get_logger()

class JobStatus(str, Enum):
    """Job status enumeration"""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

@dataclass
class ReprojectionJob:
    """Background reprojection job data structure"""
    job_id: str
    status: JobStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    summary: Optional[ReprojectionSummary] = None
    error: Optional[str] = None

class ReprojectionJobService:
    """Service for running reproject_all outside the request path"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self.jobs: Dict[str, ReprojectionJob] = {}
        self.running_jobs: Dict[str, asyncio.Task] = {}

    def submit(self) -> str:
        """
        Start a reprojection of every case in the background

        Returns:
            Job identifier
        """
        job_id = str(uuid.uuid4())
        self.jobs[job_id] = ReprojectionJob(job_id=job_id, status=JobStatus.PENDING, created_at=utcnow())
        task = asyncio.create_task(self._run(job_id), name=f"reproject-all-{job_id}")
        self.running_jobs[job_id] = task
        task.add_done_callback(lambda _: self.running_jobs.pop(job_id, None))

        logger.info("Reprojection job submitted", job_id=job_id)
        return job_id

    def get_job(self, job_id: str) -> Optional[ReprojectionJob]:
        return self.jobs.get(job_id)

    async def cancel(self, job_id: str) -> bool:
        """Cancel a pending or running job; False if it already finished"""
        task = self.running_jobs.get(job_id)
        if task is None or task.done():
            return False

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        # A task cancelled before its first step never runs _run
        job = self.jobs[job_id]
        if job.status in (JobStatus.PENDING, JobStatus.RUNNING):
            job.status = JobStatus.CANCELLED
            job.completed_at = utcnow()
        return True

    async def wait(self, job_id: str) -> ReprojectionJob:
        """Wait until a job has finished, whatever its outcome"""
        task = self.running_jobs.get(job_id)
        if task is not None:
            await asyncio.wait({task})
        return self.jobs[job_id]

    async def _run(self, job_id: str) -> None:
        job = self.jobs[job_id]
        job.status = JobStatus.RUNNING
        job.started_at = utcnow()
        try:
            async with self.session_factory() as session:
                job.summary = await self._reproject(session)
            job.status = JobStatus.COMPLETED
            logger.info(
                "Reprojection job completed",
                job_id=job_id,
                processed=job.summary.processed,
                failed=job.summary.failed
            )
        except asyncio.CancelledError:
            job.status = JobStatus.CANCELLED
            logger.warning("Reprojection job cancelled", job_id=job_id)
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = str(e)
            logger.error("Reprojection job failed", job_id=job_id, error=str(e), exc_info=True)
        finally:
            job.completed_at = utcnow()

    async def _reproject(self, session: AsyncSession) -> ReprojectionSummary:
        return await StatusProjector(session).reproject_all()
