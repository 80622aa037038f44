"""
Tests for background reprojection jobs and startup initialization
"""

import asyncio
from datetime import datetime, UTC

from casecore.core.config import settings
from casecore.init_db import init_db
from casecore.services.reprojection_job_service import JobStatus, ReprojectionJobService


class TestReprojectionJobs:
    """Lifecycle of a background reproject_all"""

    async def test_job_runs_to_completion(self, lifecycle, session_factory, client):
        case = await lifecycle.create_case(client.client_id)
        await lifecycle.append_event(case.case_id, "lawyer-study", occurred_at=datetime(2024, 2, 1, tzinfo=UTC))

        service = ReprojectionJobService(session_factory)
        job_id = service.submit()
        assert service.get_job(job_id).status in (JobStatus.PENDING, JobStatus.RUNNING)

        job = await service.wait(job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.summary.processed == 1
        assert job.summary.failed == 0
        assert job.started_at is not None
        assert job.completed_at >= job.started_at
        assert job_id not in service.running_jobs

    async def test_cancel_before_start(self, session_factory):
        service = ReprojectionJobService(session_factory)
        job_id = service.submit()

        assert await service.cancel(job_id) is True

        job = service.get_job(job_id)
        assert job.status == JobStatus.CANCELLED
        assert job.summary is None

    async def test_cancel_finished_job_is_noop(self, session_factory):
        service = ReprojectionJobService(session_factory)
        job_id = service.submit()
        await service.wait(job_id)

        assert await service.cancel(job_id) is False
        assert service.get_job(job_id).status == JobStatus.COMPLETED

    async def test_failed_job_records_error(self):
        def broken_factory():
            raise RuntimeError("no database")

        service = ReprojectionJobService(broken_factory)
        job = await service.wait(service.submit())

        assert job.status == JobStatus.FAILED
        assert "no database" in job.error

    async def test_concurrent_jobs_have_distinct_ids(self, session_factory):
        service = ReprojectionJobService(session_factory)
        job_ids = [service.submit() for _ in range(3)]

        jobs = await asyncio.gather(*(service.wait(job_id) for job_id in job_ids))

        assert len(set(job_ids)) == 3
        assert all(job.status == JobStatus.COMPLETED for job in jobs)

    def test_unknown_job(self):
        assert ReprojectionJobService(None).get_job("missing") is None


class TestInitDb:
    """Idempotent startup initialization"""

    async def test_init_is_repeatable_and_reprojects(self, db_manager, lifecycle, client, monkeypatch):
        monkeypatch.setattr(settings, "REPROJECT_ON_STARTUP", True)
        case_id = (await lifecycle.create_case(client.client_id)).case_id

        assert await init_db(db_manager) is True
        assert await init_db(db_manager, reproject=True) is True

        refreshed = await lifecycle.get_case(case_id)
        assert refreshed.current_status == settings.DEFAULT_CASE_STATUS
