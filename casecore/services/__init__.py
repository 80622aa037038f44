from .identifier_allocator import IdentifierAllocator, IdentifierReservations, default_reservations
from .status_projector import StatusProjector
from .case_event_service import CaseEventService
from .case_service import CaseService
from .client_service import ClientService
from .lifecycle import CaseLifecycle
from .reprojection_job_service import ReprojectionJobService, ReprojectionJob, JobStatus

__all__ = [
    "IdentifierAllocator", "IdentifierReservations", "default_reservations",
    "StatusProjector", "CaseEventService", "CaseService", "ClientService",
    "CaseLifecycle", "ReprojectionJobService", "ReprojectionJob", "JobStatus",
]
