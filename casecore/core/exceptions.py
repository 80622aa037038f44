"""
Custom exceptions and error handling
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import structlog
from typing import Any, Dict

logger = structlog.get_logger()

class CaseManagementException(Exception):
    """Base exception for the case lifecycle core"""

    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

class NotFoundError(CaseManagementException):
    """Referenced client, case or event does not exist"""
    pass

class DuplicateKeyError(CaseManagementException):
    """Natural key or caller-supplied identifier already in use"""
    pass

class InvalidArgumentError(CaseManagementException):
    """Malformed input, empty patch or out-of-range identifier"""
    pass

class NamespaceExhaustedError(CaseManagementException):
    """Identifier space saturated after bounded retries"""
    pass

class TransientError(CaseManagementException):
    """Storage call failed and may succeed on retry"""
    pass

class ProjectionError(CaseManagementException):
    """Case status could not be derived from its event log"""
    pass

_STATUS_CODES = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DuplicateKeyError: status.HTTP_409_CONFLICT,
    InvalidArgumentError: status.HTTP_400_BAD_REQUEST,
    NamespaceExhaustedError: status.HTTP_507_INSUFFICIENT_STORAGE,
    TransientError: status.HTTP_503_SERVICE_UNAVAILABLE,
}

def status_code_for(exc: CaseManagementException) -> int:
    """HTTP status the web layer should answer with for a core exception"""
    for exc_type, code in _STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR

async def case_management_exception_handler(request: Request, exc: CaseManagementException):
    """Handle custom case management exceptions"""
    status_code = status_code_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        "Case management exception",
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        path=request.url.path
    )

    # schemas.base imports this module
    from casecore.schemas.base import ErrorResponse

    body = ErrorResponse(message=exc.message, error_code=exc.error_code, details=exc.details)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

def register_exception_handlers(app: FastAPI) -> None:
    """Install the core's exception handler on the surrounding web application"""
    app.add_exception_handler(CaseManagementException, case_management_exception_handler)
