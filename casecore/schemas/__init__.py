from .base import BaseResponse, ErrorResponse, validate_input
from .client import ClientCreate, PhoneNumbersUpdate, ClientResponse
from .case import (
    CaseCreate, CaseEventCreate, EventAmendment,
    CaseResponse, CaseEventResponse, CaseHistory, ReprojectionSummary
)

__all__ = [
    "BaseResponse", "ErrorResponse", "validate_input",
    "ClientCreate", "PhoneNumbersUpdate", "ClientResponse",
    "CaseCreate", "CaseEventCreate", "EventAmendment",
    "CaseResponse", "CaseEventResponse", "CaseHistory", "ReprojectionSummary",
]
