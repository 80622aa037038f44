"""
Case and case event schemas for core inputs and read models
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Union
from datetime import date, datetime
from uuid import UUID

def _strip_label(v):
    return v.strip() if isinstance(v, str) else v

class CaseCreate(BaseModel):
    """Schema for creating a case"""
    client_id: int = Field(..., description="Owning client identifier")
    initial_status: Optional[str] = Field(None, min_length=1, max_length=255, description="Status before any event is logged")
    case_id: Optional[Union[int, str]] = Field(None, description="Caller-supplied case identifier")

    @field_validator("initial_status", mode="before")
    @classmethod
    def strip_status(cls, v):
        return _strip_label(v)

class CaseEventCreate(BaseModel):
    """Schema for appending an event to a case's log"""
    case_id: int = Field(..., description="Case the event belongs to")
    event_type: str = Field(..., min_length=1, max_length=255, description="Status label, e.g. 'lawyer review'")
    details: Optional[str] = Field(None, description="Free-text details")
    occurred_at: Optional[datetime] = Field(None, description="When the event happened; defaults to now")

    @field_validator("event_type", mode="before")
    @classmethod
    def strip_event_type(cls, v):
        return _strip_label(v)

class EventAmendment(BaseModel):
    """Patch for an existing event; only fields that are set are applied"""
    event_type: Optional[str] = Field(None, min_length=1, max_length=255, description="New status label")
    details: Optional[str] = Field(None, description="New free-text details")

    @field_validator("event_type", mode="before")
    @classmethod
    def strip_event_type(cls, v):
        return _strip_label(v)

    @field_validator("event_type")
    @classmethod
    def reject_null_event_type(cls, v):
        if v is None:
            raise ValueError("event_type cannot be null")
        return v

class CaseResponse(BaseModel):
    """Case read model"""
    case_id: int
    display_id: str
    client_id: int
    case_creation_date: date
    current_status: str
    last_status_changed_at: datetime
    created_at: datetime

    class Config:
        from_attributes = True

class CaseEventResponse(BaseModel):
    """Case event read model"""
    id: UUID
    case_id: int
    sequence: int
    event_type: str
    occurred_at: datetime
    details: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

class CaseHistory(BaseModel):
    """A case together with its event log, most recent event first"""
    case: CaseResponse
    events: List[CaseEventResponse] = Field(default_factory=list)

class ReprojectionSummary(BaseModel):
    """Outcome of a full-corpus status recomputation"""
    processed: int = 0
    failed: int = 0
    failed_case_ids: List[int] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return self.processed + self.failed
