"""
Client schemas for core inputs and read models
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime

def _normalize_phone_numbers(numbers: List[str]) -> List[str]:
    # Drop blanks and duplicates, keep caller order
    normalized = []
    for number in numbers:
        number = number.strip()
        if number and number not in normalized:
            normalized.append(number)
    return normalized

class ClientCreate(BaseModel):
    """Schema for creating a client"""
    first_name: str = Field(..., min_length=1, max_length=255, description="Given name")
    last_name: str = Field(..., min_length=1, max_length=255, description="Family name")
    national_id: str = Field(..., min_length=1, max_length=10, description="National identity number (natural key)")
    phone_numbers: List[str] = Field(default_factory=list, description="Contact phone numbers")
    credential_hash: Optional[str] = Field(None, max_length=255, description="Pre-hashed credential")

    @field_validator("first_name", "last_name", "national_id", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("phone_numbers")
    @classmethod
    def validate_phone_numbers(cls, v):
        return _normalize_phone_numbers(v)

class PhoneNumbersUpdate(BaseModel):
    """Schema for replacing a client's phone numbers"""
    phone_numbers: List[str] = Field(..., description="Contact phone numbers")

    @field_validator("phone_numbers")
    @classmethod
    def validate_phone_numbers(cls, v):
        return _normalize_phone_numbers(v)

class ClientResponse(BaseModel):
    """Client read model"""
    client_id: int
    display_id: str
    first_name: str
    last_name: str
    national_id: str
    phone_numbers: List[str]
    has_credential: bool
    created_at: datetime

    class Config:
        from_attributes = True
