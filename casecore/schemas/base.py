"""
Base schemas and response models
"""

from pydantic import BaseModel, Field, ValidationError
from typing import Optional, Any, Dict, Type, TypeVar
from datetime import datetime, UTC

from casecore.core.exceptions import InvalidArgumentError

ModelT = TypeVar("ModelT", bound=BaseModel)

class BaseResponse(BaseModel):
    """Base response model"""
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

class ErrorResponse(BaseResponse):
    """Error response model"""
    success: bool = False
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

def validate_input(model: Type[ModelT], data: Any) -> ModelT:
    """
    Validate caller input against a schema

    Raises:
        InvalidArgumentError: carrying pydantic's error list in details
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidArgumentError(
            f"Invalid {model.__name__}: {e.error_count()} validation error(s)",
            error_code="INVALID_ARGUMENT",
            details={"validation_errors": e.errors(include_url=False, include_context=False)}
        )
