"""
Tests for the error taxonomy and its HTTP mapping
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from casecore.core.exceptions import (
    CaseManagementException, DuplicateKeyError, InvalidArgumentError, NamespaceExhaustedError,
    NotFoundError, ProjectionError, TransientError, register_exception_handlers, status_code_for
)
from casecore.schemas.base import ErrorResponse, validate_input
from casecore.schemas.case import CaseEventCreate


@pytest.mark.parametrize("exc,expected", [
    (NotFoundError("missing", error_code="CASE_NOT_FOUND"), 404),
    (DuplicateKeyError("taken", error_code="DUPLICATE_NATIONAL_ID"), 409),
    (InvalidArgumentError("bad", error_code="INVALID_ARGUMENT"), 400),
    (NamespaceExhaustedError("full", error_code="NAMESPACE_EXHAUSTED"), 507),
    (TransientError("later", error_code="STORAGE_UNAVAILABLE"), 503),
    (ProjectionError("corrupt", error_code="CORRUPT_EVENT_LOG"), 500),
    (CaseManagementException("boom"), 500),
])
def test_status_code_mapping(exc, expected):
    assert status_code_for(exc) == expected


def test_handler_renders_error_response():
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/cases/{case_id}")
    async def read_case(case_id: int):
        raise NotFoundError(
            f"Case with ID {case_id} not found",
            error_code="CASE_NOT_FOUND",
            details={"case_id": case_id}
        )

    response = TestClient(app).get("/cases/1234567")

    assert response.status_code == 404
    body = response.json()
    timestamp = body.pop("timestamp")
    assert body == {
        "success": False,
        "message": "Case with ID 1234567 not found",
        "error_code": "CASE_NOT_FOUND",
        "details": {"case_id": 1234567},
    }
    assert ErrorResponse.model_validate({**body, "timestamp": timestamp}).timestamp.tzinfo is not None


def test_validation_errors_become_invalid_argument():
    with pytest.raises(InvalidArgumentError) as exc_info:
        validate_input(CaseEventCreate, {"case_id": "not-a-number", "event_type": ""})

    error = exc_info.value
    assert error.error_code == "INVALID_ARGUMENT"
    fields = {tuple(item["loc"]) for item in error.details["validation_errors"]}
    assert ("case_id",) in fields
    assert ("event_type",) in fields


def test_validated_model_passes_through():
    data = CaseEventCreate(case_id=1234567, event_type="pending")
    assert validate_input(CaseEventCreate, data) is data
