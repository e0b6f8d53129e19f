"""Canonical error envelope for preprocessing responses.

Standardized structure:
{
  "error": {
    "code": "string",
    "message": "string",
    "http_status": 400,
    "fault": "client | server",
    "retryable": false,
    "details": {}
  }
}
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException
from pydantic import BaseModel, Field

from ingest_engines.common.errors import Fault, PipelineError, as_pipeline_error

GENERIC_SERVER_MESSAGE = "Temporary processing failure, the item will be retried"


class ErrorDetail(BaseModel):
    """Canonical error detail structure."""
    code: str
    message: str
    http_status: int
    fault: Fault = Fault.SERVER
    retryable: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorEnvelope(BaseModel):
    error: ErrorDetail


def build_error_envelope(
    code: str,
    message: str,
    status_code: int = 400,
    fault: Fault = Fault.CLIENT,
    retryable: bool = False,
    details: Optional[Dict[str, Any]] = None,
) -> ErrorEnvelope:
    """Construct an ErrorEnvelope (without raising)."""
    error_detail = ErrorDetail(
        code=code,
        message=message,
        http_status=status_code,
        fault=fault,
        retryable=retryable,
        details=details or {},
    )
    return ErrorEnvelope(error=error_detail)


def envelope_for(exc: BaseException) -> ErrorEnvelope:
    """User-visible envelope for a pipeline failure.

    Client faults keep their message and details. Server faults only say that
    the item will be retried; the diagnostic detail stays in the logs.
    """
    err: PipelineError = as_pipeline_error(exc)
    if err.fault == Fault.CLIENT:
        return build_error_envelope(
            code=err.kind.value,
            message=err.message,
            status_code=err.status_code,
            fault=err.fault,
            retryable=err.retryable,
            details=err.details,
        )
    return build_error_envelope(
        code=err.kind.value,
        message=GENERIC_SERVER_MESSAGE,
        status_code=err.status_code,
        fault=Fault.SERVER,
        retryable=True,
    )


def error_response(
    code: str,
    message: str,
    status_code: int = 400,
    details: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    """Construct and raise a standardized error response."""
    envelope = build_error_envelope(code=code, message=message, status_code=status_code, details=details)
    raise HTTPException(status_code=status_code, detail=envelope.model_dump(mode="json"))
