"""Typed pipeline errors.

Every failure that crosses a stage boundary is one of these. The orchestrator
inspects ``retryable`` to decide whether a batch item goes back to the queue.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class Fault(str, Enum):
    CLIENT = "client"
    SERVER = "server"


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    STORAGE = "storage_error"
    SEGMENTATION = "segmentation_error"
    DISPATCH = "dispatch_error"
    DUPLICATE = "duplicate_error"
    INTERNAL = "internal_error"


class PipelineError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL
    fault: Fault = Fault.SERVER
    retryable: bool = True
    status_code: int = 500

    def __init__(self, message: str = "Unknown error", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    @property
    def is_failure(self) -> bool:
        """True when the batch item should be reported back for redelivery."""
        return self.retryable

    def to_log(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "fault": self.fault.value,
            "retryable": self.retryable,
            "status_code": self.status_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PipelineError):
    """Unsupported, malformed or unplayable content. Never retried."""

    kind = ErrorKind.VALIDATION
    fault = Fault.CLIENT
    retryable = False
    status_code = 400


class StorageError(PipelineError):
    kind = ErrorKind.STORAGE
    status_code = 503


class SegmentationError(PipelineError):
    kind = ErrorKind.SEGMENTATION
    status_code = 503


class DispatchError(PipelineError):
    kind = ErrorKind.DISPATCH
    status_code = 503


class DuplicateError(PipelineError):
    """The asset record already exists; the delivery was handled before."""

    kind = ErrorKind.DUPLICATE
    fault = Fault.CLIENT
    retryable = False
    status_code = 409

    @property
    def is_failure(self) -> bool:
        return False


def as_pipeline_error(exc: BaseException) -> PipelineError:
    """Wrap anything unexpected as a retryable internal error."""
    if isinstance(exc, PipelineError):
        return exc
    wrapped = PipelineError(str(exc) or exc.__class__.__name__, details={"exception": exc.__class__.__name__})
    wrapped.__cause__ = exc
    return wrapped


def log_pipeline_error(exc: BaseException, **context: Any) -> PipelineError:
    """Log the full diagnostic record and return the typed error."""
    err = as_pipeline_error(exc)
    record = {**err.to_log(), **context}
    if isinstance(err, DuplicateError):
        logger.warning("Duplicate delivery ignored: %s", record)
    elif err.fault == Fault.CLIENT:
        logger.warning("Client fault, dropping item: %s", record)
    else:
        logger.error("Server fault, item will be retried: %s", record, exc_info=err.__cause__ or err)
    return err
