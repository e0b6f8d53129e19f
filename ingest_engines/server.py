from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ingest_engines.common.error_envelope import build_error_envelope, envelope_for
from ingest_engines.common.errors import PipelineError, log_pipeline_error
from ingest_engines.common.health import router as health_router
from ingest_engines.preprocessing.routes import router as preprocessing_router
from ingest_engines.preprocessing.service import PreprocessingService

logger = logging.getLogger(__name__)

# --- Error Handling ---


async def _http_exception_handler(request: Request, exc: HTTPException):
    detail = exc.detail
    if isinstance(detail, dict) and "error" in detail:
        return JSONResponse(content=detail, status_code=exc.status_code)

    envelope = build_error_envelope(
        code="http.exception",
        message=str(detail) if detail else "HTTP exception",
        status_code=exc.status_code,
    )
    return JSONResponse(content=envelope.model_dump(mode="json"), status_code=exc.status_code)


async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    envelope = build_error_envelope(
        code="validation.error",
        message="Validation failed",
        status_code=400,
        details={"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]},
    )
    return JSONResponse(content=envelope.model_dump(mode="json"), status_code=400)


async def _pipeline_exception_handler(request: Request, exc: PipelineError):
    err = log_pipeline_error(exc, path=request.url.path)
    envelope = envelope_for(err)
    return JSONResponse(content=envelope.model_dump(mode="json"), status_code=err.status_code)


async def _generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url.path)
    envelope = build_error_envelope(
        code="internal.error",
        message="Internal server error",
        status_code=500,
        retryable=True,
    )
    return JSONResponse(content=envelope.model_dump(mode="json"), status_code=500)


def register_error_handlers(target_app: FastAPI) -> None:
    target_app.add_exception_handler(HTTPException, _http_exception_handler)
    target_app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    target_app.add_exception_handler(PipelineError, _pipeline_exception_handler)
    target_app.add_exception_handler(Exception, _generic_exception_handler)


# --- App Factory ---


def create_app(service: Optional[PreprocessingService] = None) -> FastAPI:
    app = FastAPI(title="Ingest Preprocessing")
    register_error_handlers(app)
    if service is not None:
        app.state.preprocessing_service = service

    app.include_router(health_router)
    app.include_router(preprocessing_router)
    return app
