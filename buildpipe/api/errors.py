"""Exception handlers: domain errors become structured JSON responses.

Stack traces are logged server-side and never returned to clients.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from buildpipe.core.errors import BuildPipeError, format_error_response
from buildpipe.domain.state_machine import TransitionError

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str:
    return request.headers.get("X-Request-Id") or str(uuid.uuid4())


async def buildpipe_error_handler(request: Request, exc: BuildPipeError) -> JSONResponse:
    request_id = _request_id(request)
    if exc.status_code >= 500:
        logger.error("%s on %s %s [request_id=%s]: %s",
                     type(exc).__name__, request.method, request.url.path, request_id, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(error=exc.message, detail=exc.message, request_id=request_id),
    )


async def transition_error_handler(request: Request, exc: TransitionError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=format_error_response(
            error=str(exc),
            detail={"from": exc.from_status.value, "to": exc.to_status.value},
            request_id=_request_id(request),
        ),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = str(exc.detail) if exc.detail else None
    return JSONResponse(
        status_code=exc.status_code,
        content=format_error_response(error=detail or "Error", detail=detail, request_id=_request_id(request)),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    request_id = _request_id(request)
    errors = jsonable_encoder(exc.errors())
    logger.warning("Validation error on %s %s [request_id=%s]: %s",
                   request.method, request.url.path, request_id, errors)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=format_error_response(error="Validation failed", detail=errors, request_id=request_id),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = _request_id(request)
    logger.error("Unhandled exception on %s %s [request_id=%s]",
                 request.method, request.url.path, request_id, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=format_error_response(
            error="Internal Server Error", detail="Internal server error", request_id=request_id
        ),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(BuildPipeError, buildpipe_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(TransitionError, transition_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)
