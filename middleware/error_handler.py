"""
FastAPI error handling for the sweeper HTTP API.

Every failure leaves the API as ``{"success": false, "error": ...}``.
Client mistakes (bad parameters, insufficient balance) are 400 with the bare
message; execution failures are 500 and carry ``details`` with the error
code and, when the node answered, its raw response.
"""

import logging
import uuid
from typing import Optional

from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from errors.exceptions import SweeperError

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"

STATUS_CODE_MAP = {
    "VALIDATION_ERROR": 400,
    "RESOURCE_ERROR": 400,
}


def create_error_response(message: str, status_code: int = 400, details: Optional[dict] = None) -> JSONResponse:
    content = {"success": False, "error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _request_context(request: Request) -> dict:
    return {
        "correlation_id": getattr(request.state, "correlation_id", None),
        "endpoint": request.url.path,
    }


async def add_correlation_id_middleware(request: Request, call_next):
    """Tag each request with an id echoed back in the response headers"""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


async def sweeper_error_handler(request: Request, exc: SweeperError) -> JSONResponse:
    status_code = STATUS_CODE_MAP.get(exc.code, 500)
    context = {**_request_context(request), "error_code": exc.code}

    if status_code < 500:
        logger.warning(f"Request rejected: {exc.message}", extra=context)
        return create_error_response(exc.message, status_code)

    logger.error(f"Request failed: {exc.message}", extra=context)
    details = {"code": exc.code}
    if getattr(exc, "details", None):
        details["node_response"] = exc.details
    return create_error_response(exc.message, status_code, details)


async def validation_error_handler(request: Request, exc) -> JSONResponse:
    """Schema failures outside /transferTRX's own parameter checks"""
    errors = [{"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in exc.errors()]
    logger.warning(f"Request validation failed: {errors}", extra=_request_context(request))
    return create_error_response("Request validation failed", 400, {"validation_errors": errors})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning(f"HTTP {exc.status_code}: {exc.detail}", extra=_request_context(request))
    return create_error_response(str(exc.detail), exc.status_code)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled {type(exc).__name__}: {exc}", extra=_request_context(request), exc_info=exc)
    return create_error_response(str(exc) or "Internal server error", 500, {"code": type(exc).__name__})


def setup_error_handlers(app):
    app.middleware("http")(add_correlation_id_middleware)
    app.add_exception_handler(SweeperError, sweeper_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(PydanticValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
