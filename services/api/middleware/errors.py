"""
Exception handlers that render errors into the standard envelope:

    {"success": false, "error": {"code", "message", "details"?}, "requestId"}

SchedulingError subclasses carry their own HTTP status and code, so routers
just let them propagate.
"""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from services.api.scheduling.errors import SchedulingError

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", str(uuid.uuid4()))


def error_response(request: Request, status_code: int, error: dict) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "requestId": _request_id(request)},
    )


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    logger.info(
        "request_rejected path=%s status=%d code=%s",
        request.url.path, exc.status_code, exc.code,
    )
    return error_response(request, exc.status_code, exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Validation error.")
    if loc:
        message = f"{loc}: {message}"
    return error_response(request, 422, {"code": "VALIDATION_ERROR", "message": message})


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        error = {"code": "NOT_FOUND", "message": "Resource not found."}
    elif isinstance(exc.detail, dict):
        error = exc.detail
    else:
        error = {"code": "HTTP_ERROR", "message": str(exc.detail)}
    return error_response(request, exc.status_code, error)


async def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error path=%s", request.url.path)
    return error_response(
        request, 500, {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred."}
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SchedulingError, scheduling_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, internal_error_handler)
