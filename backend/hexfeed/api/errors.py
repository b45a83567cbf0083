"""Global error handlers rendering the ``{"error": {...}, "request_id"}`` envelope."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hexfeed.api.request_id import get_request_id
from hexfeed.domain.search.exceptions import EngineError, RateLimited

logger = logging.getLogger(__name__)

_HTTP_CODES = {
    400: "invalid_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    429: "rate_limit",
}


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    payload = {
        "error": {"code": code, "message": message},
        "request_id": get_request_id(request),
    }
    return JSONResponse(status_code=status_code, content=payload, headers=headers)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("query", "body"))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(EngineError)
    async def engine_exc_handler(request: Request, exc: EngineError):  # type: ignore[override]
        if exc.status_code >= 500:
            logger.error("api.error.engine", extra={"code": exc.code, "detail": exc.detail})
        headers = None
        if isinstance(exc, RateLimited) and exc.retry_after:
            headers = {"Retry-After": str(exc.retry_after)}
        return error_response(request, exc.status_code, exc.code, exc.detail, headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        code = _HTTP_CODES.get(exc.status_code, "internal_error" if exc.status_code >= 500 else "http_error")
        return error_response(request, exc.status_code, code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        return error_response(request, 400, "invalid_request", _validation_message(exc))

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):  # type: ignore[override]
        logger.exception("api.error.unhandled", extra={"path": request.url.path})
        return error_response(request, 500, "internal_error", "internal error")
