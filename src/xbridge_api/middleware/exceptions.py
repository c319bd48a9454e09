"""Global exception handlers for the bridge API.

Every error body carries the fields clients branch on, plus RFC 7807
Problem Details:

{
    "error": "Insufficient SOL for nonce account creation",
    "code": "INSUFFICIENT_SOL",
    "required": "1452680",          # exception details, flattened
    "balance": "1000",
    "type": "https://errors.xbridge.dev/insufficient-sol",
    "title": "Insufficient Sol",
    "status": 402,
    "detail": "Insufficient SOL for nonce account creation",
    "instance": "/bridge/create-nonce",
    "request_id": "req_abc123"
}
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from xbridge_core.constants import ErrorCodes
from xbridge_core.exceptions import RequestCancelledError, XBridgeException

logger = logging.getLogger(__name__)

ERROR_TYPE_BASE = "https://errors.xbridge.dev"

STATUS_TO_CODE = {
    400: ErrorCodes.VALIDATION_ERROR,
    401: ErrorCodes.AUTHENTICATION_ERROR,
    403: ErrorCodes.AUTHORIZATION_ERROR,
    404: ErrorCodes.NOT_FOUND,
}


@dataclass
class RFC7807Error:
    """RFC 7807 Problem Details representation."""
    type: str
    title: str
    status: int
    detail: str
    instance: str
    request_id: str
    code: str
    extensions: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"error": self.detail, "code": self.code}
        if self.extensions:
            result.update(self.extensions)
        result.update(
            {
                "type": self.type,
                "title": self.title,
                "status": self.status,
                "detail": self.detail,
                "instance": self.instance,
                "request_id": self.request_id,
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            }
        )
        return result


def get_request_id(request: Request) -> str:
    """Extract request ID from request state or headers."""
    if hasattr(request.state, "request_id"):
        return request.state.request_id
    return request.headers.get("X-Request-ID", "unknown")


def is_production() -> bool:
    """Only dev and sandbox show internal error details."""
    env = os.getenv("XBRIDGE_ENVIRONMENT", "dev").strip().lower()
    return env not in ("dev", "sandbox", "test")


def create_error_response(
    error_code: str,
    message: str,
    status_code: int,
    request_id: str,
    details: dict | None = None,
    instance: str = "",
) -> JSONResponse:
    slug = error_code.lower().replace("_", "-")
    error = RFC7807Error(
        type=f"{ERROR_TYPE_BASE}/{slug}",
        title=error_code.replace("_", " ").title(),
        status=status_code,
        detail=message,
        instance=instance,
        request_id=request_id,
        code=error_code,
        extensions=details,
    )
    return JSONResponse(
        status_code=status_code,
        content=error.to_dict(),
        headers={"X-Request-ID": request_id},
    )


def _validation_message(error: dict[str, Any]) -> str:
    field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
    if error.get("type") == "missing":
        return f"Missing {field}"
    return f"Invalid {field}: {error['msg']}" if field else error["msg"]


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        request_id = get_request_id(request)
        errors = [
            {
                "field": ".".join(str(loc) for loc in e["loc"] if loc != "body"),
                "message": e["msg"],
                "type": e["type"],
            }
            for e in exc.errors()
        ]
        logger.warning(
            "Validation error: %d field(s) failed",
            len(errors),
            extra={"path": request.url.path, "errors": errors},
        )
        message = _validation_message(exc.errors()[0]) if exc.errors() else "Invalid request"
        return create_error_response(
            error_code=ErrorCodes.VALIDATION_ERROR,
            message=message,
            status_code=400,
            request_id=request_id,
            details={"errors": errors},
            instance=request.url.path,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        request_id = get_request_id(request)
        error_code = STATUS_TO_CODE.get(exc.status_code, ErrorCodes.INTERNAL_ERROR)
        logger.warning(
            "HTTP error %d: %s",
            exc.status_code,
            exc.detail,
            extra={"path": request.url.path},
        )
        return create_error_response(
            error_code=error_code,
            message=str(exc.detail) if exc.detail else "An error occurred",
            status_code=exc.status_code,
            request_id=request_id,
            instance=request.url.path,
        )

    @app.exception_handler(XBridgeException)
    async def xbridge_exception_handler(
        request: Request, exc: XBridgeException
    ) -> JSONResponse:
        request_id = get_request_id(request)

        if exc.http_status >= 500:
            logger.error(
                "Server error: %s - %s",
                exc.error_code,
                exc.message,
                extra={"error_code": exc.error_code, "details": exc.details},
                exc_info=exc,
            )
        elif isinstance(exc, RequestCancelledError):
            logger.info("Request cancelled: %s", exc.message, extra={"details": exc.details})
        else:
            logger.warning(
                "Client error: %s - %s",
                exc.error_code,
                exc.message,
                extra={"error_code": exc.error_code},
            )

        # Downstream response bodies stay internal in production
        details = exc.details
        if is_production() and exc.http_status >= 500:
            details = {k: v for k, v in exc.details.items() if k != "body"}

        return create_error_response(
            error_code=exc.error_code,
            message=exc.message,
            status_code=exc.http_status,
            request_id=request_id,
            details=details,
            instance=request.url.path,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        request_id = get_request_id(request)
        logger.error(
            "Unhandled exception: %s: %s",
            type(exc).__name__,
            exc,
            extra={"path": request.url.path, "method": request.method},
            exc_info=exc,
        )
        message = "An internal error occurred" if is_production() else str(exc) or type(exc).__name__
        details = None if is_production() else {"exception_type": type(exc).__name__}
        return create_error_response(
            error_code=ErrorCodes.INTERNAL_ERROR,
            message=message,
            status_code=500,
            request_id=request_id,
            details=details,
            instance=request.url.path,
        )


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """Catches errors raised outside route handlers (e.g., in other middleware)."""

    async def dispatch(self, request: Request, call_next: Callable) -> JSONResponse:
        try:
            return await call_next(request)
        except XBridgeException:
            raise
        except Exception as exc:
            request_id = get_request_id(request)
            logger.error(
                "Middleware exception: %s: %s",
                type(exc).__name__,
                exc,
                extra={"path": request.url.path},
                exc_info=True,
            )
            message = "An internal error occurred" if is_production() else f"{type(exc).__name__}: {exc}"
            return create_error_response(
                error_code=ErrorCodes.INTERNAL_ERROR,
                message=message,
                status_code=500,
                request_id=request_id,
                instance=request.url.path,
            )
