"""Structured request logging with correlation IDs.

- Accepts ``X-Request-ID`` for distributed tracing, or generates one
- Logs request start/complete with timing
- Never logs credentials (sensitive headers are masked)
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Iterable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from xbridge_core.logging_config import clear_context, generate_request_id, set_request_id

logger = logging.getLogger("xbridge.api")

# Headers that should never be logged
SENSITIVE_HEADERS = frozenset({
    "authorization",
    "x-api-key",
    "cookie",
    "set-cookie",
    "privy-authorization-signature",
})

SLOW_REQUEST_THRESHOLD_MS = 5_000.0


def mask_sensitive_value(value: str) -> str:
    if len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"


def filter_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {
        k: (mask_sensitive_value(v) if k.lower() in SENSITIVE_HEADERS else v)
        for k, v in headers.items()
    }


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exclude_paths: Iterable[str] = ()) -> None:
        super().__init__(app)
        self.exclude_paths = set(exclude_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_request_id()
        request.state.request_id = request_id
        set_request_id(request_id)

        path = request.url.path
        quiet = path in self.exclude_paths
        method = request.method

        if not quiet:
            logger.info(
                "Request started",
                extra={"event": "request_start", "method": method, "path": path},
            )

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                "Request failed",
                extra={
                    "event": "request_error",
                    "method": method,
                    "path": path,
                    "error_type": type(e).__name__,
                    "duration_ms": round(duration_ms, 2),
                },
                exc_info=True,
            )
            raise
        finally:
            clear_context()

        duration_ms = (time.perf_counter() - start) * 1000
        context = {
            "event": "request_complete",
            "method": method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }
        if response.status_code >= 500:
            logger.error("Request completed with server error", extra=context)
        elif response.status_code >= 400:
            logger.warning("Request completed with client error", extra=context)
        elif duration_ms > SLOW_REQUEST_THRESHOLD_MS:
            logger.warning("Slow request completed", extra={**context, "slow_request": True})
        elif not quiet:
            logger.info("Request completed", extra=context)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
        return response
