from .exceptions import ExceptionHandlerMiddleware, register_exception_handlers
from .logging import StructuredLoggingMiddleware, filter_headers

__all__ = [
    "ExceptionHandlerMiddleware",
    "StructuredLoggingMiddleware",
    "filter_headers",
    "register_exception_handlers",
]
