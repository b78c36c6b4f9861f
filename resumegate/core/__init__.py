"""Core module with logging, middleware, and exception handling."""

from resumegate.core.exceptions import setup_exception_handlers
from resumegate.core.logging import get_logger, setup_logging
from resumegate.core.middleware import RequestContextMiddleware, get_client_ip

__all__ = [
    "get_logger",
    "setup_logging",
    "RequestContextMiddleware",
    "get_client_ip",
    "setup_exception_handlers",
]
