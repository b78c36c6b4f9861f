"""Exception types and FastAPI handlers for resumegate."""

from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException

from resumegate.core.error_contract import build_error_envelope, http_status_to_code
from resumegate.core.logging import get_logger, request_context

logger = get_logger(__name__)


class ResumeGateError(Exception):
    """Base exception for resumegate."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "E5000",
        details: Optional[dict] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        self.headers = headers or {}
        super().__init__(message)


class AuthenticationError(ResumeGateError):
    """Identity could not be established."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, code="E2000")


class CapabilityDeniedError(ResumeGateError):
    """The caller's role does not hold the requested grant."""

    def __init__(self, message: str = "Access denied", resource: Optional[str] = None):
        super().__init__(
            message,
            status_code=status.HTTP_403_FORBIDDEN,
            code="E2001",
            details={"resource": resource} if resource else {},
        )


class QuotaExceededError(ResumeGateError):
    """An entitlement has been used up. The message always states the limit."""

    def __init__(self, message: str, kind: str, limit: int):
        super().__init__(
            message,
            status_code=status.HTTP_403_FORBIDDEN,
            code="E2002",
            details={"quota": kind, "limit": limit},
        )
        self.kind = kind
        self.limit = limit


class RateLimitedError(ResumeGateError):
    """Request volume exceeded. Retryable after ``retry_after`` seconds."""

    default_message = "Rate limit exceeded. Please try again later"
    error_code = "E1005"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        limit: int = 0,
        remaining: int = 0,
        retry_after: int = 0,
    ):
        super().__init__(
            message or self.default_message,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            code=self.error_code,
            headers=rate_limit_headers(limit, remaining, retry_after),
        )
        self.limit = limit
        self.remaining = remaining
        self.retry_after = retry_after


class SuspiciousActivityError(RateLimitedError):
    """Escalated rate limit once the repeat-offender threshold is crossed."""

    default_message = "Access temporarily blocked due to suspicious activity"
    error_code = "E1007"


class CollaboratorUnavailableError(ResumeGateError):
    """A backing collaborator (counter store, user store) failed."""

    def __init__(self, message: str = "Service temporarily unavailable", collaborator: Optional[str] = None):
        super().__init__(
            message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="E3000",
            details={"collaborator": collaborator} if collaborator else {},
        )


class NotFoundError(ResumeGateError):
    """Resource not found."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, code="E4040")


class SubscriptionStateError(ResumeGateError):
    """A subscription transition is not valid from the current state."""

    def __init__(self, message: str):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, code="E4000")


def rate_limit_headers(limit: int, remaining: int, retry_after: int) -> Dict[str, str]:
    """Headers surfaced on every rate-limited response, allowed or not."""
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(max(0, remaining)),
        "Retry-After": str(max(0, retry_after)),
    }


def _current_request_id() -> Optional[str]:
    ctx = request_context.get()
    return ctx.get("request_id") if ctx else None


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with FastAPI app."""

    @app.exception_handler(ResumeGateError)
    async def resumegate_exception_handler(
        request: Request, exc: ResumeGateError
    ) -> JSONResponse:
        """Handle resumegate-specific exceptions."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"Request rejected: {exc.message}",
            data={"status_code": exc.status_code, "code": exc.code, "details": exc.details},
        )
        payload = build_error_envelope(
            code=exc.code,
            message=exc.message,
            request_id=_current_request_id(),
            extra=exc.details,
        )
        payload["detail"] = exc.message
        return JSONResponse(
            status_code=exc.status_code,
            content=payload,
            headers=exc.headers or None,
        )

    @app.exception_handler(RequestValidationError)
    @app.exception_handler(ValidationError)
    async def validation_exception_handler(
        request: Request, exc: ValidationError | RequestValidationError
    ) -> JSONResponse:
        """Handle request and Pydantic validation errors."""
        errors = jsonable_encoder(exc.errors())
        logger.warning("Validation error", data={"errors": errors})
        payload = build_error_envelope(
            code="E4220",
            message="Validation error",
            request_id=_current_request_id(),
            extra={"errors": errors},
        )
        payload["detail"] = "Validation error"
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=payload)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        payload = build_error_envelope(
            code=http_status_to_code(exc.status_code),
            message=str(exc.detail),
            request_id=_current_request_id(),
        )
        payload["detail"] = exc.detail
        return JSONResponse(status_code=exc.status_code, content=payload, headers=exc.headers)

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            exc_info=True,
        )
        payload = build_error_envelope(
            code="E5000",
            message="Internal server error",
            request_id=_current_request_id(),
        )
        payload["detail"] = "Internal server error"
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
