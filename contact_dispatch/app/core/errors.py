"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Consistent ``{success: false, message, code}`` JSON bodies
    • Automatic logging of every error response
    • Mapping from a failed DispatchOutcome to the matching exception

Usage:
    from contact_dispatch.app.core.errors import (
        ContactAPIError,
        ValidationFailed,
        DeliveryFailed,
        register_error_handlers,
    )

    raise ValidationFailed(result.errors)

Hierarchy:

    ContactAPIError
    ├── ValidationFailed        400
    ├── MalformedRequest        400
    ├── OriginNotAllowed        403
    ├── RateLimitExceeded       429
    ├── NotConfigured           500
    └── DeliveryFailed          500
        ├── ProviderAuthFailed
        └── SenderNotVerified
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from contact_dispatch.app.core.config import Settings
from contact_dispatch.app.notify import formatter
from contact_dispatch.app.notify.channels.base import FailureCode
from contact_dispatch.app.notify.models import DispatchOutcome, DispatchStatus, FieldError

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class ContactAPIError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "Something went wrong!",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        self.headers = headers or {}


class ValidationFailed(ContactAPIError):
    """One or more contact-form fields broke a rule (400)."""

    def __init__(self, errors: Sequence[FieldError]):
        super().__init__(
            message=formatter.VALIDATION_MESSAGE,
            status_code=400,
            error_code="VALIDATION_FAILED",
            details={"errors": [e.to_dict() for e in errors]},
        )
        self.errors = list(errors)


class MalformedRequest(ContactAPIError):
    """Body missing or not a JSON object (400)."""

    def __init__(self, message: str):
        super().__init__(message=message, status_code=400, error_code="MALFORMED_REQUEST")


class OriginNotAllowed(ContactAPIError):
    """Browser origin outside the allow-list (403)."""

    def __init__(self, origin: str):
        super().__init__(
            message="Origin not allowed",
            status_code=403,
            error_code="ORIGIN_NOT_ALLOWED",
            details={"origin": origin},
        )


class RateLimitExceeded(ContactAPIError):
    """Too many submissions from one client in the current window (429)."""

    def __init__(
        self,
        message: str = "Too many contact form submissions, please try again later.",
        retry_after: int = 60,
    ):
        super().__init__(
            message=message,
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED",
            details={"retry_after_seconds": retry_after},
            headers={"Retry-After": str(retry_after)},
        )


class NotConfigured(ContactAPIError):
    """No usable email provider; never reported as success (500)."""

    def __init__(self, provider_error: Optional[str] = None):
        super().__init__(
            message="Email service is not configured.",
            status_code=500,
            error_code="NOT_CONFIGURED",
            details={"provider_error": provider_error},
        )


class DeliveryFailed(ContactAPIError):
    """Every configured provider was tried and none accepted the message (500)."""

    default_error_code = "DELIVERY_FAILED"

    def __init__(
        self,
        provider_error: Optional[str] = None,
        *,
        failure_code: Optional[str] = None,
    ):
        super().__init__(
            message="Failed to send email.",
            status_code=500,
            error_code=self.default_error_code,
            details={"provider_error": provider_error, "failure_code": failure_code},
        )


class ProviderAuthFailed(DeliveryFailed):
    """Last provider refused our credentials."""

    default_error_code = "PROVIDER_AUTH_FAILED"


class SenderNotVerified(DeliveryFailed):
    """Last provider refused the configured sender identity."""

    default_error_code = "SENDER_NOT_VERIFIED"


_DELIVERY_ERRORS = {
    FailureCode.AUTH_FAILED.value: ProviderAuthFailed,
    FailureCode.SENDER_NOT_VERIFIED.value: SenderNotVerified,
}


def error_for_outcome(outcome: DispatchOutcome) -> ContactAPIError:
    """Exception matching an undelivered outcome."""
    if outcome.status == DispatchStatus.NOT_CONFIGURED:
        return NotConfigured(outcome.provider_error)
    error_cls = _DELIVERY_ERRORS.get(outcome.error_code or "", DeliveryFailed)
    return error_cls(outcome.provider_error, failure_code=outcome.error_code)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    """Register all exception handlers on the FastAPI app."""
    debug = settings.DEBUG_EMAIL

    @app.exception_handler(ContactAPIError)
    async def handle_contact_error(request: Request, exc: ContactAPIError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            "API Error [%s] %s %s: %s | details=%s",
            exc.error_code, request.method, request.url.path, exc.message,
            {k: v for k, v in exc.details.items() if k != "errors"},
            extra={"error_code": exc.error_code, "status_code": exc.status_code},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=formatter.error_body(exc, debug=debug),
            headers=exc.headers or None,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            message = f"Not found: {request.method} {request.url.path}"
            code = "NOT_FOUND"
        else:
            message = str(exc.detail)
            code = "HTTP_ERROR"
        logger.warning("%s %s → %d: %s", request.method, request.url.path, exc.status_code, message)
        return JSONResponse(
            status_code=exc.status_code,
            content=formatter.failure_body(message, code=code),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception on %s %s: %s",
            request.method, request.url.path, exc,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=formatter.failure_body(
                "Something went wrong!",
                code="INTERNAL_ERROR",
                error=f"{type(exc).__name__}: {exc}",
                debug=debug,
            ),
        )
