"""
formatter.py — Maps dispatch results and API errors onto the JSON bodies
the contact page renders.

Body shapes:

    200  {success: true,  message, provider, info: {status, messageRef,
                                                    statusCode, autoReply}}
    400  {success: false, message: "Validation error", code,
          errors: [{param, msg}, ...]}
    4xx/5xx  {success: false, message, code, error?}

``error`` carries the last provider error string and is only added when
the operator turns on DEBUG_EMAIL. Credentials, tracebacks and the list
of failed attempts never reach a client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from contact_dispatch.app.notify.models import DispatchOutcome, FieldError

if TYPE_CHECKING:
    from contact_dispatch.app.core.errors import ContactAPIError

SUCCESS_MESSAGE = "Thanks! Your message has been sent."
VALIDATION_MESSAGE = "Validation error"
HEALTH_MESSAGE = "API is healthy."


def success_body(outcome: DispatchOutcome) -> Dict[str, Any]:
    return {
        "success": True,
        "message": SUCCESS_MESSAGE,
        "provider": outcome.provider_used,
        "info": {
            "status": outcome.status.value,
            "messageRef": outcome.message_ref,
            "statusCode": outcome.status_code,
            "autoReply": outcome.auto_reply_sent,
        },
    }


def validation_body(errors: Sequence[FieldError]) -> Dict[str, Any]:
    return failure_body(
        VALIDATION_MESSAGE,
        code="VALIDATION_FAILED",
        errors=[e.to_dict() for e in errors],
    )


def failure_body(
    message: str,
    *,
    code: Optional[str] = None,
    error: Optional[str] = None,
    debug: bool = False,
    errors: Optional[List[Dict[str, str]]] = None,
) -> Dict[str, Any]:
    """Generic ``success: false`` body; ``error`` is dropped unless ``debug``."""
    body: Dict[str, Any] = {"success": False, "message": message}
    if code:
        body["code"] = code
    if errors is not None:
        body["errors"] = errors
    if debug and error:
        body["error"] = error
    return body


def error_body(exc: "ContactAPIError", *, debug: bool = False) -> Dict[str, Any]:
    """Render any ContactAPIError; the only place that reads its details."""
    return failure_body(
        exc.message,
        code=exc.error_code,
        error=exc.details.get("provider_error"),
        debug=debug,
        errors=exc.details.get("errors"),
    )


def health_body() -> Dict[str, Any]:
    return {"ok": True, "message": HEALTH_MESSAGE}
