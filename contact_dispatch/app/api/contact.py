"""
FastAPI route: contact-form submission.

    POST /contact   — validate, dispatch, report

Pipeline per request:

    origin gate → rate limit → body parse → validate → dispatch → format

Validation failures never reach the dispatcher. Dispatch blocks on
provider I/O, so it runs in Starlette's threadpool.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from contact_dispatch.app.api.deps import get_dispatcher
from contact_dispatch.app.api.schemas import ERROR_RESPONSES, ContactRequest, ContactSuccess
from contact_dispatch.app.core.errors import MalformedRequest, ValidationFailed, error_for_outcome
from contact_dispatch.app.gate.origins import enforce_origin
from contact_dispatch.app.gate.rate_limit import enforce_rate_limit
from contact_dispatch.app.notify import formatter
from contact_dispatch.app.notify.dispatcher import Dispatcher
from contact_dispatch.app.notify.validator import validate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["contact"])


async def read_json_object(request: Request) -> Dict[str, Any]:
    """Decode the request body as a JSON object or raise MalformedRequest."""
    raw = await request.body()
    if not raw.strip():
        raise MalformedRequest("Missing body")
    try:
        payload = json.loads(raw)
    except ValueError:
        raise MalformedRequest("Invalid JSON body") from None
    if not isinstance(payload, dict):
        raise MalformedRequest("Invalid JSON body")
    return payload


@router.post(
    "/contact",
    response_model=ContactSuccess,
    responses=ERROR_RESPONSES,
    dependencies=[Depends(enforce_origin), Depends(enforce_rate_limit)],
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": ContactRequest.model_json_schema()}},
        },
    },
)
async def submit_contact(
    request: Request,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Send the contact form to the business inbox.

    200 on delivery (including via a fallback provider), 400 on a
    malformed body or field errors, 500 when nothing could be sent.
    """
    payload = await read_json_object(request)

    result = validate(payload)
    if not result.ok:
        logger.info("Contact form rejected: invalid %s", ", ".join(result.fields_in_error))
        raise ValidationFailed(result.errors)

    outcome = await run_in_threadpool(dispatcher.dispatch, result.submission)
    if not outcome.is_delivered:
        raise error_for_outcome(outcome)

    return formatter.success_body(outcome)
