"""
FastAPI route: operator diagnostics.

    GET /debug/provider     — which providers are configured, non-secret settings
    GET /debug/{provider}   — no-delivery verification against one provider

Mounted only when DEBUG_ROUTES_ENABLED is on, which by default means
outside production. Both endpoints count against the same per-IP rate
limit window as POST /contact. Neither endpoint returns a credential
value or delivers mail: HTTP APIs are probed in sandbox mode and SMTP
stops after login.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from starlette.concurrency import run_in_threadpool

from contact_dispatch.app.api.deps import get_app_settings, get_dispatcher
from contact_dispatch.app.api.schemas import VerifyResponse
from contact_dispatch.app.core.config import Settings
from contact_dispatch.app.gate.rate_limit import enforce_rate_limit
from contact_dispatch.app.notify import registry
from contact_dispatch.app.notify.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/debug",
    tags=["diagnostics"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("/provider")
async def provider_report(settings: Settings = Depends(get_app_settings)) -> Dict[str, Any]:
    return registry.describe(settings)


@router.get("/{provider}", response_model=VerifyResponse, response_model_exclude_none=True)
async def verify_provider(
    provider: str,
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Verify one provider's credentials and sender without delivering mail.

    Always 200 for a known provider; ``ok`` carries the result.
    """
    name = provider.strip().lower()
    if name not in registry.KNOWN_PROVIDERS:
        raise HTTPException(status_code=404)

    try:
        result = await run_in_threadpool(dispatcher.verify_provider, name)
    except KeyError:
        return {"ok": False, "provider": name, "error": f"{name} is not configured"}

    log_level = logging.INFO if result["ok"] else logging.WARNING
    logger.log(
        log_level, "Diagnostic verify for %s: ok=%s", name, result["ok"],
        extra={"provider": name, "error_code": result.get("code")},
    )
    return result
