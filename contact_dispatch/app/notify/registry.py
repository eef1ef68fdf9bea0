"""
registry.py — Resolves which outbound providers are usable.

Reads the process Settings once and returns an ordered list of
ProviderConfig, filtered to providers whose required settings are all
present. Missing configuration never raises; the provider is simply
left out, and an empty list makes the dispatcher report
``not_configured``.

Priority order (lower first):

    Priority   Provider   Kind       Required settings
    ────────   ────────   ────────   ───────────────────────────────────────
    10         sendgrid   http_api   SENDGRID_API_KEY, FROM_EMAIL
    20         mailgun    http_api   MAILGUN_API_KEY, MAILGUN_DOMAIN,
                                     MAILGUN_FROM_EMAIL or FROM_EMAIL
    100        smtp       smtp       SMTP_HOST, SMTP_USER, SMTP_PASSWORD

HTTP APIs come first: they keep working on hosts where outbound SMTP
ports are filtered.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import SecretStr

from contact_dispatch.app.core.config import Settings
from contact_dispatch.app.notify.models import ProviderConfig, ProviderKind

logger = logging.getLogger(__name__)

KNOWN_PROVIDERS = ("sendgrid", "mailgun", "smtp")

SMTP_SECURITY_MODES = ("starttls", "ssl")


def _secret(value: Optional[SecretStr]) -> str:
    return value.get_secret_value().strip() if value is not None else ""


def _clean(value: Optional[str]) -> str:
    return value.strip() if value else ""


def _sendgrid(settings: Settings) -> Optional[ProviderConfig]:
    api_key = _secret(settings.SENDGRID_API_KEY)
    sender = _clean(settings.FROM_EMAIL)
    if not (api_key and sender):
        return None
    return ProviderConfig(
        name="sendgrid",
        kind=ProviderKind.HTTP_API,
        priority=10,
        sender=sender,
        sender_name=settings.FROM_NAME,
        recipient=_clean(settings.RECIPIENT_EMAIL) or sender,
        bcc=_clean(settings.BCC_EMAIL) or None,
        credentials={"api_key": api_key},
        endpoint=settings.SENDGRID_API_BASE_URL.rstrip("/"),
        requires_verify=False,
        supports_sandbox=True,
        options={"timeout": settings.SENDGRID_TIMEOUT_SECONDS},
    )


def _mailgun(settings: Settings) -> Optional[ProviderConfig]:
    api_key = _secret(settings.MAILGUN_API_KEY)
    domain = _clean(settings.MAILGUN_DOMAIN)
    sender = _clean(settings.MAILGUN_FROM_EMAIL) or _clean(settings.FROM_EMAIL)
    if not (api_key and domain and sender):
        return None
    return ProviderConfig(
        name="mailgun",
        kind=ProviderKind.HTTP_API,
        priority=20,
        sender=sender,
        sender_name=settings.FROM_NAME,
        recipient=_clean(settings.RECIPIENT_EMAIL) or sender,
        bcc=_clean(settings.BCC_EMAIL) or None,
        credentials={"api_key": api_key},
        endpoint=settings.MAILGUN_API_BASE_URL.rstrip("/"),
        requires_verify=False,
        supports_sandbox=True,
        options={"timeout": settings.MAILGUN_TIMEOUT_SECONDS, "domain": domain},
    )


def _smtp(settings: Settings) -> Optional[ProviderConfig]:
    host = _clean(settings.SMTP_HOST)
    user = _clean(settings.SMTP_USER)
    password = _secret(settings.SMTP_PASSWORD)
    if not (host and user and password):
        return None

    security = settings.SMTP_SECURITY.strip().lower()
    if security not in SMTP_SECURITY_MODES:
        logger.error(
            "SMTP_SECURITY=%r is not one of %s — SMTP provider disabled",
            settings.SMTP_SECURITY, SMTP_SECURITY_MODES,
        )
        return None

    if settings.SMTP_TLS_INSECURE_SKIP_VERIFY and settings.is_production:
        logger.warning("SMTP_TLS_INSECURE_SKIP_VERIFY ignored in production")

    hosts = [host]
    fallback = _clean(settings.SMTP_FALLBACK_HOST)
    if fallback and fallback != host:
        hosts.append(fallback)

    # Most relays only accept mail "from" the authenticated mailbox
    sender = _clean(settings.SMTP_FROM) or user

    return ProviderConfig(
        name="smtp",
        kind=ProviderKind.SMTP,
        priority=100,
        sender=sender,
        sender_name=settings.FROM_NAME,
        recipient=_clean(settings.RECIPIENT_EMAIL) or sender,
        bcc=_clean(settings.BCC_EMAIL) or None,
        credentials={"user": user, "password": password},
        hosts=tuple(hosts),
        port=settings.SMTP_PORT,
        requires_verify=settings.SMTP_VERIFY_BEFORE_SEND,
        supports_sandbox=False,
        options={
            "security": security,
            "connect_timeout": settings.SMTP_CONNECT_TIMEOUT,
            "socket_timeout": settings.SMTP_SOCKET_TIMEOUT,
            "skip_tls_verify": settings.smtp_skip_tls_verify,
        },
    )


_RESOLVERS = {
    "sendgrid": _sendgrid,
    "mailgun":  _mailgun,
    "smtp":     _smtp,
}


def resolve(settings: Settings) -> List[ProviderConfig]:
    """
    Return usable providers in priority order.

    Parameters
    ----------
    settings : Settings

    Returns
    -------
    list of ProviderConfig
        Possibly empty; never raises for missing configuration.
    """
    providers = [
        config
        for config in (resolver(settings) for resolver in _RESOLVERS.values())
        if config is not None
    ]
    providers.sort(key=lambda p: p.priority)

    if providers:
        logger.info("Providers resolved: %s", [p.name for p in providers])
    else:
        logger.warning("No email provider configured — contact submissions will fail")
    return providers


def describe(settings: Settings) -> Dict[str, object]:
    """
    Non-secret configuration report for the operator diagnostic endpoint.

    Lists every known provider, whether it is usable, and for unusable
    ones which settings are missing.
    """
    resolved = {p.name: p for p in resolve(settings)}
    presence = {
        "sendgrid": {
            "SENDGRID_API_KEY": bool(_secret(settings.SENDGRID_API_KEY)),
            "FROM_EMAIL": bool(_clean(settings.FROM_EMAIL)),
        },
        "mailgun": {
            "MAILGUN_API_KEY": bool(_secret(settings.MAILGUN_API_KEY)),
            "MAILGUN_DOMAIN": bool(_clean(settings.MAILGUN_DOMAIN)),
            "MAILGUN_FROM_EMAIL": bool(
                _clean(settings.MAILGUN_FROM_EMAIL) or _clean(settings.FROM_EMAIL)
            ),
        },
        "smtp": {
            "SMTP_HOST": bool(_clean(settings.SMTP_HOST)),
            "SMTP_USER": bool(_clean(settings.SMTP_USER)),
            "SMTP_PASSWORD": bool(_secret(settings.SMTP_PASSWORD)),
        },
    }

    providers: Dict[str, Dict[str, object]] = {}
    for name in KNOWN_PROVIDERS:
        entry: Dict[str, object] = {"configured": name in resolved, "settings_present": presence[name]}
        if name in resolved:
            entry.update(resolved[name].public_view())
        providers[name] = entry

    return {
        "configured": bool(resolved),
        "order": sorted(resolved, key=lambda n: resolved[n].priority),
        "providers": providers,
    }
