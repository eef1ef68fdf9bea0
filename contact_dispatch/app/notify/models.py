"""
models.py — Shared data structures for the notification dispatch core.

Defines:
    • ContactSubmission — validated contact-form fields
    • FieldError        — one violated field rule
    • ProviderKind      — channel adapter variant (smtp / http_api)
    • ProviderConfig    — resolved, read-only provider settings
    • Message           — normalised envelope handed to a channel adapter
    • Receipt           — what a channel adapter returns on success
    • DispatchStatus    — terminal dispatch state
    • DispatchOutcome   — result of one dispatch, after any fallback

═══════════════════════════════════════════════════════════════════════════
LIFETIMES
═══════════════════════════════════════════════════════════════════════════

    Object              Scope       Mutability
    ─────────────────   ─────────   ──────────────────────────────
    ProviderConfig      process     frozen, shared by all requests
    ContactSubmission   request     frozen
    Message             request     frozen
    DispatchOutcome     request     built once by the dispatcher

Nothing here is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class ProviderKind(str, Enum):
    """Channel adapter variants."""
    SMTP     = "smtp"
    HTTP_API = "http_api"


class DispatchStatus(str, Enum):
    """Terminal state of one dispatch."""
    DELIVERED              = "delivered"               # first candidate succeeded
    DELIVERED_VIA_FALLBACK = "delivered_via_fallback"  # alternate host or provider
    FAILED                 = "failed"                  # every candidate exhausted
    NOT_CONFIGURED         = "not_configured"          # no usable provider at all


# ═══════════════════════════════════════════════════════════════════════════
# Submission
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ContactSubmission:
    """Contact-form fields after validation: trimmed, non-empty, in bounds."""
    name: str
    email: str
    subject: str
    message: str


@dataclass(frozen=True)
class FieldError:
    """A single violated rule for one submitted field."""
    field: str    # name | email | subject | message
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"param": self.field, "msg": self.message}


# ═══════════════════════════════════════════════════════════════════════════
# Provider configuration
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ProviderConfig:
    """
    Resolved configuration for one outbound provider.

    ``credentials`` is opaque to everything except the matching channel
    adapter; it is never logged or returned by the API.
    """
    name: str                       # sendgrid | mailgun | smtp
    kind: ProviderKind
    priority: int                   # lower = tried first
    sender: str                     # verified "from" identity
    recipient: str                  # business inbox
    credentials: Dict[str, str] = field(default_factory=dict, repr=False)
    endpoint: Optional[str] = None  # HTTP API base URL
    hosts: Tuple[str, ...] = ()     # SMTP primary, then secondary
    port: Optional[int] = None
    requires_verify: bool = False   # run verify() on the hot path
    supports_sandbox: bool = False  # verify() is a no-deliver API call
    bcc: Optional[str] = None
    sender_name: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def public_view(self) -> Dict[str, Any]:
        """Non-secret settings for the operator diagnostic endpoint."""
        view: Dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
            "priority": self.priority,
            "from": self.sender,
            "to": self.recipient,
            "bcc": self.bcc,
            "requires_verify": self.requires_verify,
            "supports_sandbox": self.supports_sandbox,
            "credentials_present": {k: bool(v) for k, v in self.credentials.items()},
        }
        if self.kind == ProviderKind.SMTP:
            view["hosts"] = list(self.hosts)
            view["port"] = self.port
            view["security"] = self.options.get("security")
        else:
            view["endpoint"] = self.endpoint
        return view


# ═══════════════════════════════════════════════════════════════════════════
# Message envelope
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Message:
    """
    Provider-neutral email envelope.

    ``from_addr`` is always the provider's verified sender; the visitor's
    address only ever appears in ``reply_to`` (owner notification) or
    ``to`` (auto-reply).
    """
    from_addr: str
    to: str
    subject: str
    body_text: str
    reply_to: Optional[str] = None
    bcc: Optional[str] = None
    from_name: Optional[str] = None


@dataclass
class Receipt:
    """Successful hand-off to a provider."""
    provider: str                       # e.g. "sendgrid", "smtp:smtp.office365.com"
    message_ref: Optional[str] = None   # provider message id, if any
    status_code: Optional[int] = None   # HTTP status or SMTP reply code
    via_fallback_host: bool = False     # SMTP secondary host was used


# ═══════════════════════════════════════════════════════════════════════════
# Outcome
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class DispatchOutcome:
    """Terminal result of one dispatch, consumed by the response formatter."""
    status: DispatchStatus
    provider_used: Optional[str] = None
    provider_error: Optional[str] = None
    message_ref: Optional[str] = None
    error_code: Optional[str] = None        # FailureCode of the last error
    status_code: Optional[int] = None
    attempts: List[Dict[str, Any]] = field(default_factory=list)
    auto_reply_sent: Optional[bool] = None  # None = not attempted

    @property
    def is_delivered(self) -> bool:
        return self.status in (
            DispatchStatus.DELIVERED,
            DispatchStatus.DELIVERED_VIA_FALLBACK,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "provider_used": self.provider_used,
            "provider_error": self.provider_error,
            "message_ref": self.message_ref,
            "error_code": self.error_code,
            "attempts": list(self.attempts),
            "auto_reply_sent": self.auto_reply_sent,
        }
