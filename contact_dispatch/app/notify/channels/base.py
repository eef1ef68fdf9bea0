"""
base.py — Channel adapter contract and failure taxonomy.

Every adapter exposes the same two operations:

    verify()        → None, or raises ChannelError
    send(message)   → Receipt, or raises ChannelError

Adapters raise; the dispatcher catches. A ChannelError never escapes
the dispatcher.

═══════════════════════════════════════════════════════════════════════════
FAILURE CODES
═══════════════════════════════════════════════════════════════════════════

    Code                  Meaning                              Next candidate?
    ───────────────────   ──────────────────────────────────   ───────────────
    auth_failed           credentials refused                  yes
    sender_not_verified   "from" identity not authorised       yes
    rate_limited          provider throttling                  yes
    transport_error       network, timeout, TLS, 5xx           yes
    rejected              provider refused this message        no
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from contact_dispatch.app.notify.models import Message, ProviderConfig, Receipt


class FailureCode(str, Enum):
    AUTH_FAILED         = "auth_failed"
    SENDER_NOT_VERIFIED = "sender_not_verified"
    RATE_LIMITED        = "rate_limited"
    TRANSPORT_ERROR     = "transport_error"
    REJECTED            = "rejected"


class ChannelError(Exception):
    """A provider call failed; carries the classified failure code."""

    def __init__(
        self,
        provider: str,
        code: FailureCode,
        message: str,
        *,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.code = code
        self.message = message
        self.status_code = status_code

    @property
    def is_transport(self) -> bool:
        return self.code == FailureCode.TRANSPORT_ERROR

    @property
    def allows_fallback(self) -> bool:
        """A rejected message would be rejected by any provider."""
        return self.code != FailureCode.REJECTED

    def __str__(self) -> str:
        return f"{self.provider}: {self.code.value}: {self.message}"


class Channel(ABC):
    """Uniform wrapper around one provider's protocol."""

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @abstractmethod
    def verify(self) -> None:
        """Check credentials and sender identity without delivering mail."""

    @abstractmethod
    def send(self, message: Message) -> Receipt:
        """Hand one message to the provider."""

    def close(self) -> None:
        """Release any held connections."""
