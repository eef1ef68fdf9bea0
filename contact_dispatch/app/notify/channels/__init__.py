"""
channels — Per-provider channel adapters.

Each adapter implements the Channel contract from ``base``:
    verify() → None | ChannelError
    send(message) → Receipt | ChannelError

Adapters hold no fallback logic across providers; that lives in the
dispatcher. The SMTP adapter's host fallback is internal to it.
"""

from __future__ import annotations

from typing import Dict, Type

from contact_dispatch.app.notify.channels.base import Channel, ChannelError, FailureCode
from contact_dispatch.app.notify.channels.http_api import MailgunChannel, SendGridChannel
from contact_dispatch.app.notify.channels.smtp_relay import SmtpRelayChannel
from contact_dispatch.app.notify.models import ProviderConfig

# Provider name → adapter class
CHANNEL_TYPES: Dict[str, Type[Channel]] = {
    "sendgrid": SendGridChannel,
    "mailgun":  MailgunChannel,
    "smtp":     SmtpRelayChannel,
}


def build_channel(config: ProviderConfig) -> Channel:
    """Instantiate the adapter for one resolved provider."""
    channel_type = CHANNEL_TYPES.get(config.name)
    if channel_type is None:
        raise ValueError(f"No channel adapter for provider: {config.name}")
    if getattr(channel_type, "kind", config.kind) != config.kind:
        raise ValueError(
            f"Provider {config.name} is configured as {config.kind.value}, "
            f"adapter expects {channel_type.kind.value}"
        )
    return channel_type(config)


__all__ = [
    "CHANNEL_TYPES",
    "Channel",
    "ChannelError",
    "FailureCode",
    "MailgunChannel",
    "SendGridChannel",
    "SmtpRelayChannel",
    "build_channel",
]
