"""
dispatcher.py — Delivers one contact submission through the first
provider that accepts it.

═══════════════════════════════════════════════════════════════════════════
STATE MACHINE (per request)
═══════════════════════════════════════════════════════════════════════════

    START
      │  no channels ──────────────────────────────────► NOT_CONFIGURED
      ▼
    SELECT(next channel in priority order)
      │
      ▼
    VERIFY?   only when the provider asks for it; failure is logged and
      │       the send is attempted anyway
      ▼
    SEND ──ok──► DELIVERED               (first channel, primary host)
      │     └──► DELIVERED_VIA_FALLBACK  (later channel or SMTP secondary)
      │
      ├─ auth / sender / rate limit / transport ──► SELECT(next)
      ├─ rejected (message itself refused) ───────► FAILED
      └─ no channels left ────────────────────────► FAILED (last error kept)

One pass per request, no retry loop. Channels are tried one after
another, never concurrently; a message is handed to at most one
provider that accepts it.

Adapter exceptions stop here. Anything an adapter raises that is not a
ChannelError is logged with its traceback and treated as a transport
error, so the next provider still gets its turn. Callers only ever see
a DispatchOutcome.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

from contact_dispatch.app.core.config import Settings
from contact_dispatch.app.notify import registry
from contact_dispatch.app.notify.channels import Channel, ChannelError, build_channel
from contact_dispatch.app.notify.channels.base import FailureCode
from contact_dispatch.app.notify.composer import compose_auto_reply, compose_notification
from contact_dispatch.app.notify.models import (
    ContactSubmission,
    DispatchOutcome,
    DispatchStatus,
    Message,
    ProviderConfig,
    Receipt,
)

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Owns the channel adapters for the process lifetime.

    Built once at startup (``from_settings``) and shared by all requests;
    it holds no per-request state.
    """

    def __init__(
        self,
        channels: Sequence[Channel],
        *,
        auto_reply: bool = False,
        subject_prefix: str = "New Contact: ",
    ):
        self._channels: List[Channel] = sorted(channels, key=lambda c: c.config.priority)
        self.auto_reply = auto_reply
        self.subject_prefix = subject_prefix

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        channel_factory: Callable[[ProviderConfig], Channel] = build_channel,
    ) -> "Dispatcher":
        providers = registry.resolve(settings)
        return cls(
            [channel_factory(config) for config in providers],
            auto_reply=settings.CONTACT_AUTO_REPLY,
            subject_prefix=settings.CONTACT_SUBJECT_PREFIX,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._channels)

    @property
    def provider_names(self) -> List[str]:
        return [c.name for c in self._channels]

    def channel_for(self, name: str) -> Optional[Channel]:
        for channel in self._channels:
            if channel.name == name:
                return channel
        return None

    def close(self) -> None:
        for channel in self._channels:
            channel.close()

    # ── hot path ──

    def dispatch(self, submission: ContactSubmission) -> DispatchOutcome:
        """
        Deliver the owner notification for one validated submission.

        Parameters
        ----------
        submission : ContactSubmission

        Returns
        -------
        DispatchOutcome
            Never raises for provider failures.
        """
        started = time.perf_counter()

        if not self._channels:
            logger.error(
                "NotConfigured: no email provider configured, submission from %s not sent",
                submission.email,
                extra={"outcome": DispatchStatus.NOT_CONFIGURED.value},
            )
            return DispatchOutcome(
                status=DispatchStatus.NOT_CONFIGURED,
                provider_error="no email provider configured",
                error_code=DispatchStatus.NOT_CONFIGURED.value,
            )

        attempts: List[Dict[str, object]] = []
        last_error: Optional[ChannelError] = None

        for index, channel in enumerate(self._channels):
            message = compose_notification(
                submission, channel.config, subject_prefix=self.subject_prefix,
            )

            if channel.config.requires_verify:
                self._advisory_verify(channel)

            try:
                receipt = self._send(channel, message)
            except ChannelError as exc:
                last_error = exc
                attempts.append({
                    "provider": exc.provider,
                    "code": exc.code.value,
                    "error": exc.message,
                })
                logger.warning(
                    "Provider %s failed [%s]: %s",
                    exc.provider, exc.code.value, exc.message,
                    extra={"provider": exc.provider, "error_code": exc.code.value},
                )
                if not exc.allows_fallback:
                    logger.error(
                        "Provider %s rejected the message itself; not trying other providers",
                        exc.provider,
                    )
                    break
                continue

            via_fallback = index > 0 or receipt.via_fallback_host
            status = (
                DispatchStatus.DELIVERED_VIA_FALLBACK if via_fallback
                else DispatchStatus.DELIVERED
            )
            outcome = DispatchOutcome(
                status=status,
                provider_used=receipt.provider,
                message_ref=receipt.message_ref,
                status_code=receipt.status_code,
                attempts=attempts,
            )
            if self.auto_reply:
                outcome.auto_reply_sent = self._send_auto_reply(channel, submission)

            duration_ms = (time.perf_counter() - started) * 1000
            logger.log(
                logging.WARNING if via_fallback else logging.INFO,
                "Contact message %s via %s (%.1fms, %d failed attempt(s) before)",
                status.value, receipt.provider, duration_ms, len(attempts),
                extra={
                    "provider": receipt.provider,
                    "outcome": status.value,
                    "duration_ms": duration_ms,
                },
            )
            return outcome

        duration_ms = (time.perf_counter() - started) * 1000
        assert last_error is not None
        logger.error(
            "DeliveryFailed: all providers exhausted (%d attempt(s), %.1fms); last error %s",
            len(attempts), duration_ms, last_error,
            extra={
                "provider": last_error.provider,
                "outcome": DispatchStatus.FAILED.value,
                "error_code": last_error.code.value,
                "duration_ms": duration_ms,
            },
        )
        return DispatchOutcome(
            status=DispatchStatus.FAILED,
            provider_error=str(last_error),
            error_code=last_error.code.value,
            status_code=last_error.status_code,
            attempts=attempts,
        )

    @staticmethod
    def _send(channel: Channel, message: Message) -> Receipt:
        """Call the adapter; anything it raises comes back as a ChannelError."""
        try:
            return channel.send(message)
        except ChannelError:
            raise
        except Exception as exc:
            logger.exception("Provider %s raised %s", channel.name, type(exc).__name__)
            raise ChannelError(
                channel.name, FailureCode.TRANSPORT_ERROR,
                f"unexpected {type(exc).__name__}: {exc}",
            ) from exc

    def _advisory_verify(self, channel: Channel) -> None:
        """Failure is logged only; the send still goes ahead."""
        try:
            channel.verify()
        except ChannelError as exc:
            logger.warning(
                "Verify failed for %s [%s], attempting send anyway: %s",
                exc.provider, exc.code.value, exc.message,
                extra={"provider": exc.provider, "error_code": exc.code.value},
            )

    def _send_auto_reply(self, channel: Channel, submission: ContactSubmission) -> bool:
        try:
            self._send(channel, compose_auto_reply(submission, channel.config))
        except ChannelError as exc:
            logger.warning(
                "Auto-reply to %s failed via %s [%s]: %s",
                submission.email, exc.provider, exc.code.value, exc.message,
                extra={"provider": exc.provider, "error_code": exc.code.value},
            )
            return False
        return True

    # ── diagnostics ──

    def verify_provider(self, name: str) -> Dict[str, object]:
        """
        Run one provider's no-delivery verification.

        Raises KeyError when the provider is not configured.
        """
        channel = self.channel_for(name)
        if channel is None:
            raise KeyError(name)

        started = time.perf_counter()
        try:
            channel.verify()
        except ChannelError as exc:
            return {
                "ok": False,
                "provider": name,
                "code": exc.code.value,
                "error": exc.message,
                "statusCode": exc.status_code,
            }
        return {
            "ok": True,
            "provider": name,
            "sandbox": channel.config.supports_sandbox,
            "duration_ms": round((time.perf_counter() - started) * 1000, 1),
        }
