"""
smtp_relay.py — SMTP relay channel.

Delivery mechanism:
    • smtplib over mandatory TLS — implicit TLS (``ssl``, port 465) or
      STARTTLS (``starttls``, port 587). There is no plaintext mode: a
      server that does not advertise STARTTLS is a transport failure.
    • Certificate and hostname checks are always on, TLS ≥ 1.2. The
      ``skip_tls_verify`` option exists for local relays only and is
      dropped by the registry in production.
    • One connection per operation; nothing is pooled across requests.

═══════════════════════════════════════════════════════════════════════════
HOST FALLBACK
═══════════════════════════════════════════════════════════════════════════

    hosts = (primary, secondary)   same mailbox, same credentials

    primary ──transport error──► secondary ──any error──► raise
       │                             │
       └─ auth / sender / rejected ──┴──────────────────► raise

Only transport-level failures (connect, timeout, TLS, disconnect,
4xx transient replies) move to the secondary host, and only once.

═══════════════════════════════════════════════════════════════════════════
TIMEOUTS
═══════════════════════════════════════════════════════════════════════════

    connect_timeout   TCP connect + server greeting
    socket_timeout    every later read/write (EHLO, AUTH, DATA, QUIT)
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import Callable, Optional, Tuple, TypeVar

from contact_dispatch.app.notify.channels.base import Channel, ChannelError, FailureCode
from contact_dispatch.app.notify.models import Message, ProviderKind, Receipt

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Reply fragments that mean "you may not send as this address"
_SENDER_DENIED_MARKERS = (
    "sendasdenied",
    "not authorized to send",
    "not allowed to send",
    "sender address rejected",
    "5.7.60",
)
_THROTTLE_MARKERS = ("rate", "throttl", "too many", "try again later")


def _reply_text(exc: smtplib.SMTPResponseException) -> str:
    raw = exc.smtp_error
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw)


def classify_smtp_error(exc: Exception, provider: str) -> ChannelError:
    """Map smtplib / socket exceptions onto the channel failure taxonomy."""
    if isinstance(exc, ChannelError):
        return exc

    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return ChannelError(
            provider, FailureCode.AUTH_FAILED,
            f"authentication refused ({exc.smtp_code}): {_reply_text(exc)[:200]}",
            status_code=exc.smtp_code,
        )

    if isinstance(exc, smtplib.SMTPSenderRefused):
        return ChannelError(
            provider, FailureCode.SENDER_NOT_VERIFIED,
            f"sender {exc.sender!r} refused ({exc.smtp_code}): {_reply_text(exc)[:200]}",
            status_code=exc.smtp_code,
        )

    if isinstance(exc, smtplib.SMTPRecipientsRefused):
        return ChannelError(
            provider, FailureCode.REJECTED,
            f"all recipients refused: {sorted(exc.recipients)}",
        )

    if isinstance(exc, (
        smtplib.SMTPServerDisconnected,
        smtplib.SMTPConnectError,
        smtplib.SMTPHeloError,
        smtplib.SMTPNotSupportedError,
    )):
        return ChannelError(provider, FailureCode.TRANSPORT_ERROR, str(exc) or type(exc).__name__)

    if isinstance(exc, smtplib.SMTPResponseException):
        code = exc.smtp_code
        text = _reply_text(exc)
        lowered = text.lower()
        if any(marker in lowered for marker in _SENDER_DENIED_MARKERS):
            failure = FailureCode.SENDER_NOT_VERIFIED
        elif 400 <= code < 500 and any(marker in lowered for marker in _THROTTLE_MARKERS):
            failure = FailureCode.RATE_LIMITED
        elif 400 <= code < 500:
            failure = FailureCode.TRANSPORT_ERROR
        else:
            failure = FailureCode.REJECTED
        return ChannelError(provider, failure, f"{code} {text[:200]}", status_code=code)

    if isinstance(exc, (OSError, smtplib.SMTPException)):
        # socket.timeout, ConnectionRefusedError, ssl.SSLError, DNS failures
        return ChannelError(
            provider, FailureCode.TRANSPORT_ERROR,
            f"{type(exc).__name__}: {exc}",
        )

    raise TypeError(f"Not an SMTP failure: {exc!r}")


class SmtpRelayChannel(Channel):
    """Channel adapter for an authenticated SMTP relay."""

    kind = ProviderKind.SMTP

    @property
    def _security(self) -> str:
        return self.config.options.get("security", "starttls")

    def _label(self, host: str) -> str:
        return f"smtp:{host}"

    def _tls_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        if self.config.options.get("skip_tls_verify"):
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    # ── connection lifecycle ──

    def _connect(self, host: str) -> smtplib.SMTP:
        """Open, secure and authenticate one connection."""
        port = self.config.port or (465 if self._security == "ssl" else 587)
        connect_timeout = float(self.config.options.get("connect_timeout", 15.0))
        socket_timeout = float(self.config.options.get("socket_timeout", 20.0))
        context = self._tls_context()

        if self._security == "ssl":
            client: smtplib.SMTP = smtplib.SMTP_SSL(
                host, port, timeout=connect_timeout, context=context,
            )
        else:
            client = smtplib.SMTP(host, port, timeout=connect_timeout)

        try:
            if client.sock is not None:
                client.sock.settimeout(socket_timeout)
            client.ehlo()
            if self._security != "ssl":
                if not client.has_extn("starttls"):
                    raise ChannelError(
                        self._label(host), FailureCode.TRANSPORT_ERROR,
                        "server does not offer STARTTLS; refusing to send in plaintext",
                    )
                client.starttls(context=context)
                client.ehlo()
            client.login(
                self.config.credentials["user"],
                self.config.credentials["password"],
            )
        except (smtplib.SMTPException, OSError, ChannelError):
            self._quietly_close(client)
            raise
        return client

    @staticmethod
    def _quietly_close(client: smtplib.SMTP) -> None:
        try:
            client.quit()
        except (smtplib.SMTPException, OSError) as exc:
            logger.debug("[SMTP] QUIT failed, closing socket: %s", exc)
            client.close()

    def _with_host_fallback(self, operation: Callable[[str], T]) -> Tuple[T, str, bool]:
        """Run ``operation(host)`` on the primary host, then once on the secondary."""
        hosts = self.config.hosts[:2]
        if not hosts:
            raise ChannelError(self.name, FailureCode.TRANSPORT_ERROR, "no SMTP host configured")

        for index, host in enumerate(hosts):
            try:
                return operation(host), host, index > 0
            except (smtplib.SMTPException, OSError, ChannelError) as exc:
                error = classify_smtp_error(exc, self._label(host))
                is_last = index == len(hosts) - 1
                if not error.is_transport or is_last:
                    if error is exc:
                        raise
                    raise error from exc
                logger.warning(
                    "[SMTP] %s failed at transport level, retrying on %s: %s",
                    host, hosts[index + 1], error.message,
                    extra={"provider": self._label(host), "error_code": error.code.value},
                )
        raise AssertionError("unreachable")

    # ── Channel API ──

    def verify(self) -> None:
        """Connect, secure and log in; QUIT before any MAIL FROM."""
        def _probe(host: str) -> None:
            client = self._connect(host)
            self._quietly_close(client)

        _, host, _ = self._with_host_fallback(_probe)
        logger.info("[SMTP] verify OK on %s", host)

    def send(self, message: Message) -> Receipt:
        try:
            mime = self._build_mime(message)
        except ValueError as exc:
            # header injection or an unencodable value; no host would accept it
            raise ChannelError(
                self.name, FailureCode.REJECTED, f"message could not be built: {exc}",
            ) from exc
        recipients = [message.to] + ([message.bcc] if message.bcc else [])

        def _deliver(host: str) -> Optional[str]:
            client = self._connect(host)
            try:
                refused = client.send_message(
                    mime, from_addr=message.from_addr, to_addrs=recipients,
                )
            finally:
                self._quietly_close(client)
            if refused:
                logger.warning("[SMTP] %s refused some recipients: %s", host, sorted(refused))
            return mime["Message-ID"]

        message_ref, host, via_fallback = self._with_host_fallback(_deliver)
        logger.info("[SMTP] accepted by %s for %s", host, message.to)
        return Receipt(
            provider=self._label(host),
            message_ref=message_ref,
            status_code=250,
            via_fallback_host=via_fallback,
        )

    def _build_mime(self, message: Message) -> EmailMessage:
        mime = EmailMessage()
        mime["From"] = formataddr((message.from_name or "", message.from_addr))
        mime["To"] = message.to
        if message.reply_to:
            mime["Reply-To"] = message.reply_to
        mime["Subject"] = message.subject
        mime["Date"] = formatdate(localtime=True)
        mime["Message-ID"] = make_msgid(domain=message.from_addr.rpartition("@")[2] or None)
        mime.set_content(message.body_text)
        return mime
