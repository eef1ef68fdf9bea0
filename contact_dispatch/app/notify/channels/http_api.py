"""
http_api.py — Transactional-email HTTP API channels.

Delivery mechanism:
    • One authenticated HTTPS POST per message (httpx, bounded timeout)
    • Provider dialects: SendGrid (JSON, bearer token) and Mailgun
      (form-encoded, basic auth)

═══════════════════════════════════════════════════════════════════════════
SANDBOX VERIFICATION
═══════════════════════════════════════════════════════════════════════════

verify() sends a real API request with the provider's no-delivery switch
turned on. It exercises the API key and the sender identity, which is
exactly what breaks in practice, without putting mail in anyone's inbox.

    Provider    Switch
    ────────    ──────────────────────────────────────
    SendGrid    mail_settings.sandbox_mode.enable=true
    Mailgun     o:testmode=yes

verify() is only called from the diagnostic endpoint; the hot path goes
straight to send().

═══════════════════════════════════════════════════════════════════════════
RESPONSE CLASSIFICATION
═══════════════════════════════════════════════════════════════════════════

    HTTP          Failure code
    ──────────    ─────────────────────────────────────────────────
    2xx           — (Receipt)
    401           auth_failed
    403           sender_not_verified if the body names the sender
                  identity / domain, otherwise auth_failed
    429           rate_limited
    5xx           transport_error
    other 4xx     rejected
    timeout/DNS   transport_error
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from email.utils import formataddr
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

import httpx

from contact_dispatch.app.notify.channels.base import Channel, ChannelError, FailureCode
from contact_dispatch.app.notify.models import Message, ProviderConfig, ProviderKind, Receipt

logger = logging.getLogger(__name__)

ERROR_DETAIL_MAX = 300


@dataclass
class ApiRequest:
    """One outbound HTTP call, provider-specific shape."""
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    json: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None
    auth: Optional[Tuple[str, str]] = None


class HttpApiChannel(Channel):
    """Shared request/response handling for HTTP API providers."""

    kind = ProviderKind.HTTP_API
    sender_markers: Tuple[str, ...] = ()

    def __init__(self, config: ProviderConfig, *, client: Optional[httpx.Client] = None):
        super().__init__(config)
        timeout = float(config.options.get("timeout", 10.0))
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))
        self._owns_client = client is None

    # ── dialect hooks ──

    @abstractmethod
    def _build_request(self, message: Message, *, sandbox: bool) -> ApiRequest:
        """Provider-specific URL, auth and payload for one message."""

    def _message_ref(self, response: httpx.Response) -> Optional[str]:
        return None

    # ── Channel API ──

    def send(self, message: Message) -> Receipt:
        response = self._post(self._build_request(message, sandbox=False))
        ref = self._message_ref(response)
        logger.info(
            "[%s] accepted (%d) for %s ref=%s",
            self.name.upper(), response.status_code, message.to, ref,
        )
        return Receipt(provider=self.name, message_ref=ref, status_code=response.status_code)

    def verify(self) -> None:
        probe = Message(
            from_addr=self.config.sender,
            from_name=self.config.sender_name,
            to=self.config.recipient,
            subject=f"{self.name} sandbox verify",
            body_text="This is a sandbox verification - no real delivery.",
        )
        response = self._post(self._build_request(probe, sandbox=True))
        logger.info("[%s] sandbox verify OK (%d)", self.name.upper(), response.status_code)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ── transport ──

    def _post(self, request: ApiRequest) -> httpx.Response:
        try:
            response = self._client.post(
                request.url,
                headers=request.headers,
                json=request.json,
                data=request.data,
                auth=request.auth,
            )
        except httpx.TimeoutException as exc:
            raise ChannelError(
                self.name, FailureCode.TRANSPORT_ERROR, f"request timed out: {exc}",
            ) from exc
        except httpx.TransportError as exc:
            raise ChannelError(
                self.name, FailureCode.TRANSPORT_ERROR, f"{type(exc).__name__}: {exc}",
            ) from exc

        if response.is_success:
            return response
        raise self._classify(response)

    def _classify(self, response: httpx.Response) -> ChannelError:
        status = response.status_code
        detail = response.text[:ERROR_DETAIL_MAX]
        lowered = detail.lower()

        if status == 401:
            code = FailureCode.AUTH_FAILED
        elif status == 403:
            if any(marker in lowered for marker in self.sender_markers):
                code = FailureCode.SENDER_NOT_VERIFIED
            else:
                code = FailureCode.AUTH_FAILED
        elif status == 429:
            code = FailureCode.RATE_LIMITED
        elif status >= 500:
            code = FailureCode.TRANSPORT_ERROR
        else:
            code = FailureCode.REJECTED

        return ChannelError(self.name, code, f"HTTP {status}: {detail}", status_code=status)


class SendGridChannel(HttpApiChannel):
    """SendGrid v3 mail/send."""

    sender_markers = ("sender identity", "verified sender", "from address does not match")

    def _build_request(self, message: Message, *, sandbox: bool) -> ApiRequest:
        personalization: Dict[str, Any] = {"to": [{"email": message.to}]}
        if message.bcc and message.bcc != message.to:
            personalization["bcc"] = [{"email": message.bcc}]

        sender: Dict[str, str] = {"email": message.from_addr}
        if message.from_name:
            sender["name"] = message.from_name

        body: Dict[str, Any] = {
            "personalizations": [personalization],
            "from": sender,
            "subject": message.subject,
            "content": [{"type": "text/plain", "value": message.body_text}],
            "mail_settings": {"sandbox_mode": {"enable": sandbox}},
        }
        if message.reply_to:
            body["reply_to"] = {"email": message.reply_to}

        return ApiRequest(
            url=f"{self.config.endpoint}/v3/mail/send",
            headers={"Authorization": f"Bearer {self.config.credentials['api_key']}"},
            json=body,
        )

    def _message_ref(self, response: httpx.Response) -> Optional[str]:
        return response.headers.get("X-Message-Id")


class MailgunChannel(HttpApiChannel):
    """Mailgun v3 messages endpoint."""

    sender_markers = ("not allowed to send", "unverified", "authorized recipients", "domain")

    def _build_request(self, message: Message, *, sandbox: bool) -> ApiRequest:
        data: Dict[str, Any] = {
            "from": formataddr((message.from_name or "", message.from_addr)),
            "to": message.to,
            "subject": message.subject,
            "text": message.body_text,
        }
        if message.reply_to:
            data["h:Reply-To"] = message.reply_to
        if message.bcc:
            data["bcc"] = message.bcc
        if sandbox:
            data["o:testmode"] = "yes"

        domain = quote(self.config.options["domain"], safe="")
        return ApiRequest(
            url=f"{self.config.endpoint}/v3/{domain}/messages",
            data=data,
            auth=("api", self.config.credentials["api_key"]),
        )

    def _message_ref(self, response: httpx.Response) -> Optional[str]:
        try:
            payload = response.json()
        except ValueError:
            return None
        return payload.get("id") if isinstance(payload, dict) else None
