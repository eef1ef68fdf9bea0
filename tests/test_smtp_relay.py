"""
test_smtp_relay.py — SMTP relay adapter against a mocked smtplib.

Covers:
    • Connection sequence (EHLO, mandatory STARTTLS, login)
    • Host fallback on transport errors only
    • Failure classification
    • MIME envelope (From / Reply-To / BCC handling)

Run with:
    pytest tests/test_smtp_relay.py -v
"""

from __future__ import annotations

import smtplib
import ssl
from unittest.mock import MagicMock, patch

import pytest

from contact_dispatch.app.notify.channels.base import ChannelError, FailureCode
from contact_dispatch.app.notify.channels.smtp_relay import SmtpRelayChannel, classify_smtp_error
from contact_dispatch.app.notify.models import Message, ProviderConfig, ProviderKind

PRIMARY = "smtp.office365.com"
SECONDARY = "smtp-mail.outlook.com"


def _make_config(hosts=(PRIMARY,), security="starttls", skip_tls_verify=False) -> ProviderConfig:
    return ProviderConfig(
        name="smtp",
        kind=ProviderKind.SMTP,
        priority=100,
        sender="owner@tours.test",
        recipient="owner@tours.test",
        credentials={"user": "owner@tours.test", "password": "pw"},
        hosts=tuple(hosts),
        port=587 if security == "starttls" else 465,
        options={
            "security": security,
            "connect_timeout": 15.0,
            "socket_timeout": 20.0,
            "skip_tls_verify": skip_tls_verify,
        },
    )


def _make_message(bcc=None, subject="New Contact: Trip info") -> Message:
    return Message(
        from_addr="owner@tours.test",
        from_name="Tours Desk",
        to="owner@tours.test",
        reply_to="jo@x.com",
        bcc=bcc,
        subject=subject,
        body_text="Name: Jo\n\nI would like pricing for a 3-day tour.",
    )


def _make_client(starttls=True) -> MagicMock:
    client = MagicMock(name="SMTP")
    client.has_extn.side_effect = lambda name: starttls and name.lower() == "starttls"
    client.send_message.return_value = {}
    return client


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Connection and send
# ═══════════════════════════════════════════════════════════════════════════

class TestSend:

    def test_send_on_primary(self):
        client = _make_client()
        with patch("smtplib.SMTP", return_value=client) as smtp_cls:
            receipt = SmtpRelayChannel(_make_config()).send(_make_message())

        smtp_cls.assert_called_once_with(PRIMARY, 587, timeout=15.0)
        client.sock.settimeout.assert_called_once_with(20.0)
        client.starttls.assert_called_once()
        client.login.assert_called_once_with("owner@tours.test", "pw")
        client.quit.assert_called_once()
        assert receipt.provider == f"smtp:{PRIMARY}"
        assert receipt.status_code == 250
        assert receipt.via_fallback_host is False
        assert receipt.message_ref

    def test_mime_headers(self):
        client = _make_client()
        with patch("smtplib.SMTP", return_value=client):
            SmtpRelayChannel(_make_config()).send(_make_message(bcc="archive@tours.test"))

        mime = client.send_message.call_args.args[0]
        kwargs = client.send_message.call_args.kwargs
        assert mime["From"] == "Tours Desk <owner@tours.test>"
        assert mime["Reply-To"] == "jo@x.com"
        assert mime["Bcc"] is None
        assert kwargs["to_addrs"] == ["owner@tours.test", "archive@tours.test"]
        assert kwargs["from_addr"] == "owner@tours.test"

    def test_header_injection_rejected_without_connecting(self):
        with patch("smtplib.SMTP") as smtp_cls:
            with pytest.raises(ChannelError) as excinfo:
                SmtpRelayChannel(_make_config()).send(
                    _make_message(subject="New Contact: Trip info\r\nBcc: evil@x.com"),
                )

        assert excinfo.value.code == FailureCode.REJECTED
        assert isinstance(excinfo.value.__cause__, ValueError)
        smtp_cls.assert_not_called()

    def test_refuses_plaintext_when_starttls_missing(self):
        client = _make_client(starttls=False)
        with patch("smtplib.SMTP", return_value=client):
            with pytest.raises(ChannelError) as excinfo:
                SmtpRelayChannel(_make_config()).send(_make_message())

        assert excinfo.value.code == FailureCode.TRANSPORT_ERROR
        client.login.assert_not_called()
        client.send_message.assert_not_called()

    def test_implicit_tls_mode(self):
        client = _make_client()
        with patch("smtplib.SMTP_SSL", return_value=client) as ssl_cls, patch("smtplib.SMTP") as plain_cls:
            SmtpRelayChannel(_make_config(security="ssl")).send(_make_message())

        assert ssl_cls.call_args.args == (PRIMARY, 465)
        plain_cls.assert_not_called()
        client.starttls.assert_not_called()

    def test_verify_quits_before_mail_from(self):
        client = _make_client()
        with patch("smtplib.SMTP", return_value=client):
            SmtpRelayChannel(_make_config()).verify()

        client.login.assert_called_once()
        client.send_message.assert_not_called()
        client.quit.assert_called_once()


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Host fallback
# ═══════════════════════════════════════════════════════════════════════════

class TestHostFallback:

    def test_transport_error_moves_to_secondary(self):
        good = _make_client()

        def _factory(host, port, timeout):
            if host == PRIMARY:
                raise ConnectionRefusedError("connection refused")
            return good

        with patch("smtplib.SMTP", side_effect=_factory):
            receipt = SmtpRelayChannel(_make_config(hosts=(PRIMARY, SECONDARY))).send(_make_message())

        assert receipt.provider == f"smtp:{SECONDARY}"
        assert receipt.via_fallback_host is True
        good.send_message.assert_called_once()

    def test_auth_error_does_not_fall_back(self):
        client = _make_client()
        client.login.side_effect = smtplib.SMTPAuthenticationError(535, b"5.7.3 Authentication unsuccessful")

        with patch("smtplib.SMTP", return_value=client) as smtp_cls:
            with pytest.raises(ChannelError) as excinfo:
                SmtpRelayChannel(_make_config(hosts=(PRIMARY, SECONDARY))).send(_make_message())

        assert excinfo.value.code == FailureCode.AUTH_FAILED
        assert excinfo.value.provider == f"smtp:{PRIMARY}"
        assert smtp_cls.call_count == 1

    def test_both_hosts_down(self):
        with patch("smtplib.SMTP", side_effect=TimeoutError("timed out")) as smtp_cls:
            with pytest.raises(ChannelError) as excinfo:
                SmtpRelayChannel(_make_config(hosts=(PRIMARY, SECONDARY))).send(_make_message())

        assert excinfo.value.code == FailureCode.TRANSPORT_ERROR
        assert excinfo.value.provider == f"smtp:{SECONDARY}"
        assert smtp_cls.call_count == 2

    def test_single_host_no_retry(self):
        with patch("smtplib.SMTP", side_effect=OSError("unreachable")) as smtp_cls:
            with pytest.raises(ChannelError):
                SmtpRelayChannel(_make_config()).send(_make_message())
        assert smtp_cls.call_count == 1

    def test_connection_closed_after_failed_login(self):
        client = _make_client()
        client.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad")
        with patch("smtplib.SMTP", return_value=client):
            with pytest.raises(ChannelError):
                SmtpRelayChannel(_make_config()).send(_make_message())
        client.quit.assert_called_once()


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Classification
# ═══════════════════════════════════════════════════════════════════════════

class TestClassifySmtpError:

    @pytest.mark.parametrize("exc,expected", [
        (smtplib.SMTPAuthenticationError(535, b"auth failed"), FailureCode.AUTH_FAILED),
        (smtplib.SMTPSenderRefused(550, b"sender refused", "x@y.z"), FailureCode.SENDER_NOT_VERIFIED),
        (smtplib.SMTPRecipientsRefused({"a@b.c": (550, b"no such user")}), FailureCode.REJECTED),
        (smtplib.SMTPServerDisconnected("lost"), FailureCode.TRANSPORT_ERROR),
        (smtplib.SMTPConnectError(421, b"busy"), FailureCode.TRANSPORT_ERROR),
        (smtplib.SMTPDataError(554, b"5.2.0 STOREDRV.Submission.Exception:SendAsDeniedException"),
         FailureCode.SENDER_NOT_VERIFIED),
        (smtplib.SMTPDataError(451, b"4.7.500 Server busy, too many connections"), FailureCode.RATE_LIMITED),
        (smtplib.SMTPDataError(451, b"4.3.0 temporary failure"), FailureCode.TRANSPORT_ERROR),
        (smtplib.SMTPDataError(554, b"5.6.0 message content rejected"), FailureCode.REJECTED),
        (TimeoutError("timed out"), FailureCode.TRANSPORT_ERROR),
        (ssl.SSLError("handshake failure"), FailureCode.TRANSPORT_ERROR),
    ])
    def test_mapping(self, exc, expected):
        error = classify_smtp_error(exc, "smtp:host")
        assert error.code == expected
        assert error.provider == "smtp:host"

    def test_reply_code_kept(self):
        error = classify_smtp_error(smtplib.SMTPAuthenticationError(535, b"no"), "smtp")
        assert error.status_code == 535

    def test_channel_error_passes_through(self):
        original = ChannelError("smtp", FailureCode.TRANSPORT_ERROR, "no starttls")
        assert classify_smtp_error(original, "smtp") is original

    def test_non_smtp_exception_rejected(self):
        with pytest.raises(TypeError):
            classify_smtp_error(KeyError("x"), "smtp")


class TestTlsContext:

    def test_strict_by_default(self):
        context = SmtpRelayChannel(_make_config())._tls_context()
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname is True
        assert context.minimum_version == ssl.TLSVersion.TLSv1_2

    def test_relaxed_only_when_requested(self):
        context = SmtpRelayChannel(_make_config(skip_tls_verify=True))._tls_context()
        assert context.verify_mode == ssl.CERT_NONE
        assert context.minimum_version == ssl.TLSVersion.TLSv1_2
