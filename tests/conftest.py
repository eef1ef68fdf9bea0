"""
Shared fixtures: isolated Settings, provider configs and a scriptable
fake channel. No test touches the network.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Union

import pytest

from contact_dispatch.app.core.config import Settings
from contact_dispatch.app.notify.channels.base import Channel, ChannelError, FailureCode
from contact_dispatch.app.notify.models import (
    ContactSubmission,
    Message,
    ProviderConfig,
    ProviderKind,
    Receipt,
)

# Environment names Settings reads, including the legacy aliases
_ALIASES = ("SENDGRID_FROM", "EMAIL_HOST", "EMAIL_PORT", "EMAIL_USER", "EMAIL_PASS")
_SETTINGS_ENV = set(Settings.model_fields) | set(_ALIASES)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch):
    """Keep the developer's shell / .env out of every test."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture
def make_settings():
    def _make(**overrides) -> Settings:
        return Settings(_env_file=None, **overrides)
    return _make


def _make_provider(
    name: str = "sendgrid",
    *,
    kind: ProviderKind = ProviderKind.HTTP_API,
    priority: int = 10,
    sender: str = "bookings@tours.test",
    recipient: str = "owner@tours.test",
    requires_verify: bool = False,
    bcc: Optional[str] = None,
) -> ProviderConfig:
    return ProviderConfig(
        name=name,
        kind=kind,
        priority=priority,
        sender=sender,
        recipient=recipient,
        credentials={"api_key": "sk-test-secret"},
        requires_verify=requires_verify,
        supports_sandbox=kind == ProviderKind.HTTP_API,
        bcc=bcc,
    )


@pytest.fixture
def make_provider():
    return _make_provider


class FakeChannel(Channel):
    """
    Channel double.

    ``failures`` scripts successive send() calls: each entry is a
    FailureCode to raise as a ChannelError, any other exception instance
    to raise as is, or None to succeed. Calls beyond the script succeed.
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        failures: Sequence[Union[FailureCode, Exception, None]] = (),
        verify_failure: Optional[FailureCode] = None,
        via_fallback_host: bool = False,
    ):
        super().__init__(config)
        self._failures: List[Union[FailureCode, Exception, None]] = list(failures)
        self.verify_failure = verify_failure
        self.via_fallback_host = via_fallback_host
        self.sent: List[Message] = []
        self.send_calls = 0
        self.verify_calls = 0
        self.closed = False

    def verify(self) -> None:
        self.verify_calls += 1
        if self.verify_failure is not None:
            raise ChannelError(self.name, self.verify_failure, "verify refused")

    def send(self, message: Message) -> Receipt:
        self.send_calls += 1
        failure = self._failures.pop(0) if self._failures else None
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            raise ChannelError(self.name, failure, f"{failure.value} from fake", status_code=550)
        self.sent.append(message)
        return Receipt(
            provider=self.name,
            message_ref=f"{self.name}-{self.send_calls}",
            status_code=202,
            via_fallback_host=self.via_fallback_host,
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_channel():
    def _make(name: str = "sendgrid", *, priority: int = 10, requires_verify: bool = False, **kwargs) -> FakeChannel:
        config = _make_provider(name, priority=priority, requires_verify=requires_verify)
        return FakeChannel(config, **kwargs)
    return _make


@pytest.fixture
def submission() -> ContactSubmission:
    return ContactSubmission(
        name="Jo",
        email="jo@x.com",
        subject="Trip info",
        message="I would like pricing for a 3-day tour.",
    )


VALID_FORM: Dict[str, str] = {
    "name": "Jo",
    "email": "jo@x.com",
    "subject": "Trip info",
    "message": "I would like pricing for a 3-day tour.",
}


@pytest.fixture
def valid_form() -> Dict[str, str]:
    return dict(VALID_FORM)
