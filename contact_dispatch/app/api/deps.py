"""Route dependencies that read process-wide collaborators off ``app.state``."""

from __future__ import annotations

from fastapi import Request

from contact_dispatch.app.core.config import Settings
from contact_dispatch.app.notify.dispatcher import Dispatcher


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
