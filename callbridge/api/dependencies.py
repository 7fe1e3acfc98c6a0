"""FastAPI dependencies resolved from application state.

``create_app`` stores the settings and call collaborators on
``app.state``; routes read them through these helpers.
"""

from __future__ import annotations

from fastapi import Request

from callbridge.config import Settings
from callbridge.core.registry import SessionRegistry


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry
