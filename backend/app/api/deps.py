from __future__ import annotations

from fastapi import Request

from backend.app.core.config import Settings, get_settings


def current_settings(request: Request) -> Settings:
    """Settings the app was built with (create_app), else the process-wide ones."""
    return getattr(request.app.state, "settings", None) or get_settings()
