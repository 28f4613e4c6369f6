from fastapi import Request

from backend.app.core.config import Settings


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
