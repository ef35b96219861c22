"""Middleware: API key authentication and trusted uploader identity."""

from __future__ import annotations

import re
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from photoingest.config import Settings

_bearer_scheme = HTTPBearer(auto_error=False)

_UPLOADER_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _get_settings_from_request(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    If no API key is configured (PHOTOINGEST_API_KEY not set), all requests pass.
    If configured, requests must include 'Authorization: Bearer <key>'.
    """
    settings = _get_settings_from_request(request)
    if settings.api_key is None:
        return

    if credentials is None or not secrets.compare_digest(credentials.credentials.encode(), settings.api_key.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_uploader_id(
    x_uploader_id: Annotated[str | None, Header()] = None,
) -> str:
    """Uploader id set by the upstream identity layer.

    The id is trusted as given; it is only checked to be usable as a single
    directory name.
    """
    if x_uploader_id is None or not _UPLOADER_ID.match(x_uploader_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing or malformed X-Uploader-Id header",
        )
    return x_uploader_id
