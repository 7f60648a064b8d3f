# Session cookie login/logout for the dashboard.
# Created: 2026-10-19
#
# The provider's redirect back to /callback is a top-level cross-site GET
# with no Authorization header, so the dashboard trades its bearer session
# token for an HttpOnly cookie before starting a connection. SameSite=Lax
# keeps the cookie on that navigation.

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from rankdeck.api.deps import SESSION_COOKIE, client_ip, read_session_token, settings_dep
from rankdeck.config import Settings, get_session_secret
from rankdeck.security.session_tokens import verify_session_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


@router.post("/auth/login")
async def cookie_login(request: Request, settings: Settings = Depends(settings_dep)):
    """Validate a session token and set it as an HTTP-only cookie.

    The token comes from the ``Authorization: Bearer`` header or a JSON body
    ``{"token": "..."}``. The browser then sends the cookie on every request,
    including the provider's redirect to ``/callback``.
    """
    from rankdeck.security.rate_limiter import auth_limiter

    if not auth_limiter.allow(client_ip(request)):
        return JSONResponse(status_code=429, content={"detail": "Too many requests"})

    token = read_session_token(request)
    if not token:
        try:
            body = await request.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("token"), str):
            token = body["token"].strip()

    caller = verify_session_token(token, get_session_secret()) if token else None
    if caller is None:
        return JSONResponse(status_code=401, content={"detail": "Invalid session token"})

    response = JSONResponse(content={"ok": True, "user_id": caller.user_id})
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.app_origin.startswith("https://"),
        path="/",
        max_age=settings.session_ttl_hours * 3600,
    )
    logger.info("Session cookie issued for %s", caller.user_id)
    return response


@router.post("/auth/logout")
async def cookie_logout():
    """Clear the session cookie."""
    response = JSONResponse(content={"ok": True})
    response.delete_cookie(key=SESSION_COOKIE, path="/")
    return response
