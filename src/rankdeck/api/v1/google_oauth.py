# Google OAuth router: code exchange, token refresh, connect and callback.
# Created: 2026-10-08
#
# The exchange/refresh endpoints are the only place the client secret is
# used. /callback is the server-rendered redirect target: it validates the
# state issued by /connect, exchanges the code in-process and stores the
# connection before answering the popup or redirecting.

from __future__ import annotations

import html
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from rankdeck.api.deps import (
    client_ip,
    error_response,
    get_connection_store,
    get_optional_caller,
    get_state_store,
    get_token_client,
    require_caller,
    settings_dep,
)
from rankdeck.api.v1.schemas.google_oauth import (
    ConnectRequest,
    ConnectResponse,
    ExchangeRequest,
    RefreshRequest,
    TokenResponse,
)
from rankdeck.config import Settings
from rankdeck.oauth.coordinator import CallbackParams, ConnectionFlow
from rankdeck.oauth.errors import ExchangeError, OAuthConfigurationError
from rankdeck.oauth.exchange import (
    EXCHANGE_FAILED,
    NOT_CONFIGURED,
    NOT_CONFIGURED_DETAILS,
    REFRESH_FAILED,
    TokenExchanger,
)
from rankdeck.storage import Caller

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Google OAuth"])
callback_router = APIRouter(tags=["Google OAuth"])

_TOO_MANY = {"detail": "Too many requests"}

_POPUP_SUCCESS_HTML = """<!DOCTYPE html>
<html><head><title>Connected</title>
<style>body {{ font-family: system-ui; max-width: 480px; margin: 40px auto; }}</style>
</head><body>
<h2>Google Search Console connected</h2>
<p>This window will close automatically.</p>
<script>
if (window.opener) {{
  window.opener.postMessage({{ type: "oauth_success" }}, {origin});
}}
setTimeout(function () {{ window.close(); }}, {delay_ms});
</script>
</body></html>"""

_ERROR_HTML = """<!DOCTYPE html>
<html><head><title>Connection failed</title>
<style>body {{ font-family: system-ui; max-width: 480px; margin: 40px auto; padding: 20px; }}
.error {{ background: #fee2e2; color: #991b1b; padding: 12px; border-radius: 8px; }}</style>
</head><body>
<h2>Could not connect Google Search Console</h2>
<div class="error">{message}</div>
<p><a href="{retry_url}">Back to integrations</a></p>
</body></html>"""


def _error_page(message: str, retry_url: str, status_code: int) -> HTMLResponse:
    body = _ERROR_HTML.format(
        message=html.escape(message), retry_url=html.escape(retry_url, quote=True)
    )
    return HTMLResponse(body, status_code=status_code)


@router.post("/google-oauth/exchange")
async def exchange_code(
    body: ExchangeRequest,
    request: Request,
    caller: Caller = Depends(require_caller),
    tokens: TokenExchanger = Depends(get_token_client),
):
    """Exchange an authorization code for tokens on behalf of the browser."""
    from rankdeck.security.rate_limiter import auth_limiter

    if not auth_limiter.allow(client_ip(request)):
        return JSONResponse(status_code=429, content=_TOO_MANY)

    if not body.code or not body.redirect_uri:
        return error_response(400, "Missing code or redirectUri")

    try:
        grant = await tokens.exchange(body.code, body.redirect_uri)
    except OAuthConfigurationError:
        return error_response(500, NOT_CONFIGURED, NOT_CONFIGURED_DETAILS)
    except ExchangeError as exc:
        return error_response(exc.status or 400, EXCHANGE_FAILED, exc.details)

    logger.info("Exchanged authorization code for %s", caller.user_id)
    return TokenResponse(**grant.to_response()).model_dump(exclude_none=True)


@router.post("/google-oauth/refresh")
async def refresh_token(
    body: RefreshRequest,
    request: Request,
    caller: Caller = Depends(require_caller),
    tokens: TokenExchanger = Depends(get_token_client),
):
    """Trade a refresh token for a new access token."""
    from rankdeck.security.rate_limiter import auth_limiter

    if not auth_limiter.allow(client_ip(request)):
        return JSONResponse(status_code=429, content=_TOO_MANY)

    if not body.refresh_token:
        return error_response(400, "Missing refreshToken")

    try:
        grant = await tokens.refresh(body.refresh_token)
    except OAuthConfigurationError:
        return error_response(500, NOT_CONFIGURED, NOT_CONFIGURED_DETAILS)
    except ExchangeError as exc:
        return error_response(exc.status or 400, REFRESH_FAILED, exc.details)

    logger.info("Refreshed access token for %s", caller.user_id)
    return TokenResponse(**grant.to_response()).model_dump(exclude_none=True)


@router.post("/integrations/google-search-console/connect", response_model=ConnectResponse)
async def connect(
    body: ConnectRequest,
    caller: Caller = Depends(require_caller),
    settings: Settings = Depends(settings_dep),
    tokens: TokenExchanger = Depends(get_token_client),
):
    """Issue a server-side state token and return the consent URL."""
    flow = ConnectionFlow.from_settings(
        settings,
        state_store=get_state_store(),
        exchanger=tokens,
        connections=get_connection_store(),
        caller=caller,
    )
    try:
        url = flow.start(popup=body.transport == "popup")
    except OAuthConfigurationError:
        return error_response(500, NOT_CONFIGURED, NOT_CONFIGURED_DETAILS)

    return ConnectResponse(
        authorization_url=url,
        state=flow.pending_state or "",
        expires_in=settings.state_ttl_seconds,
    )


@callback_router.get("/callback")
async def oauth_callback(
    request: Request,
    caller: Caller | None = Depends(get_optional_caller),
    settings: Settings = Depends(settings_dep),
    tokens: TokenExchanger = Depends(get_token_client),
):
    """Redirect target registered with Google."""
    from rankdeck.security.rate_limiter import auth_limiter

    if not auth_limiter.allow(client_ip(request)):
        return JSONResponse(status_code=429, content=_TOO_MANY)

    retry_url = settings.integration_screen_url
    if caller is None:
        return _error_page("Your session has expired. Sign in and try again.", retry_url, 401)

    params = CallbackParams.from_query(request.query_params)
    store = get_state_store()
    # Read before handle_callback consumes the row.
    transport = store.transport_for(caller, params.state) or "redirect"

    flow = ConnectionFlow.from_settings(
        settings,
        state_store=store,
        exchanger=tokens,
        connections=get_connection_store(),
        caller=caller,
    )
    outcome = await flow.handle_callback(params)

    if not outcome.ok:
        status_code = 500 if outcome.reason == "not_configured" else 400
        return _error_page(outcome.error or "Connection failed", retry_url, status_code)

    if transport == "popup":
        body = _POPUP_SUCCESS_HTML.format(
            origin=json.dumps(settings.app_origin),
            delay_ms=int(settings.popup_close_delay * 1000),
        )
        return HTMLResponse(body)
    return RedirectResponse(retry_url, status_code=302)
