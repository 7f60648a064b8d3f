# Shared FastAPI dependencies for the API layer.
# Created: 2026-10-08

from __future__ import annotations

from datetime import timedelta
from typing import Any

from fastapi import Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from rankdeck.config import Settings, get_session_secret, get_settings
from rankdeck.integrations.search_console import SearchConsoleClient, SearchConsoleService
from rankdeck.oauth.connections import ConnectionStore
from rankdeck.oauth.exchange import GoogleTokenClient, TokenExchanger
from rankdeck.oauth.refresh import TokenRefreshCoordinator
from rankdeck.oauth.state_store import ServerStateStore
from rankdeck.security.session_tokens import verify_session_token
from rankdeck.storage import Caller

SESSION_COOKIE = "rankdeck_session"

_connection_store: ConnectionStore | None = None
_state_store: ServerStateStore | None = None


def settings_dep() -> Settings:
    return get_settings()


def get_connection_store() -> ConnectionStore:
    global _connection_store
    if _connection_store is None:
        _connection_store = ConnectionStore()
    return _connection_store


def get_state_store() -> ServerStateStore:
    global _state_store
    if _state_store is None:
        ttl = timedelta(seconds=get_settings().state_ttl_seconds)
        _state_store = ServerStateStore(ttl=ttl)
    return _state_store


def reset_stores() -> None:
    global _connection_store, _state_store
    _connection_store = None
    _state_store = None


def get_token_client(settings: Settings = Depends(settings_dep)) -> TokenExchanger:
    return GoogleTokenClient.from_settings(settings)


def get_search_console_client(settings: Settings = Depends(settings_dep)) -> SearchConsoleClient:
    return SearchConsoleClient(
        base_url=settings.search_console_base_url, timeout=settings.http_timeout
    )


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def error_response(status_code: int, error: str, details: Any = None) -> JSONResponse:
    """``{error, details?}`` body used by the OAuth backend functions."""
    content: dict[str, Any] = {"error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def read_session_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


def get_optional_caller(request: Request) -> Caller | None:
    """Caller from the bearer header or session cookie, if any is valid."""
    token = read_session_token(request)
    if not token:
        return None
    return verify_session_token(token, get_session_secret())


def require_caller(caller: Caller | None = Depends(get_optional_caller)) -> Caller:
    if caller is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return caller


def get_search_console_service(
    caller: Caller = Depends(require_caller),
    connections: ConnectionStore = Depends(get_connection_store),
    tokens: TokenExchanger = Depends(get_token_client),
    client: SearchConsoleClient = Depends(get_search_console_client),
) -> SearchConsoleService:
    refresher = TokenRefreshCoordinator(connections, tokens, caller)
    return SearchConsoleService(connections, client, refresher, caller)
