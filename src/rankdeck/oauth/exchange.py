# Code exchange: authorization code / refresh token → token material.
# Created: 2026-10-04
#
# GoogleTokenClient holds the client secret and talks to the provider's
# token endpoint. It only runs in the backend (see api/v1/google_oauth.py).
# BackendTokenClient is what a browser-side flow uses instead: it forwards
# the code to the backend with the caller's session token and never sees
# the secret.

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from rankdeck.config import Settings
from rankdeck.oauth.errors import ExchangeError, OAuthConfigurationError

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

NOT_CONFIGURED = "OAuth credentials not configured"
NOT_CONFIGURED_DETAILS = (
    "GOOGLE client id and secret must be set on the backend "
    "(RANKDECK_GOOGLE_OAUTH_CLIENT_ID / RANKDECK_GOOGLE_OAUTH_CLIENT_SECRET)"
)
EXCHANGE_FAILED = "Failed to exchange code for token"
REFRESH_FAILED = "Failed to refresh token"


@dataclass
class TokenGrant:
    """Token material returned by an exchange or a refresh."""

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str = ""
    token_type: str = "Bearer"

    @classmethod
    def from_response(cls, data: Any) -> TokenGrant:
        if not isinstance(data, dict):
            raise ExchangeError("Token response was not a JSON object", status=502, details=data)
        if not data.get("access_token"):
            raise ExchangeError("Token response did not include an access_token", details=data)
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            expires_in=int(expires_in) if expires_in is not None else None,
            scope=data.get("scope", ""),
            token_type=data.get("token_type", "Bearer"),
        )

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"access_token": self.access_token, "scope": self.scope}
        if self.expires_in is not None:
            body["expires_in"] = self.expires_in
        if self.refresh_token:
            body["refresh_token"] = self.refresh_token
        return body


class TokenExchanger(Protocol):
    async def exchange(self, code: str, redirect_uri: str) -> TokenGrant: ...

    async def refresh(self, refresh_token: str) -> TokenGrant: ...


def _json_body(resp: httpx.Response, failure: str) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        content_type = resp.headers.get("content-type")
        logger.warning("%s: unreadable response body (%s)", failure, content_type)
        raise ExchangeError(failure, status=502, details={"raw": resp.text[:200]}) from exc


def _error_payload(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return {"raw": resp.text}


class GoogleTokenClient:
    """Confidential token-endpoint client. Backend only."""

    def __init__(
        self,
        client_id: str | None,
        client_secret: str | None,
        token_url: str = GOOGLE_TOKEN_URL,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> GoogleTokenClient:
        return cls(
            client_id=settings.google_oauth_client_id,
            client_secret=settings.google_oauth_client_secret,
            token_url=settings.google_token_url,
            timeout=settings.http_timeout,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _require_credentials(self) -> None:
        if not self.configured:
            logger.error(
                "Google OAuth client id/secret missing (client_id=%s, client_secret=%s)",
                "present" if self.client_id else "MISSING",
                "present" if self.client_secret else "MISSING",
            )
            raise OAuthConfigurationError(NOT_CONFIGURED)

    async def _post(self, form: dict[str, str], failure: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.token_url, data=form)
        except httpx.HTTPError as exc:
            logger.warning("Token endpoint unreachable: %s", exc)
            raise ExchangeError(f"{failure}: token endpoint unreachable", status=502) from exc

        if resp.status_code >= 400:
            details = _error_payload(resp)
            logger.warning("%s (status %d): %s", failure, resp.status_code, details)
            raise ExchangeError(failure, status=resp.status_code, details=details)
        return _json_body(resp, failure)

    async def exchange(self, code: str, redirect_uri: str) -> TokenGrant:
        """Exchange an authorization code for tokens.

        Raises:
            OAuthConfigurationError: client id/secret not configured.
            ExchangeError: the provider rejected the code.
        """
        self._require_credentials()
        logger.info("Exchanging authorization code (redirect URI %s)", redirect_uri)
        data = await self._post(
            {
                "code": code,
                "client_id": self.client_id or "",
                "client_secret": self.client_secret or "",
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            },
            EXCHANGE_FAILED,
        )
        grant = TokenGrant.from_response(data)
        logger.info(
            "Token exchange succeeded (refresh token: %s, expires in %s)",
            "yes" if grant.refresh_token else "no",
            grant.expires_in,
        )
        return grant

    async def refresh(self, refresh_token: str) -> TokenGrant:
        """Trade a refresh token for a new access token."""
        self._require_credentials()
        data = await self._post(
            {
                "refresh_token": refresh_token,
                "client_id": self.client_id or "",
                "client_secret": self.client_secret or "",
                "grant_type": "refresh_token",
            },
            REFRESH_FAILED,
        )
        return TokenGrant.from_response(data)


class BackendTokenClient:
    """Calls the backend exchange/refresh functions with a session bearer token."""

    def __init__(
        self,
        base_url: str,
        session_token: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session_token = session_token
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_token: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> BackendTokenClient:
        return cls(
            base_url=settings.backend_url,
            session_token=session_token,
            timeout=settings.http_timeout,
            transport=transport,
        )

    async def _call(self, path: str, body: dict[str, str], failure: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}{path}",
                    json=body,
                    headers={"Authorization": f"Bearer {self.session_token}"},
                )
        except httpx.HTTPError as exc:
            raise ExchangeError(f"{failure}: backend unreachable", status=502) from exc

        if resp.status_code >= 400:
            payload = _error_payload(resp)
            message = payload.get("error") if isinstance(payload, dict) else None
            details = payload.get("details") if isinstance(payload, dict) else payload
            if message == NOT_CONFIGURED:
                raise OAuthConfigurationError(NOT_CONFIGURED)
            raise ExchangeError(message or failure, status=resp.status_code, details=details)
        return _json_body(resp, failure)

    async def exchange(self, code: str, redirect_uri: str) -> TokenGrant:
        data = await self._call(
            "/api/v1/google-oauth/exchange",
            {"code": code, "redirectUri": redirect_uri},
            EXCHANGE_FAILED,
        )
        return TokenGrant.from_response(data)

    async def refresh(self, refresh_token: str) -> TokenGrant:
        data = await self._call(
            "/api/v1/google-oauth/refresh", {"refreshToken": refresh_token}, REFRESH_FAILED
        )
        return TokenGrant.from_response(data)
