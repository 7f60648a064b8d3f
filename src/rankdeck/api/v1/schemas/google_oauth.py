# Google OAuth backend-function schemas.
# Created: 2026-10-08

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ExchangeRequest(BaseModel):
    """Authorization code forwarded by the browser."""

    model_config = ConfigDict(populate_by_name=True)

    code: str | None = None
    redirect_uri: str | None = Field(default=None, alias="redirectUri")


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str | None = Field(default=None, alias="refreshToken")


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str = ""


class ConnectRequest(BaseModel):
    transport: Literal["popup", "redirect"] = "popup"


class ConnectResponse(BaseModel):
    authorization_url: str
    state: str
    expires_in: int
