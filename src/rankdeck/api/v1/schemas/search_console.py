# Search Console integration schemas.
# Created: 2026-10-08

from __future__ import annotations

from pydantic import BaseModel, Field


class ConnectionStatus(BaseModel):
    connected: bool
    provider: str
    scope: str | None = None
    selected_resource: str | None = None
    token_expires_at: str | None = None
    has_refresh_token: bool = False


class SelectPropertyRequest(BaseModel):
    site_url: str | None = None


class SiteOut(BaseModel):
    site_url: str
    permission_level: str = ""


class AnalyticsRequest(BaseModel):
    site_url: str | None = None
    start_date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    end_date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    dimensions: list[str] = Field(default_factory=lambda: ["query"])
    row_limit: int = Field(default=10, ge=1, le=25000)


class AnalyticsRowOut(BaseModel):
    keys: list[str]
    clicks: float
    impressions: float
    ctr: float
    position: float


class AnalyticsTotals(BaseModel):
    clicks: float
    impressions: float
    avg_ctr: float
    avg_position: float


class AnalyticsResponse(BaseModel):
    site_url: str | None
    rows: list[AnalyticsRowOut]
    totals: AnalyticsTotals
