# Search Console integration router: status, property, sites, analytics.
# Created: 2026-10-08

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from rankdeck.api.deps import client_ip, error_response, get_search_console_service
from rankdeck.api.v1.schemas.search_console import (
    AnalyticsRequest,
    AnalyticsResponse,
    AnalyticsRowOut,
    AnalyticsTotals,
    ConnectionStatus,
    SelectPropertyRequest,
    SiteOut,
)
from rankdeck.integrations.search_console import SearchConsoleService, summarize
from rankdeck.oauth.connections import PROVIDER_SEARCH_CONSOLE
from rankdeck.oauth.errors import FetchError, OAuthConfigurationError, ReconnectRequiredError
from rankdeck.oauth.exchange import NOT_CONFIGURED, NOT_CONFIGURED_DETAILS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/google-search-console", tags=["Search Console"])


def _limited(request: Request) -> JSONResponse | None:
    from rankdeck.security.rate_limiter import api_limiter

    if not api_limiter.allow(client_ip(request)):
        return JSONResponse(status_code=429, content={"detail": "Too many requests"})
    return None


def _provider_error(exc: Exception) -> JSONResponse:
    if isinstance(exc, ReconnectRequiredError):
        return error_response(401, "reconnect_required", str(exc))
    if isinstance(exc, OAuthConfigurationError):
        return error_response(500, NOT_CONFIGURED, NOT_CONFIGURED_DETAILS)
    if isinstance(exc, FetchError) and exc.status == 400:
        return error_response(400, str(exc))
    return error_response(502, "fetch_failed", str(exc))


@router.get("", response_model=ConnectionStatus)
async def connection_status(service: SearchConsoleService = Depends(get_search_console_service)):
    """Connection status for the caller. Tokens are never returned."""
    conn = service.connection()
    if conn is None:
        return ConnectionStatus(connected=False, provider=PROVIDER_SEARCH_CONSOLE)
    view = conn.public_view()
    return ConnectionStatus(
        connected=True,
        provider=conn.provider,
        scope=view["scope"],
        selected_resource=view["selected_resource"],
        token_expires_at=view["token_expires_at"],
        has_refresh_token=view["has_refresh_token"],
    )


@router.put("/property")
async def select_property(
    body: SelectPropertyRequest,
    service: SearchConsoleService = Depends(get_search_console_service),
):
    try:
        conn = service.select_site(body.site_url)
    except ReconnectRequiredError as exc:
        return _provider_error(exc)
    return {"selected_resource": conn.selected_resource}


@router.delete("")
async def disconnect(service: SearchConsoleService = Depends(get_search_console_service)):
    return {"disconnected": service.disconnect()}


@router.get("/sites", response_model=list[SiteOut])
async def list_sites(
    request: Request,
    service: SearchConsoleService = Depends(get_search_console_service),
):
    if (limited := _limited(request)) is not None:
        return limited
    try:
        sites = await service.list_sites()
    except (ReconnectRequiredError, FetchError, OAuthConfigurationError) as exc:
        return _provider_error(exc)
    return [SiteOut(site_url=s.site_url, permission_level=s.permission_level) for s in sites]


@router.post("/analytics", response_model=AnalyticsResponse)
async def analytics(
    body: AnalyticsRequest,
    request: Request,
    service: SearchConsoleService = Depends(get_search_console_service),
):
    """Search analytics rows plus totals for a property."""
    if (limited := _limited(request)) is not None:
        return limited
    try:
        rows = await service.analytics(
            site_url=body.site_url,
            start_date=body.start_date,
            end_date=body.end_date,
            dimensions=body.dimensions,
            row_limit=body.row_limit,
        )
    except (ReconnectRequiredError, FetchError, OAuthConfigurationError) as exc:
        return _provider_error(exc)

    conn = service.connection()
    return AnalyticsResponse(
        site_url=body.site_url or (conn.selected_resource if conn else None),
        rows=[
            AnalyticsRowOut(
                keys=r.keys,
                clicks=r.clicks,
                impressions=r.impressions,
                ctr=r.ctr,
                position=r.position,
            )
            for r in rows
        ],
        totals=AnalyticsTotals(**summarize(rows)),
    )
