# Google Search Console client: properties and search analytics over REST.
# Created: 2026-10-07

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any
from urllib.parse import quote

import httpx

from rankdeck.oauth.connections import PROVIDER_SEARCH_CONSOLE, ConnectionStore, OAuthConnection
from rankdeck.oauth.errors import FetchError, ReconnectRequiredError, TokenExpiredError
from rankdeck.oauth.refresh import TokenRefreshCoordinator
from rankdeck.security.audit import get_audit_logger
from rankdeck.storage import Caller

logger = logging.getLogger(__name__)

_GSC_BASE = "https://www.googleapis.com/webmasters/v3"

DEFAULT_RANGE_DAYS = 28
DEFAULT_DIMENSIONS = ("query",)
DEFAULT_ROW_LIMIT = 10


@dataclass
class Site:
    site_url: str
    permission_level: str = ""


@dataclass
class AnalyticsRow:
    keys: list[str] = field(default_factory=list)
    clicks: float = 0
    impressions: float = 0
    ctr: float = 0.0
    position: float = 0.0

    @classmethod
    def from_api(cls, row: dict[str, Any]) -> AnalyticsRow:
        return cls(
            keys=list(row.get("keys", [])),
            clicks=row.get("clicks", 0),
            impressions=row.get("impressions", 0),
            ctr=row.get("ctr", 0.0),
            position=row.get("position", 0.0),
        )


def summarize(rows: list[AnalyticsRow]) -> dict[str, float]:
    """Total clicks/impressions and average CTR/position across *rows*."""
    if not rows:
        return {"clicks": 0, "impressions": 0, "avg_ctr": 0.0, "avg_position": 0.0}
    return {
        "clicks": sum(r.clicks for r in rows),
        "impressions": sum(r.impressions for r in rows),
        "avg_ctr": sum(r.ctr for r in rows) / len(rows),
        "avg_position": sum(r.position for r in rows) / len(rows),
    }


def default_date_range(
    today: date | None = None, days: int = DEFAULT_RANGE_DAYS
) -> tuple[str, str]:
    end = today or date.today()
    start = end - timedelta(days=days)
    return start.isoformat(), end.isoformat()


class SearchConsoleClient:
    """HTTP client for the Search Console API.

    A 401 raises ``TokenExpiredError``; any other non-2xx raises
    ``FetchError`` and is not retried.
    """

    def __init__(
        self,
        base_url: str = _GSC_BASE,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _check(self, resp: httpx.Response, what: str) -> None:
        if resp.status_code == 401:
            raise TokenExpiredError()
        if resp.status_code >= 400:
            raise FetchError(
                f"Failed to fetch {what}: {resp.reason_phrase or resp.status_code}",
                status=resp.status_code,
            )

    def _json(self, resp: httpx.Response, what: str) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise FetchError(f"Failed to fetch {what}: unreadable response", status=502) from exc
        if not isinstance(data, dict):
            raise FetchError(f"Failed to fetch {what}: unexpected response", status=502)
        return data

    async def list_sites(self, access_token: str) -> list[Site]:
        """List the properties the token can see."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(
                    f"{self.base_url}/sites",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch sites: {exc}") from exc
        self._check(resp, "sites")

        entries = self._json(resp, "sites").get("siteEntry", [])
        return [
            Site(site_url=e["siteUrl"], permission_level=e.get("permissionLevel", ""))
            for e in entries
            if e.get("siteUrl")
        ]

    async def query_analytics(
        self,
        access_token: str,
        site_url: str,
        start_date: str,
        end_date: str,
        dimensions: list[str] | tuple[str, ...] = DEFAULT_DIMENSIONS,
        row_limit: int = DEFAULT_ROW_LIMIT,
    ) -> list[AnalyticsRow]:
        """Run a search analytics query for one property.

        Args:
            access_token: Current bearer token.
            site_url: Property URL (``https://example.com/`` or ``sc-domain:example.com``).
            start_date: ISO date, inclusive.
            end_date: ISO date, inclusive.
            dimensions: Grouping dimensions (query, page, country, device, date).
            row_limit: Maximum rows returned.
        """
        url = f"{self.base_url}/sites/{quote(site_url, safe='')}/searchAnalytics/query"
        body = {
            "startDate": start_date,
            "endDate": end_date,
            "dimensions": list(dimensions),
            "rowLimit": row_limit,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    url, json=body, headers={"Authorization": f"Bearer {access_token}"}
                )
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch analytics: {exc}") from exc
        self._check(resp, "analytics")

        return [AnalyticsRow.from_api(r) for r in self._json(resp, "analytics").get("rows", [])]


class SearchConsoleService:
    """The caller's Search Console connection plus refresh-aware API calls."""

    def __init__(
        self,
        connections: ConnectionStore,
        client: SearchConsoleClient,
        refresher: TokenRefreshCoordinator,
        caller: Caller,
    ):
        self.connections = connections
        self.client = client
        self.refresher = refresher
        self.caller = caller

    def connection(self) -> OAuthConnection | None:
        return self.connections.get(self.caller, self.caller.user_id, PROVIDER_SEARCH_CONSOLE)

    def _require_connection(self) -> OAuthConnection:
        conn = self.connection()
        if conn is None:
            raise ReconnectRequiredError("Google Search Console is not connected")
        return conn

    async def list_sites(self) -> list[Site]:
        conn = self._require_connection()
        sites, _ = await self.refresher.call(conn, self.client.list_sites)
        return sites

    async def analytics(
        self,
        site_url: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        dimensions: list[str] | tuple[str, ...] = DEFAULT_DIMENSIONS,
        row_limit: int = DEFAULT_ROW_LIMIT,
    ) -> list[AnalyticsRow]:
        """Query analytics for *site_url* (default: the selected property).

        Dates default to the last 28 days.
        """
        conn = self._require_connection()
        site = site_url or conn.selected_resource
        if not site:
            raise FetchError("No Search Console property selected", status=400)

        default_start, default_end = default_date_range()
        start = start_date or default_start
        end = end_date or default_end

        async def _query(token: str) -> list[AnalyticsRow]:
            return await self.client.query_analytics(
                token, site, start, end, dimensions=dimensions, row_limit=row_limit
            )

        rows, _ = await self.refresher.call(conn, _query)
        return rows

    def select_site(self, site_url: str | None) -> OAuthConnection:
        conn = self._require_connection()
        return self.connections.set_selected_resource(self.caller, conn.id, site_url)

    def disconnect(self) -> bool:
        conn = self.connection()
        if conn is None:
            return False
        deleted = self.connections.delete(self.caller, conn.id)
        if deleted:
            get_audit_logger().log_oauth_event(
                "oauth_disconnect", self.caller.user_id, PROVIDER_SEARCH_CONSOLE, "success"
            )
        return deleted
