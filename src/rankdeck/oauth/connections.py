# Connection store: persisted OAuth credentials, one row per (owner, provider).
# Created: 2026-10-04

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from rankdeck.oauth.exchange import TokenGrant
from rankdeck.storage import Caller, RecordTable

logger = logging.getLogger(__name__)

PROVIDER_SEARCH_CONSOLE = "google_search_console"
CONFLICT_KEY = ("owner_id", "provider")


@dataclass
class OAuthConnection:
    """Stored credential for one provider integration.

    ``token_expires_at`` is advisory: a 401 from the provider is what
    actually marks the access token as expired.
    """

    id: str
    owner_id: str
    provider: str
    access_token: str
    refresh_token: str | None = None
    token_expires_at: str | None = None  # ISO-8601, UTC
    scope: str = ""
    selected_resource: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> OAuthConnection:
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in row.items() if k in fields})

    def to_row(self) -> dict[str, Any]:
        return asdict(self)

    def public_view(self) -> dict[str, Any]:
        """Everything except the credentials themselves."""
        return {
            "id": self.id,
            "provider": self.provider,
            "scope": self.scope,
            "token_expires_at": self.token_expires_at,
            "selected_resource": self.selected_resource,
            "has_refresh_token": bool(self.refresh_token),
            "updated_at": self.updated_at,
        }


class ConnectionStore:
    """``oauth_connections`` table wrapper with upsert-on-conflict semantics."""

    def __init__(
        self,
        table: RecordTable | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.table = table or RecordTable("oauth_connections", _default_table_path())
        self._now = clock or (lambda: datetime.now(UTC))

    def _expiry(self, expires_in: int | None) -> str | None:
        if expires_in is None:
            return None
        return (self._now() + timedelta(seconds=expires_in)).isoformat()

    def upsert(
        self, caller: Caller, owner_id: str, provider: str, grant: TokenGrant
    ) -> OAuthConnection:
        """Create or overwrite the connection for ``(owner_id, provider)``.

        Access token, refresh token, expiry and scope are replaced; the
        selected resource of an existing row is kept.
        """
        now = self._now().isoformat()
        existing = self.get(caller, owner_id, provider)
        row = self.table.upsert(
            caller,
            {
                "owner_id": owner_id,
                "provider": provider,
                "access_token": grant.access_token,
                "refresh_token": grant.refresh_token,
                "token_expires_at": self._expiry(grant.expires_in),
                "scope": grant.scope,
                "created_at": existing.created_at if existing else now,
                "updated_at": now,
            },
            on_conflict=CONFLICT_KEY,
        )
        logger.info("Stored %s connection for %s", provider, owner_id)
        return OAuthConnection.from_row(row)

    def get(self, caller: Caller, owner_id: str, provider: str) -> OAuthConnection | None:
        rows = self.table.select(caller, owner_id=owner_id, provider=provider)
        return OAuthConnection.from_row(rows[0]) if rows else None

    def get_by_id(self, caller: Caller, connection_id: str) -> OAuthConnection | None:
        row = self.table.get(caller, connection_id)
        return OAuthConnection.from_row(row) if row else None

    def update_access_token(
        self,
        caller: Caller,
        connection_id: str,
        access_token: str,
        refresh_token: str | None = None,
        expires_in: int | None = None,
    ) -> OAuthConnection:
        """Replace the access token in place.

        The stored refresh token is only replaced by a non-empty new one;
        providers usually do not rotate it.
        """
        changes: dict[str, Any] = {
            "access_token": access_token,
            "updated_at": self._now().isoformat(),
        }
        if refresh_token:
            changes["refresh_token"] = refresh_token
        if expires_in is not None:
            changes["token_expires_at"] = self._expiry(expires_in)
        row = self.table.update(caller, connection_id, changes)
        return OAuthConnection.from_row(row)

    def set_selected_resource(
        self, caller: Caller, connection_id: str, resource: str | None
    ) -> OAuthConnection:
        row = self.table.update(
            caller,
            connection_id,
            {"selected_resource": resource, "updated_at": self._now().isoformat()},
        )
        return OAuthConnection.from_row(row)

    def delete(self, caller: Caller, connection_id: str) -> bool:
        deleted = self.table.delete(caller, connection_id)
        if deleted:
            logger.info("Deleted connection %s", connection_id)
        return deleted


def _default_table_path() -> Path:
    from rankdeck.config import get_data_dir

    return get_data_dir() / "oauth_connections.json"
