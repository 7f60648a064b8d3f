# Token refresh coordinator: recovers from an expired access token once.
# Created: 2026-10-07

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from rankdeck.oauth.connections import ConnectionStore, OAuthConnection
from rankdeck.oauth.errors import ExchangeError, ReconnectRequiredError, TokenExpiredError
from rankdeck.oauth.exchange import TokenExchanger
from rankdeck.security.audit import AuditLogger, AuditSeverity, get_audit_logger
from rankdeck.storage import Caller

logger = logging.getLogger(__name__)

T = TypeVar("T")

NO_REFRESH_TOKEN = "No refresh token available. Please reconnect."
REFRESH_FAILED = "Failed to refresh token. Please reconnect."
STILL_EXPIRED = "Access was rejected again after a refresh. Please reconnect."


class TokenRefreshCoordinator:
    """Refresh-then-retry around provider calls.

    At most one refresh per call: a second expired signal after a
    refresh is terminal.
    """

    def __init__(
        self,
        connections: ConnectionStore,
        refresher: TokenExchanger,
        caller: Caller,
        audit: AuditLogger | None = None,
    ):
        self.connections = connections
        self.refresher = refresher
        self.caller = caller
        self._audit = audit

    @property
    def audit(self) -> AuditLogger:
        if self._audit is None:
            self._audit = get_audit_logger()
        return self._audit

    async def refresh(self, connection: OAuthConnection) -> OAuthConnection:
        """Get a new access token and write it through to the store.

        Raises:
            ReconnectRequiredError: no refresh token, or the provider refused it.
            OAuthConfigurationError: the backend has no client credentials.
        """
        if not connection.refresh_token:
            self._record_failure(connection, "no_refresh_token")
            raise ReconnectRequiredError(NO_REFRESH_TOKEN)

        try:
            grant = await self.refresher.refresh(connection.refresh_token)
        except ExchangeError as exc:
            logger.warning("Token refresh failed for connection %s: %s", connection.id, exc)
            self._record_failure(connection, "refresh_rejected")
            raise ReconnectRequiredError(REFRESH_FAILED) from exc

        updated = self.connections.update_access_token(
            self.caller,
            connection.id,
            grant.access_token,
            refresh_token=grant.refresh_token,
            expires_in=grant.expires_in,
        )
        logger.info("Refreshed access token for connection %s", connection.id)
        return updated

    async def call(
        self,
        connection: OAuthConnection,
        operation: Callable[[str], Awaitable[T]],
    ) -> tuple[T, OAuthConnection]:
        """Run ``operation(access_token)``, refreshing and retrying once on expiry.

        Returns the result and the (possibly refreshed) connection.
        """
        try:
            return await operation(connection.access_token), connection
        except TokenExpiredError:
            logger.info("Access token expired for connection %s, refreshing", connection.id)

        refreshed = await self.refresh(connection)
        try:
            return await operation(refreshed.access_token), refreshed
        except TokenExpiredError as exc:
            self._record_failure(refreshed, "expired_after_refresh")
            raise ReconnectRequiredError(STILL_EXPIRED) from exc

    def _record_failure(self, connection: OAuthConnection, reason: str) -> None:
        self.audit.log_oauth_event(
            "oauth_refresh",
            self.caller.user_id,
            connection.provider,
            "failed",
            severity=AuditSeverity.WARNING,
            reason=reason,
        )
