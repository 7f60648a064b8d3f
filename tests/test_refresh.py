# Tests for oauth/refresh.py: refresh-then-retry-once.
# Created: 2026-10-11

from unittest.mock import AsyncMock

import pytest

from rankdeck.oauth.connections import PROVIDER_SEARCH_CONSOLE, ConnectionStore
from rankdeck.oauth.errors import (
    ExchangeError,
    FetchError,
    OAuthConfigurationError,
    ReconnectRequiredError,
    TokenExpiredError,
)
from rankdeck.oauth.exchange import TokenGrant
from rankdeck.oauth.refresh import TokenRefreshCoordinator
from rankdeck.security.audit import AuditLogger
from rankdeck.storage import RecordTable


@pytest.fixture
def connections(tmp_path):
    return ConnectionStore(RecordTable("oauth_connections", tmp_path / "connections.json"))


@pytest.fixture
def connection(connections, alice):
    return connections.upsert(
        alice,
        "alice",
        PROVIDER_SEARCH_CONSOLE,
        TokenGrant(access_token="old", refresh_token="1//r", expires_in=3600),
    )


@pytest.fixture
def refresher():
    mock = AsyncMock()
    mock.refresh.return_value = TokenGrant(access_token="new", expires_in=3599)
    return mock


@pytest.fixture
def coordinator(connections, refresher, alice, tmp_path):
    return TokenRefreshCoordinator(
        connections, refresher, alice, audit=AuditLogger(tmp_path / "audit.jsonl")
    )


class TestRefresh:
    @pytest.mark.asyncio
    async def test_writes_new_token_through(self, coordinator, connections, connection, alice):
        updated = await coordinator.refresh(connection)
        assert updated.access_token == "new"
        assert updated.refresh_token == "1//r"
        assert connections.get_by_id(alice, connection.id).access_token == "new"

    @pytest.mark.asyncio
    async def test_no_refresh_token(self, coordinator, connections, alice, refresher):
        conn = connections.upsert(
            alice, "alice", PROVIDER_SEARCH_CONSOLE, TokenGrant(access_token="old")
        )
        with pytest.raises(ReconnectRequiredError):
            await coordinator.refresh(conn)
        refresher.refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_refresh_requires_reconnect(self, coordinator, connection, refresher):
        refresher.refresh.side_effect = ExchangeError("Failed to refresh token", 400)
        with pytest.raises(ReconnectRequiredError):
            await coordinator.refresh(connection)

    @pytest.mark.asyncio
    async def test_configuration_error_propagates(self, coordinator, connection, refresher):
        refresher.refresh.side_effect = OAuthConfigurationError("OAuth credentials not configured")
        with pytest.raises(OAuthConfigurationError):
            await coordinator.refresh(connection)


class TestCall:
    @pytest.mark.asyncio
    async def test_success_without_refresh(self, coordinator, connection, refresher):
        operation = AsyncMock(return_value=["site"])
        result, conn = await coordinator.call(connection, operation)
        assert result == ["site"]
        assert conn is connection
        operation.assert_awaited_once_with("old")
        refresher.refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_expired_refreshes_and_retries_once(self, coordinator, connection, refresher):
        operation = AsyncMock(side_effect=[TokenExpiredError(), ["site"]])
        result, conn = await coordinator.call(connection, operation)

        assert result == ["site"]
        assert conn.access_token == "new"
        assert [c.args[0] for c in operation.await_args_list] == ["old", "new"]
        refresher.refresh.assert_awaited_once_with("1//r")

    @pytest.mark.asyncio
    async def test_expired_twice_is_terminal(self, coordinator, connection, refresher, tmp_path):
        operation = AsyncMock(side_effect=[TokenExpiredError(), TokenExpiredError()])
        with pytest.raises(ReconnectRequiredError):
            await coordinator.call(connection, operation)

        assert operation.await_count == 2
        assert refresher.refresh.await_count == 1
        assert "expired_after_refresh" in (tmp_path / "audit.jsonl").read_text()

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, coordinator, connection, refresher):
        operation = AsyncMock(side_effect=FetchError("Failed to fetch sites", 500))
        with pytest.raises(FetchError):
            await coordinator.call(connection, operation)
        assert operation.await_count == 1
        refresher.refresh.assert_not_called()
