# State token stores: single-use CSRF correlation tokens for in-flight
# authorization requests.
# Created: 2026-10-02
#
# Two backends share one contract:
#   LocalStateStore : kept in a browsing context's storage mapping. Lost when
#                      the flow continues in another context (a popup).
#   ServerStateStore: kept in the oauth_states table keyed by the caller, so
#                      a popup and its opener see the same request. Rows
#                      expire after a TTL (10 minutes by default).
# verify() always consumes the pending token, whatever the outcome.

from __future__ import annotations

import hmac
import logging
import secrets
from collections.abc import Callable, MutableMapping
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Protocol

from rankdeck.storage import Caller, RecordTable

logger = logging.getLogger(__name__)

STATE_KEY = "oauth_state"
DEFAULT_STATE_TTL = timedelta(minutes=10)


def new_state_token() -> str:
    return secrets.token_urlsafe(32)


def states_match(expected: str | None, candidate: str | None) -> bool:
    """Constant-time comparison that never matches an empty side."""
    if not expected or not candidate:
        return False
    return hmac.compare_digest(expected.encode(), candidate.encode())


class StateTokenStore(Protocol):
    def issue(self, caller: Caller | None = None, transport: str = "redirect") -> str: ...

    def verify(self, candidate: str | None, caller: Caller | None = None) -> bool: ...

    def has_pending(self, caller: Caller | None = None) -> bool: ...

    def discard(self, caller: Caller | None = None) -> None: ...


class LocalStateStore:
    """State token kept in one browsing context's storage.

    *storage* is any mutable mapping (a context's ``local_storage``).
    The ``caller`` arguments exist for interface parity and are ignored.
    """

    def __init__(self, storage: MutableMapping[str, str]):
        self.storage = storage

    def issue(self, caller: Caller | None = None, transport: str = "redirect") -> str:
        token = new_state_token()
        self.storage[STATE_KEY] = token
        return token

    def has_pending(self, caller: Caller | None = None) -> bool:
        return bool(self.storage.get(STATE_KEY))

    def take(self) -> str | None:
        """Pop the pending token, so it is handed out at most once."""
        return self.storage.pop(STATE_KEY, None)

    def verify(self, candidate: str | None, caller: Caller | None = None) -> bool:
        expected = self.take()
        return states_match(expected, candidate)

    def discard(self, caller: Caller | None = None) -> None:
        self.storage.pop(STATE_KEY, None)


class ServerStateStore:
    """State tokens in the ``oauth_states`` table, scoped to the caller.

    Rows: ``{id, owner_id, state, transport, created_at}``.
    """

    def __init__(
        self,
        table: RecordTable | None = None,
        ttl: timedelta = DEFAULT_STATE_TTL,
        clock: Callable[[], datetime] | None = None,
    ):
        self.table = table or RecordTable("oauth_states", _default_table_path())
        self.ttl = ttl
        self._now = clock or (lambda: datetime.now(UTC))

    def _require(self, caller: Caller | None) -> Caller:
        if caller is None:
            raise ValueError("ServerStateStore needs an authenticated caller")
        return caller

    def _fresh(self, row: dict) -> bool:
        created = datetime.fromisoformat(row["created_at"])
        return self._now() - created <= self.ttl

    def issue(self, caller: Caller | None = None, transport: str = "redirect") -> str:
        caller = self._require(caller)
        self.prune()
        # One live request per caller: a new attempt supersedes older ones.
        self.table.delete_where(caller, owner_id=caller.user_id)
        token = new_state_token()
        self.table.insert(
            caller,
            {
                "owner_id": caller.user_id,
                "state": token,
                "transport": transport,
                "created_at": self._now().isoformat(),
            },
        )
        logger.debug("Issued server-side OAuth state for %s", caller.user_id)
        return token

    def has_pending(self, caller: Caller | None = None) -> bool:
        caller = self._require(caller)
        rows = self.table.select(caller, owner_id=caller.user_id)
        return any(self._fresh(r) for r in rows)

    def transport_for(self, caller: Caller, candidate: str | None) -> str | None:
        """Transport recorded when *candidate* was issued, without consuming it."""
        for row in self.table.select(caller, owner_id=caller.user_id):
            if states_match(row["state"], candidate):
                return row.get("transport")
        return None

    def verify(self, candidate: str | None, caller: Caller | None = None) -> bool:
        caller = self._require(caller)
        # Removing every row of the caller in one locked step means two
        # concurrent callbacks cannot both see the token.
        rows = self.table.pop_where(caller, owner_id=caller.user_id)
        for row in rows:
            if states_match(row["state"], candidate):
                if self._fresh(row):
                    return True
                logger.info("OAuth state for %s matched but had expired", caller.user_id)
                return False
        return False

    def discard(self, caller: Caller | None = None) -> None:
        caller = self._require(caller)
        self.table.delete_where(caller, owner_id=caller.user_id)

    def prune(self) -> int:
        """Drop expired rows of every owner. Returns the number removed."""
        removed = self.table.purge(lambda row: not self._fresh(row))
        if removed:
            logger.info("Pruned %d expired OAuth state rows", removed)
        return removed


def _default_table_path() -> Path:
    from rankdeck.config import get_data_dir

    return get_data_dir() / "oauth_states.json"
