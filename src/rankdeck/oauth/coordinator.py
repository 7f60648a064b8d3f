# Connection flow: drives one authorization attempt from the connect action
# to a stored connection (or a terminal failure).
# Created: 2026-10-06
#
#   idle → initiated → awaiting_callback → validating → exchanging → connected
#                                 ↘              ↘            ↘
#                                   ───────────── failed ──────
#
# The state is always verified before the code is exchanged, and every
# failure clears the pending state token.

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from urllib.parse import parse_qs, urlparse

from rankdeck.config import Settings
from rankdeck.oauth.authorize import GOOGLE_AUTH_URL, build_authorization_url
from rankdeck.oauth.connections import PROVIDER_SEARCH_CONSOLE, ConnectionStore, OAuthConnection
from rankdeck.oauth.errors import (
    AuthorizationDeniedError,
    InvalidTransitionError,
    OAuthConfigurationError,
    OAuthError,
    StateMismatchError,
)
from rankdeck.oauth.exchange import TokenExchanger
from rankdeck.oauth.messages import SuccessMessage, to_wire
from rankdeck.oauth.state_store import StateTokenStore, states_match
from rankdeck.oauth.windows import BrowsingContext, request_state_from_opener
from rankdeck.security.audit import AuditLogger, AuditSeverity, get_audit_logger
from rankdeck.storage import Caller, StorageError

logger = logging.getLogger(__name__)

STATE_MISMATCH_MESSAGE = "Invalid state parameter: possible forgery. Start the connection again."


class FlowState(str, Enum):
    IDLE = "idle"
    INITIATED = "initiated"
    AWAITING_CALLBACK = "awaiting_callback"
    VALIDATING = "validating"
    EXCHANGING = "exchanging"
    CONNECTED = "connected"
    FAILED = "failed"


_TRANSITIONS: dict[FlowState, set[FlowState]] = {
    # A callback page starts from a fresh flow, hence idle → awaiting_callback.
    FlowState.IDLE: {FlowState.INITIATED, FlowState.AWAITING_CALLBACK},
    FlowState.INITIATED: {FlowState.AWAITING_CALLBACK},
    FlowState.AWAITING_CALLBACK: {FlowState.VALIDATING, FlowState.FAILED},
    FlowState.VALIDATING: {FlowState.EXCHANGING, FlowState.FAILED},
    FlowState.EXCHANGING: {FlowState.CONNECTED, FlowState.FAILED},
    FlowState.CONNECTED: set(),
    FlowState.FAILED: set(),
}


@dataclass
class CallbackParams:
    """Query parameters the provider appends to the redirect URI."""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> CallbackParams:
        return cls(
            code=query.get("code") or None,
            state=query.get("state") or None,
            error=query.get("error") or None,
            error_description=query.get("error_description") or None,
        )

    @classmethod
    def from_url(cls, url: str) -> CallbackParams:
        parsed = parse_qs(urlparse(url).query)
        return cls.from_query({k: v[0] for k, v in parsed.items() if v})


@dataclass
class FlowOutcome:
    state: FlowState
    connection: OAuthConnection | None = None
    error: str | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is FlowState.CONNECTED


class ConnectionFlow:
    """One authorization attempt for one caller.

    The same class serves the side that starts the flow (``start``) and the
    callback page (``handle_callback``); in the popup transport those are
    two instances living in two browsing contexts.
    """

    def __init__(
        self,
        *,
        client_id: str | None,
        redirect_uri: str,
        scope: str,
        state_store: StateTokenStore,
        exchanger: TokenExchanger,
        connections: ConnectionStore,
        caller: Caller,
        provider: str = PROVIDER_SEARCH_CONSOLE,
        auth_url: str = GOOGLE_AUTH_URL,
        return_url: str | None = None,
        opener_timeout: float = 5.0,
        close_delay: float = 1.0,
        audit: AuditLogger | None = None,
    ):
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scope = scope
        self.state_store = state_store
        self.exchanger = exchanger
        self.connections = connections
        self.caller = caller
        self.provider = provider
        self.auth_url = auth_url
        self.return_url = return_url
        self.opener_timeout = opener_timeout
        self.close_delay = close_delay
        self._audit = audit

        self.state = FlowState.IDLE
        self.popup: BrowsingContext | None = None
        self.pending_state: str | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        state_store: StateTokenStore,
        exchanger: TokenExchanger,
        connections: ConnectionStore,
        caller: Caller,
        **kwargs,
    ) -> ConnectionFlow:
        kwargs.setdefault("opener_timeout", settings.opener_state_timeout)
        kwargs.setdefault("close_delay", settings.popup_close_delay)
        kwargs.setdefault("return_url", settings.integration_screen_url)
        return cls(
            client_id=settings.google_oauth_client_id,
            redirect_uri=settings.redirect_uri,
            scope=settings.google_oauth_scope,
            auth_url=settings.google_auth_url,
            state_store=state_store,
            exchanger=exchanger,
            connections=connections,
            caller=caller,
            **kwargs,
        )

    @property
    def audit(self) -> AuditLogger:
        if self._audit is None:
            self._audit = get_audit_logger()
        return self._audit

    def _transition(self, target: FlowState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"Cannot move from {self.state.value} to {target.value}")
        logger.debug("OAuth flow %s → %s", self.state.value, target.value)
        self.state = target

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def start(self, context: BrowsingContext | None = None, popup: bool = True) -> str:
        """Issue a state token and send the user to the provider.

        With a *context*, opens a popup on it (or navigates it when
        ``popup`` is False). Returns the authorization URL.
        """
        if not self.client_id:
            raise OAuthConfigurationError("Google OAuth client id is not configured")

        self._transition(FlowState.INITIATED)
        transport = "popup" if popup else "redirect"
        token = self.state_store.issue(self.caller, transport=transport)
        self.pending_state = token
        url = build_authorization_url(
            self.client_id, self.redirect_uri, self.scope, token, auth_url=self.auth_url
        )
        if context is not None:
            if popup:
                self.popup = context.open_popup(url)
            else:
                context.navigate(url)
        self._transition(FlowState.AWAITING_CALLBACK)
        logger.info(
            "Started %s authorization for %s (%s)", self.provider, self.caller.user_id, transport
        )
        return url

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    async def handle_callback(
        self, params: CallbackParams, context: BrowsingContext | None = None
    ) -> FlowOutcome:
        """Validate the returned state, exchange the code, store the connection.

        Never raises for flow failures; they come back as a failed outcome.
        """
        if self.state is FlowState.IDLE:
            self._transition(FlowState.AWAITING_CALLBACK)
        elif self.state is not FlowState.AWAITING_CALLBACK:
            raise InvalidTransitionError(f"Callback received while {self.state.value}")

        try:
            if params.error:
                raise AuthorizationDeniedError(
                    f"Authorization denied or failed: {params.error_description or params.error}"
                )
            if not params.code:
                raise AuthorizationDeniedError("No authorization code received")

            self._transition(FlowState.VALIDATING)
            if not await self._state_matches(params.state, context):
                raise StateMismatchError(STATE_MISMATCH_MESSAGE)

            self._transition(FlowState.EXCHANGING)
            grant = await self.exchanger.exchange(params.code, self.redirect_uri)
            connection = self.connections.upsert(
                self.caller, self.caller.user_id, self.provider, grant
            )
        except OAuthError as exc:
            return self._fail(exc)
        except StorageError as exc:
            logger.error("Could not store %s connection: %s", self.provider, exc)
            return self._fail(OAuthError(f"Could not save the connection: {exc}", "storage_failed"))

        self._transition(FlowState.CONNECTED)
        self.audit.log_oauth_event("oauth_connect", self.caller.user_id, self.provider, "success")
        await self._complete(context)
        return FlowOutcome(FlowState.CONNECTED, connection=connection)

    async def _state_matches(self, returned: str | None, context: BrowsingContext | None) -> bool:
        if self.state_store.has_pending(self.caller):
            return self.state_store.verify(returned, self.caller)
        if context is not None and context.is_popup:
            # The popup's own storage is empty; the opener holds the state.
            expected = await request_state_from_opener(context, self.opener_timeout)
            return states_match(expected, returned)
        return False

    def _fail(self, exc: OAuthError) -> FlowOutcome:
        self._transition(FlowState.FAILED)
        self.state_store.discard(self.caller)

        if isinstance(exc, StateMismatchError):
            severity = AuditSeverity.ALERT
            logger.warning("OAuth state mismatch for %s", self.caller.user_id)
        elif isinstance(exc, AuthorizationDeniedError):
            severity = AuditSeverity.INFO
            logger.info("OAuth authorization failed for %s: %s", self.caller.user_id, exc)
        else:
            severity = AuditSeverity.WARNING
            logger.warning("OAuth flow failed for %s: %s", self.caller.user_id, exc)

        self.audit.log_oauth_event(
            "oauth_connect",
            self.caller.user_id,
            self.provider,
            "failed",
            severity=severity,
            reason=exc.reason,
        )
        return FlowOutcome(FlowState.FAILED, error=str(exc), reason=exc.reason)

    async def _complete(self, context: BrowsingContext | None) -> None:
        if context is None:
            return
        if context.is_popup and context.opener is not None:
            context.opener.post_message(to_wire(SuccessMessage()), context.origin, context)
            await asyncio.sleep(self.close_delay)
            context.close()
        elif self.return_url:
            context.navigate(self.return_url)
