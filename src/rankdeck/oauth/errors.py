# OAuth error taxonomy: every terminal outcome of the connection lifecycle.
# Created: 2026-10-01

from __future__ import annotations

from typing import Any


class OAuthError(Exception):
    """Base class for connection-lifecycle failures.

    ``reason`` is a stable machine-readable tag; ``str(exc)`` is the
    user-facing message.
    """

    reason = "oauth_error"

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        if reason:
            self.reason = reason


class AuthorizationDeniedError(OAuthError):
    """The provider redirected back with an ``error`` parameter."""

    reason = "authorization_denied"


class StateMismatchError(OAuthError):
    """Returned state did not match the recovered one (possible forgery)."""

    reason = "state_mismatch"


class ExchangeError(OAuthError):
    """The provider (or the backend) rejected the code or refresh token."""

    reason = "exchange_failed"

    def __init__(self, message: str, status: int | None = None, details: Any = None):
        super().__init__(message)
        self.status = status
        self.details = details


class OAuthConfigurationError(OAuthError):
    """Client id/secret missing server-side. An operator problem, not a user one."""

    reason = "not_configured"


class TokenExpiredError(OAuthError):
    """Provider answered 401 for the current access token."""

    reason = "expired_token"

    def __init__(self, message: str = "EXPIRED_TOKEN"):
        super().__init__(message)


class ReconnectRequiredError(OAuthError):
    """The credential cannot be recovered; the user has to authorize again."""

    reason = "reconnect_required"


class FetchError(OAuthError):
    """Non-401 failure from a downstream provider call."""

    reason = "fetch_failed"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class InvalidTransitionError(OAuthError):
    """A flow step was invoked from a state that does not allow it."""

    reason = "invalid_transition"
