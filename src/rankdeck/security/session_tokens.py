"""HMAC-based stateless session tokens carrying the caller identity.

Token format: ``{user_id}.{role}.{expires_unix}.{hex_hmac}``

The session secret is the HMAC key, so rotating it invalidates every
outstanding session token without a server-side session store.
"""

import hashlib
import hmac
import time

from rankdeck.storage import Caller

__all__ = ["create_session_token", "verify_session_token"]


def create_session_token(
    secret: str, user_id: str, role: str = "user", ttl_hours: int = 24
) -> str:
    """Issue a session token for *user_id* that expires after *ttl_hours*."""
    if not user_id:
        raise ValueError("user_id is required")
    expires = int(time.time()) + ttl_hours * 3600
    payload = f"{user_id}.{role}.{expires}"
    return f"{payload}.{_sign(secret, payload)}"


def verify_session_token(token: str, secret: str) -> Caller | None:
    """Return the caller if the token is authentic and not expired."""
    parts = token.rsplit(".", 3)
    if len(parts) != 4:
        return None

    user_id, role, expires_str, sig = parts
    try:
        expires = int(expires_str)
    except ValueError:
        return None

    if not user_id or time.time() > expires:
        return None

    expected = _sign(secret, f"{user_id}.{role}.{expires_str}")
    if not hmac.compare_digest(sig, expected):
        return None
    return Caller(user_id=user_id, role=role)


def _sign(key: str, message: str) -> str:
    return hmac.new(key.encode(), message.encode(), hashlib.sha256).hexdigest()
