# Authorization URL builder for the Google authorization-code flow.
# Created: 2026-10-01

from __future__ import annotations

import urllib.parse

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scope: str | list[str],
    state: str,
    auth_url: str = GOOGLE_AUTH_URL,
) -> str:
    """Build the provider authorization URL.

    Always asks for offline access and forces the consent prompt so that a
    refresh token is issued again even for a user who authorized before.

    Args:
        client_id: OAuth client ID (injected from configuration).
        redirect_uri: Callback URL registered with the provider.
        scope: Space-separated scope string or list of scopes.
        state: Correlation token minted by a state store.
        auth_url: Provider authorization endpoint.

    Returns:
        URL to navigate the browser (or popup) to.
    """
    if not client_id:
        raise ValueError("client_id is required to build the authorization URL")
    if not redirect_uri:
        raise ValueError("redirect_uri is required to build the authorization URL")

    if not isinstance(scope, str):
        scope = " ".join(scope)

    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
        "access_type": "offline",
        "prompt": "consent",
    }
    if state:
        params["state"] = state

    return f"{auth_url}?{urllib.parse.urlencode(params)}"
