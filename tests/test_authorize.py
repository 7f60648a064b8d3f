# Tests for oauth/authorize.py
# Created: 2026-10-10

from urllib.parse import parse_qs, urlparse

import pytest

from rankdeck.config import SEARCH_CONSOLE_READONLY
from rankdeck.oauth.authorize import GOOGLE_AUTH_URL, build_authorization_url


def _params(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestBuildAuthorizationUrl:
    def test_required_parameters(self):
        url = build_authorization_url(
            "client-1", "http://localhost:5173/callback", SEARCH_CONSOLE_READONLY, "abc123"
        )
        assert url.startswith(GOOGLE_AUTH_URL + "?")
        params = _params(url)
        assert params == {
            "client_id": "client-1",
            "redirect_uri": "http://localhost:5173/callback",
            "response_type": "code",
            "scope": SEARCH_CONSOLE_READONLY,
            "access_type": "offline",
            "prompt": "consent",
            "state": "abc123",
        }

    def test_scope_list_is_space_joined(self):
        url = build_authorization_url("c", "http://x/cb", ["openid", "email"], "s")
        assert _params(url)["scope"] == "openid email"

    def test_values_are_url_encoded(self):
        url = build_authorization_url("c", "http://x/cb?a=1&b=2", "s", "st")
        assert "redirect_uri=http%3A%2F%2Fx%2Fcb%3Fa%3D1%26b%3D2" in url

    def test_custom_auth_endpoint(self):
        url = build_authorization_url("c", "http://x/cb", "s", "st", auth_url="http://idp/auth")
        assert url.startswith("http://idp/auth?")

    def test_missing_client_id(self):
        with pytest.raises(ValueError):
            build_authorization_url("", "http://x/cb", "s", "st")

    def test_missing_redirect_uri(self):
        with pytest.raises(ValueError):
            build_authorization_url("c", "", "s", "st")
