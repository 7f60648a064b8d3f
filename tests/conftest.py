# Shared fixtures: isolated home directory and fresh singletons per test.
# Created: 2026-10-10

import os

import pytest

from rankdeck.api.deps import reset_stores
from rankdeck.config import get_settings
from rankdeck.security.audit import reset_audit_logger
from rankdeck.security.rate_limiter import api_limiter, auth_limiter
from rankdeck.storage import Caller


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Point HOME at a temp dir so config, tables and audit log stay local."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("RANKDECK_"):
            monkeypatch.delenv(key)

    get_settings.cache_clear()
    reset_stores()
    reset_audit_logger()
    api_limiter.reset()
    auth_limiter.reset()
    yield home
    get_settings.cache_clear()
    reset_stores()
    reset_audit_logger()


@pytest.fixture
def alice():
    return Caller(user_id="alice")


@pytest.fixture
def bob():
    return Caller(user_id="bob")


@pytest.fixture
def admin():
    return Caller(user_id="root", role="admin")
