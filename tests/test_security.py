# Tests for security/audit.py and security/rate_limiter.py
# Created: 2026-10-13

import json

from rankdeck.security.audit import AuditLogger, AuditSeverity, get_audit_logger
from rankdeck.security.rate_limiter import RateLimiter


class TestAuditLogger:
    def test_oauth_event_is_appended_as_jsonl(self, tmp_path):
        audit = AuditLogger(tmp_path / "audit.jsonl")
        audit.log_oauth_event("oauth_connect", "alice", "google_search_console", "success")
        audit.log_oauth_event(
            "oauth_connect",
            "alice",
            "google_search_console",
            "failed",
            severity=AuditSeverity.ALERT,
            reason="state_mismatch",
        )

        lines = (tmp_path / "audit.jsonl").read_text().splitlines()
        assert len(lines) == 2
        event = json.loads(lines[1])
        assert event["action"] == "oauth_connect"
        assert event["actor"] == "alice"
        assert event["target"] == "google_search_console"
        assert event["severity"] == "alert"
        assert event["context"] == {"reason": "state_mismatch"}

    def test_anonymous_actor(self, tmp_path):
        audit = AuditLogger(tmp_path / "audit.jsonl")
        audit.log_oauth_event("oauth_connect", None, "google_search_console", "blocked")
        assert json.loads((tmp_path / "audit.jsonl").read_text())["actor"] == "anonymous"

    def test_default_path_under_config_dir(self, isolated_home):
        assert get_audit_logger().log_path == isolated_home / ".rankdeck" / "audit.jsonl"


class TestRateLimiter:
    def test_burst_then_block(self):
        limiter = RateLimiter(rate=0.001, capacity=3)
        assert [limiter.allow("ip") for _ in range(4)] == [True, True, True, False]

    def test_keys_are_independent(self):
        limiter = RateLimiter(rate=0.001, capacity=1)
        assert limiter.allow("a")
        assert limiter.allow("b")
        assert not limiter.allow("a")

    def test_reset(self):
        limiter = RateLimiter(rate=0.001, capacity=1)
        limiter.allow("a")
        limiter.reset()
        assert limiter.allow("a")
