"""
Audit Logging.
Created: 2026-10-05

Append-only JSONL record of security-relevant connection events: connects,
disconnects, rejected callbacks (state mismatch, denied consent) and
failed refreshes. Lives next to the config at ~/.rankdeck/audit.jsonl.
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger("audit")


class AuditSeverity(str, Enum):
    INFO = "info"  # Normal operation (connect, disconnect)
    WARNING = "warning"  # Failed exchange or refresh
    ALERT = "alert"  # Security violation (state mismatch)


@dataclass
class AuditEvent:
    """A single audit log entry."""

    id: str
    timestamp: str
    severity: AuditSeverity
    actor: str  # user id, or "anonymous"
    action: str  # e.g. "oauth_connect", "oauth_disconnect"
    target: str  # provider
    status: str  # "success", "failed", "blocked"
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        severity: AuditSeverity,
        actor: str,
        action: str,
        target: str,
        status: str,
        **context: Any,
    ) -> "AuditEvent":
        return cls(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(tz=UTC).isoformat(),
            severity=severity,
            actor=actor,
            action=action,
            target=target,
            status=status,
            context=context,
        )


class AuditLogger:
    """Append-only audit logger writing JSONL."""

    def __init__(self, log_path: Path | None = None):
        if log_path is None:
            from rankdeck.config import get_config_dir

            log_path = get_config_dir() / "audit.jsonl"
        self.log_path = log_path

    def log(self, event: AuditEvent) -> None:
        """Write an event to the audit log."""
        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(asdict(event)) + "\n")
        except OSError as e:
            logger.critical("FAILED TO WRITE AUDIT LOG: %s | Event: %s", e, event)

    def log_oauth_event(
        self,
        action: str,
        actor: str | None,
        provider: str,
        status: str,
        severity: AuditSeverity = AuditSeverity.INFO,
        **context: Any,
    ) -> str:
        event = AuditEvent.create(
            severity=severity,
            actor=actor or "anonymous",
            action=action,
            target=provider,
            status=status,
            **context,
        )
        self.log(event)
        return event.id


# Singleton
_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def reset_audit_logger() -> None:
    global _audit_logger
    _audit_logger = None
