"""RankDeck entry point.

Changes:
  - 2026-10-10: Added ``session-token`` for minting dev session tokens.
  - 2026-10-09: Added ``prune-states`` to drop expired OAuth state rows.
  - 2026-10-08: ``serve`` starts the API server (uvicorn).
"""

import argparse
import logging
import sys

from rankdeck.config import get_session_secret, get_settings
from rankdeck.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _serve(args: argparse.Namespace) -> int:
    from rankdeck.api.serve import run_api_server

    settings = get_settings()
    run_api_server(
        host=args.host or settings.web_host,
        port=args.port or settings.web_port,
        dev=args.dev,
    )
    return 0


def _prune_states(args: argparse.Namespace) -> int:
    from datetime import timedelta

    from rankdeck.oauth.state_store import ServerStateStore

    store = ServerStateStore(ttl=timedelta(seconds=get_settings().state_ttl_seconds))
    removed = store.prune()
    print(f"Removed {removed} expired state row(s)")
    return 0


def _session_token(args: argparse.Namespace) -> int:
    from rankdeck.security.session_tokens import create_session_token

    settings = get_settings()
    token = create_session_token(
        get_session_secret(settings),
        args.user,
        role=args.role,
        ttl_hours=args.ttl_hours or settings.session_ttl_hours,
    )
    print(token)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="rankdeck",
        description="RankDeck - SEO dashboard backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rankdeck serve                          Start the API server
  rankdeck serve --dev                    Start with auto-reload
  rankdeck prune-states                   Drop expired OAuth state rows
  rankdeck session-token --user u1        Print a session token for user u1
""",
    )
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Start the API server")
    serve.add_argument("--host", default=None, help="Host to bind (default: settings.web_host)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: 8888)")
    serve.add_argument("--dev", action="store_true", help="Auto-reload on code changes")
    serve.set_defaults(func=_serve)

    prune = sub.add_parser("prune-states", help="Drop expired server-side OAuth state rows")
    prune.set_defaults(func=_prune_states)

    token = sub.add_parser("session-token", help="Mint a session token (development)")
    token.add_argument("--user", required=True, help="User id")
    token.add_argument("--role", default="user", choices=["user", "manager", "admin"])
    token.add_argument("--ttl-hours", type=int, default=None)
    token.set_defaults(func=_session_token)

    args = parser.parse_args(argv)
    setup_logging(level=args.log_level or get_settings().log_level)

    try:
        return args.func(args)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
