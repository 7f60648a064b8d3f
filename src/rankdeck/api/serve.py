"""API server for ``rankdeck serve``.

Hosts the versioned ``/api/v1/`` routers and the OAuth ``/callback`` page
with CORS limited to the dashboard origin.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


def create_app():
    """Build the FastAPI application."""
    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware

    from rankdeck import __version__
    from rankdeck.api.v1 import mount_v1_routers
    from rankdeck.config import get_settings

    settings = get_settings()

    app = FastAPI(
        title="RankDeck API",
        description="SEO dashboard backend: Google OAuth and Search Console.",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    # --- CORS -----------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_origin.rstrip("/")],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # --- Mount all routers -----------------------------------------------
    mount_v1_routers(app)

    if not settings.google_oauth_client_id or not settings.google_oauth_client_secret:
        logger.warning(
            "Google OAuth client id/secret not set; connect and exchange will fail "
            "until RANKDECK_GOOGLE_OAUTH_CLIENT_ID and _SECRET are configured"
        )

    return app


def run_api_server(
    host: str = "127.0.0.1",
    port: int = 8888,
    dev: bool = False,
) -> None:
    """Start the API server with uvicorn."""
    import uvicorn

    print("\n" + "=" * 50)
    print("RANKDECK API SERVER")
    print("=" * 50)
    print(f"\nAPI docs: http://{'localhost' if host == '127.0.0.1' else host}:{port}/api/v1/docs\n")

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "rankdeck.api.serve:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        app = create_app()
        uvicorn.run(app, host=host, port=port)
