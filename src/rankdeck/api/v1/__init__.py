# API v1 router aggregation.
# Created: 2026-10-08
#
# mount_v1_routers(app) registers the domain routers at /api/v1/ and the
# OAuth callback page at the application root, where the registered
# redirect URI points.

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# (module_path, attr_name, prefix, tag)
_V1_ROUTERS: list[tuple[str, str, str, str]] = [
    ("rankdeck.api.v1.auth", "router", "/api/v1", "Auth"),
    ("rankdeck.api.v1.google_oauth", "router", "/api/v1", "Google OAuth"),
    ("rankdeck.api.v1.search_console", "router", "/api/v1", "Search Console"),
    ("rankdeck.api.v1.google_oauth", "callback_router", "", "OAuth Callback"),
]


def mount_v1_routers(app: FastAPI) -> None:
    """Mount all v1 routers on *app*.

    A router that fails to import is logged and skipped so the rest of the
    API still comes up.
    """
    import importlib

    from fastapi import APIRouter

    for module_path, attr_name, prefix, tag in _V1_ROUTERS:
        try:
            mod = importlib.import_module(module_path)
            router: APIRouter = getattr(mod, attr_name)
            app.include_router(router, prefix=prefix)
            logger.debug("Mounted v1 router: %s.%s (%s)", module_path, attr_name, tag)
        except Exception:
            logger.warning("Failed to mount v1 router %s", module_path, exc_info=True)
