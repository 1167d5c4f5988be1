"""FastAPI application factory for the price alert HTTP API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from pricealerts.api.errors import register_error_handlers
from pricealerts.api.routes import alerts, quotes, ws
from pricealerts.notifications.browser import NotificationHub


def create_app(lifespan: Any = None, hub: NotificationHub | None = None) -> FastAPI:
    """Create and configure the API application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic and to put
                  quote_cache, engine, alert_service on app.state.
        hub: WebSocket hub shared with the browser notification channel.

    Returns:
        Configured FastAPI application with routes and error handlers.
    """
    app = FastAPI(
        title="Price Alert API",
        lifespan=lifespan,
    )

    app.state.hub = hub or NotificationHub()

    # Wired by main.py lifespan
    app.state.quote_cache = None
    app.state.engine = None
    app.state.alert_service = None

    register_error_handlers(app)

    app.include_router(quotes.router, prefix="/api")
    app.include_router(alerts.router, prefix="/api")
    app.include_router(ws.router)

    return app
