"""Entry point for the price alert service.

Wires all components together, optionally embeds the FastAPI API, and
starts the alert scheduler. When the API is enabled (default), the
scheduler and the API share a single asyncio event loop via uvicorn's
programmatic API and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. AlertDatabase + SqliteAlertStore (alert persistence)
2. ExchangeQuoteSource (primary) and CoinGeckoQuoteSource (secondary)
3. QuoteCache (shared price cache with fallback)
4. NotificationHub + channels (email, browser, sms, webhook)
5. NotificationDispatcher (per-channel fan-out)
6. TriggerEngine (evaluation cycle)
7. AlertService (owner-facing CRUD)
8. AlertScheduler (periodic driver)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from pricealerts.alerts.database import AlertDatabase
from pricealerts.alerts.engine import TriggerEngine
from pricealerts.alerts.scheduler import AlertScheduler
from pricealerts.alerts.service import AlertService
from pricealerts.alerts.store import SqliteAlertStore
from pricealerts.config import AppSettings
from pricealerts.logging import get_logger, setup_logging
from pricealerts.notifications.browser import BrowserChannel, NotificationHub
from pricealerts.notifications.dispatcher import NotificationDispatcher
from pricealerts.notifications.email import EmailChannel
from pricealerts.notifications.sms import SmsChannel
from pricealerts.notifications.webhook import WebhookChannel
from pricealerts.quotes.cache import QuoteCache
from pricealerts.quotes.coingecko_source import CoinGeckoQuoteSource
from pricealerts.quotes.exchange_source import ExchangeQuoteSource


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all service components from settings.

    Note: Does NOT connect the database -- that happens in the lifespan
    (API mode) or run() (scheduler-only mode).

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("pricealerts.main")

    # 1. Persistence
    database = AlertDatabase(settings.alerts.db_path)
    store = SqliteAlertStore(database)

    # 2-3. Quote sources and shared cache
    quote_cache = QuoteCache(
        primary=ExchangeQuoteSource(settings.quotes),
        secondary=CoinGeckoQuoteSource(settings.coingecko),
        settings=settings.quotes,
    )

    # 4. Channels
    hub = NotificationHub()
    email_channel = EmailChannel(settings.notifications)
    if not email_channel.configured:
        logger.warning(
            "smtp_not_configured",
            note="Email notifications will be logged instead of sent.",
        )
    channels = [
        email_channel,
        BrowserChannel(hub),
        SmsChannel(settings.notifications),
        WebhookChannel(),
    ]

    # 5. Dispatcher
    dispatcher = NotificationDispatcher(
        channels, channel_timeout=settings.notifications.channel_timeout
    )

    # 6-8. Engine, service, scheduler
    engine = TriggerEngine(store, quote_cache, dispatcher, settings.alerts)
    alert_service = AlertService(store, settings.alerts)
    scheduler = AlertScheduler(engine, interval=settings.alerts.evaluation_interval)

    return {
        "database": database,
        "store": store,
        "quote_cache": quote_cache,
        "hub": hub,
        "dispatcher": dispatcher,
        "engine": engine,
        "alert_service": alert_service,
        "scheduler": scheduler,
    }


def _setup_signal_handlers(scheduler: AlertScheduler) -> None:
    """Register SIGINT/SIGTERM to stop the scheduler gracefully.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("pricealerts.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(scheduler.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


async def _shutdown(components: dict[str, Any]) -> None:
    await components["scheduler"].stop()
    await components["quote_cache"].close()
    await components["dispatcher"].close()
    await components["database"].close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: stores components on app.state, connects the alert
    database and starts the scheduler.

    On shutdown: stops the scheduler and closes sources, channels and
    the database.
    """
    logger = get_logger("pricealerts.main")
    components = app.state.components

    # Store components on app.state for route handler access
    app.state.quote_cache = components["quote_cache"]
    app.state.engine = components["engine"]
    app.state.alert_service = components["alert_service"]

    await components["database"].connect()
    await components["scheduler"].start()

    logger.info("lifespan_started")

    yield

    await _shutdown(components)
    logger.info("price_alerts_stopped")


async def run() -> None:
    """Run the price alert service.

    When the API is enabled (API_ENABLED=true, the default) the scheduler
    runs inside uvicorn's event loop and uvicorn handles SIGINT/SIGTERM.
    Otherwise the scheduler runs on its own until a signal stops it.
    """
    settings = AppSettings()

    setup_logging(settings.log_level)
    logger = get_logger("pricealerts.main")

    components = _build_components(settings)

    if settings.api.enabled:
        from pricealerts.api.app import create_app

        app = create_app(lifespan=lifespan, hub=components["hub"])
        app.state.components = components

        logger.info(
            "starting_with_api",
            host=settings.api.host,
            port=settings.api.port,
            interval=settings.alerts.evaluation_interval,
        )

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        scheduler = components["scheduler"]
        _setup_signal_handlers(scheduler)

        logger.info(
            "starting_without_api",
            interval=settings.alerts.evaluation_interval,
            db_path=settings.alerts.db_path,
        )

        try:
            await components["database"].connect()
            await scheduler.start()
            while scheduler.running:
                await asyncio.sleep(1)
        finally:
            await _shutdown(components)
            logger.info("price_alerts_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
