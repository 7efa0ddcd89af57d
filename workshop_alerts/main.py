"""
Workshop Alerts — сервис алертов мастерской.

Точка входа приложения.
"""

import asyncio
import sys

import uvicorn
from loguru import logger

from workshop_alerts.alerts.dismissals import DismissalCache
from workshop_alerts.alerts.reconciler import AlertReconciler
from workshop_alerts.alerts.runner import AlertsRunner
from workshop_alerts.alerts.service import AlertsService
from workshop_alerts.alerts.storage import AlertStore
from workshop_alerts.api import create_app
from workshop_alerts.config import settings
from workshop_alerts.migrations import run_migrations
from workshop_alerts.sources import (
    BackendClient,
    build_sources,
    fetch_workshop_projects,
    load_crm_snapshot,
    load_live_snapshot,
)
from workshop_alerts.workshop_status import WorkshopStatusCache, set_workshop_status_cache


def setup_logging() -> None:
    """Настраивает логирование."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level,
    )


async def main() -> None:
    """Точка входа."""
    setup_logging()
    logger.info("Starting Workshop Alerts")

    if not settings.backend_url:
        logger.warning("BACKEND_URL is not set: live alerts will use cached snapshots only")

    await run_migrations(settings.data_dir)

    backend = BackendClient(
        settings.backend_url,
        api_key=settings.backend_api_key,
        timeout=settings.backend_timeout_seconds,
    )
    sources = build_sources(backend, settings.snapshots_dir)

    store = AlertStore(str(settings.db_path))
    dismissals = DismissalCache(settings.dismissals_path, ttl=settings.dismissal_ttl_hours * 3600)
    reconciler = AlertReconciler(store, lambda: load_crm_snapshot(sources))
    service = AlertsService(
        store,
        reconciler,
        dismissals,
        lambda: load_live_snapshot(sources),
        admin_role=settings.admin_role,
    )

    workshop_status = WorkshopStatusCache(
        lambda: fetch_workshop_projects(backend),
        ttl=settings.workshop_status_ttl_seconds,
    )
    set_workshop_status_cache(workshop_status)

    runner: AlertsRunner | None = None
    if settings.refresh_interval_minutes > 0:
        runner = AlertsRunner(service, interval_minutes=settings.refresh_interval_minutes)
        await runner.start()
    else:
        logger.info("Periodic refresh disabled (REFRESH_INTERVAL_MINUTES=0)")
        await service.refresh()

    api_app = create_app(service, workshop_status)
    api_config = uvicorn.Config(api_app, host=settings.api_host, port=settings.api_port, log_level="warning")
    api_server = uvicorn.Server(api_config)

    logger.info(f"API listening on {settings.api_host}:{settings.api_port}")
    try:
        await api_server.serve()
    finally:
        if runner:
            await runner.stop()
        await store.close()
        await backend.close()
        logger.info("Workshop Alerts stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
