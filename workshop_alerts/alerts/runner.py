"""
AlertsRunner — периодический refresh алертов.

Первый цикл сразу при старте, дальше каждые interval минут.
Ошибки цикла логируются, loop продолжает работать.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from workshop_alerts.alerts.service import AlertsService

DEFAULT_INTERVAL_MINUTES = 5


class AlertsRunner:
    def __init__(self, service: AlertsService, interval_minutes: float = DEFAULT_INTERVAL_MINUTES) -> None:
        self._service = service
        self._interval = interval_minutes * 60  # в секунды
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Alerts runner started (interval: {self._interval / 60:g} min)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Alerts runner stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self._service.refresh()
            except Exception as e:
                logger.error(f"Alerts refresh error: {e}")

            await asyncio.sleep(self._interval)

    async def trigger_now(self) -> None:
        """Внеочередной refresh (склеивается с текущим, если он идёт)."""
        await self._service.refresh()
