"""
WorkshopStatusCache — в каком статусе производства находится клиент.

Read-through кэш client_name (lower) → status для проектов в мастерской.
TTL 60 секунд; одновременные вызовы ждут один и тот же запрос.
"""

import asyncio
import time
from typing import Awaitable, Callable

from loguru import logger

from workshop_alerts.records import ProductionProject

DEFAULT_TTL_SECONDS = 60


class WorkshopStatusCache:
    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[ProductionProject]]],
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch = fetch
        self._ttl = ttl
        self._clock = clock
        self._statuses: dict[str, str] | None = None
        self._loaded_at = 0.0
        self._inflight: asyncio.Task | None = None
        self._generation = 0

    def _fresh(self) -> bool:
        return self._statuses is not None and self._clock() - self._loaded_at < self._ttl

    async def statuses(self) -> dict[str, str]:
        """Вся карта client → status (из кэша или свежая)."""
        if self._fresh():
            return self._statuses

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._load())
        return await asyncio.shield(self._inflight)

    async def _load(self) -> dict[str, str]:
        generation = self._generation
        projects = await self._fetch()
        statuses: dict[str, str] = {}
        for project in projects:
            if project.client_name and project.status:
                statuses[project.client_name.strip().lower()] = project.status
        if generation != self._generation:
            logger.debug("Workshop status invalidated during fetch, result not cached")
            return statuses
        self._statuses = statuses
        self._loaded_at = self._clock()
        logger.debug(f"Workshop status loaded: {len(statuses)} clients")
        return statuses

    async def get(self, client_name: str) -> str | None:
        if not client_name:
            return None
        statuses = await self.statuses()
        return statuses.get(client_name.strip().lower())

    def invalidate(self) -> None:
        """Сбросить кэш. Запрос, начатый до сброса, в кэш уже не попадёт."""
        self._statuses = None
        self._loaded_at = 0.0
        self._generation += 1
        self._inflight = None


_cache: WorkshopStatusCache | None = None


def set_workshop_status_cache(cache: WorkshopStatusCache) -> None:
    global _cache
    _cache = cache


def get_workshop_status_cache() -> WorkshopStatusCache:
    """Глобальный кэш (создаётся в main)."""
    if _cache is None:
        raise RuntimeError("WorkshopStatusCache is not initialized")
    return _cache
