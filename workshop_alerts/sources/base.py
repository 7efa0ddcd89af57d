"""
SnapshotSource — источник одной сущности с локальным кэшем.

fetch(): свежие данные из backend (ошибка → SnapshotFetchError),
после успеха сырые строки сохраняются в snapshots_dir/<name>.json.
cached_or_default(): последняя сохранённая копия или пустой список.
load_with_fallback(): их композиция для live-пути.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from loguru import logger

if TYPE_CHECKING:
    from workshop_alerts.sources.backend import BackendClient

T = TypeVar("T")


class SnapshotFetchError(Exception):
    """Не удалось получить снимок из backend."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class SnapshotSource(Generic[T]):
    """Одна таблица backend → list[T]."""

    def __init__(
        self,
        name: str,
        backend: BackendClient,
        parse: Callable[[dict], T | None],
        cache_dir: Path,
        columns: str = "*",
        filters: dict[str, str] | None = None,
        limit: int | None = None,
    ) -> None:
        self.name = name
        self._backend = backend
        self._parse = parse
        self._cache_path = Path(cache_dir) / f"{name}.json"
        self._columns = columns
        self._filters = filters or {}
        self._limit = limit

    def _parse_rows(self, rows: list) -> list[T]:
        parsed = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            item = self._parse(row)
            if item is not None:
                parsed.append(item)
        return parsed

    async def fetch(self) -> list[T]:
        rows = await self._backend.select(
            self.name,
            columns=self._columns,
            filters=self._filters,
            limit=self._limit,
        )
        self._store_cache(rows)
        return self._parse_rows(rows)

    def cached_or_default(self) -> list[T]:
        if not self._cache_path.exists():
            return []
        try:
            rows = json.loads(self._cache_path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Snapshot cache {self.name} unreadable: {e}")
            return []
        if not isinstance(rows, list):
            return []
        return self._parse_rows(rows)

    def _store_cache(self, rows: list[dict]) -> None:
        try:
            self._cache_path.parent.mkdir(parents=True, exist_ok=True)
            self._cache_path.write_text(json.dumps(rows, ensure_ascii=False))
        except OSError as e:
            logger.warning(f"Snapshot cache {self.name} not saved: {e}")


async def load_with_fallback(source: SnapshotSource[T]) -> list[T]:
    """Свежие данные, при ошибке последняя локальная копия."""
    try:
        return await source.fetch()
    except SnapshotFetchError as e:
        cached = source.cached_or_default()
        logger.warning(f"Snapshot {source.name} unavailable ({e.reason}), using cache: {len(cached)} rows")
        return cached
