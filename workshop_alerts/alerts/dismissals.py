"""
DismissalCache — скрытые пользователем live-алерты.

Хранится JSON-файлом {alert_id: dismissed_at_ms}. Запись живёт ttl
(по умолчанию 24 часа), после чего алерт снова показывается, если
условие всё ещё выполняется. Просроченные записи чистятся при каждом чтении.
"""

import json
import time
from pathlib import Path
from typing import Callable

from loguru import logger

DEFAULT_TTL_SECONDS = 24 * 60 * 60


class DismissalCache:
    """Кэш отклонённых live-алертов с TTL."""

    def __init__(
        self,
        path: Path,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(path)
        self._ttl_ms = ttl * 1000
        self._clock = clock
        self._entries: dict[str, float] = self._load()

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _load(self) -> dict[str, float]:
        if not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Dismissal cache unreadable, starting empty: {e}")
            return {}
        if not isinstance(raw, dict):
            return {}
        return {
            str(k): float(v)
            for k, v in raw.items()
            if isinstance(v, (int, float)) and not isinstance(v, bool)
        }

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._entries, indent=2) + "\n")

    def _prune(self) -> None:
        now = self._now_ms()
        expired = [k for k, ts in self._entries.items() if now - ts >= self._ttl_ms]
        if not expired:
            return
        for key in expired:
            del self._entries[key]
        self._save()
        logger.debug(f"Dismissals pruned: {len(expired)}")

    def is_dismissed(self, alert_id: str) -> bool:
        self._prune()
        return alert_id in self._entries

    def dismiss(self, alert_id: str) -> None:
        """Скрывает алерт на ttl."""
        self._entries[alert_id] = self._now_ms()
        self._save()
        logger.info(f"Live alert dismissed: {alert_id}")

    def undismiss(self, alert_id: str) -> bool:
        """Возвращает алерт в ленту. False если его не было в кэше."""
        if self._entries.pop(alert_id, None) is None:
            return False
        self._save()
        logger.info(f"Live alert restored: {alert_id}")
        return True

    def active(self) -> dict[str, float]:
        """Актуальные записи (после очистки)."""
        self._prune()
        return dict(self._entries)
