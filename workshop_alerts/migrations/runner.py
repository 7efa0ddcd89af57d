"""
Миграции для alerts.sqlite.

Модуль миграции называется mNNN_<что_делает> и экспортирует
`async def apply(data_dir: Path)`. Журнал применённых лежит в
data_dir/.migrations.json: {имя: время применения}.
"""

import importlib
import json
import pkgutil
import re
from datetime import datetime
from pathlib import Path

from loguru import logger

JOURNAL_FILE = ".migrations.json"
_NAME_RE = re.compile(r"^m\d{3}_\w+$")


def read_journal(data_dir: Path) -> dict[str, str]:
    path = data_dir / JOURNAL_FILE
    if not path.exists():
        return {}
    return json.loads(path.read_text())


def _write_journal(data_dir: Path, journal: dict[str, str]) -> None:
    path = data_dir / JOURNAL_FILE
    path.write_text(json.dumps(journal, indent=2, sort_keys=True) + "\n")


def pending_migrations(data_dir: Path) -> list[str]:
    """Миграции пакета, которых ещё нет в журнале, по порядку номеров."""
    import workshop_alerts.migrations as migrations_pkg

    journal = read_journal(data_dir)
    return sorted(
        info.name
        for info in pkgutil.iter_modules(migrations_pkg.__path__)
        if _NAME_RE.match(info.name) and info.name not in journal
    )


async def run_migrations(data_dir: Path) -> list[str]:
    """Применить pending-миграции. Возвращает имена применённых сейчас."""
    data_dir.mkdir(parents=True, exist_ok=True)
    journal = read_journal(data_dir)

    applied: list[str] = []
    for name in pending_migrations(data_dir):
        module = importlib.import_module(f"workshop_alerts.migrations.{name}")
        try:
            await module.apply(data_dir)
        except Exception as e:
            logger.error(f"Migration {name} failed: {e}")
            raise
        journal[name] = datetime.now().isoformat(timespec="seconds")
        _write_journal(data_dir, journal)
        applied.append(name)
        logger.info(f"Migration applied: {name}")
    return applied
