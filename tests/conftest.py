"""Общие фикстуры: фиксированное "сейчас", временная БД, фабрики записей."""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from workshop_alerts.alerts.dismissals import DismissalCache
from workshop_alerts.alerts.models import TriggerDefinition
from workshop_alerts.alerts.storage import AlertStore
from workshop_alerts.records import Lead

NOW = datetime(2025, 3, 15, 12, 0, 0)


def days_ago(days: float) -> str:
    return (NOW - timedelta(days=days)).isoformat()


def days_ahead(days: float) -> str:
    return (NOW + timedelta(days=days)).isoformat()


def make_lead(lead_id: str = "lead-1", **fields) -> Lead:
    fields.setdefault("client", f"Cliente {lead_id}")
    return Lead(id=lead_id, **fields)


def crm_definition(trigger_type: str, threshold_days: int | None = 30, **fields) -> TriggerDefinition:
    return TriggerDefinition(trigger_type=trigger_type, threshold_days=threshold_days, **fields)


class FakeClock:
    """Управляемые часы (epoch seconds) для TTL-тестов."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def store(tmp_path):
    alert_store = AlertStore(str(tmp_path / "alerts.sqlite"))
    yield alert_store
    await alert_store.close()


@pytest.fixture
def dismissals(tmp_path, clock) -> DismissalCache:
    return DismissalCache(tmp_path / "dismissed.json", clock=clock)
