"""Tests for AlertsService: refresh cycle, run-now, lifecycle actions, trigger edits."""

import asyncio
from types import SimpleNamespace

import pytest
import pytest_asyncio

from workshop_alerts.alerts.live import LIVE_DEFAULTS
from workshop_alerts.alerts.models import CrmSnapshot, LiveSnapshot, ReconcileResult
from workshop_alerts.alerts.reconciler import AlertReconciler
from workshop_alerts.alerts.service import AlertActionError, AlertsService
from workshop_alerts.records import StockItem
from workshop_alerts.sources.base import SnapshotFetchError

from tests.conftest import NOW, crm_definition, days_ago, make_lead


class Loader:
    """Async-загрузчик снимка с подсчётом вызовов."""

    def __init__(self, value) -> None:
        self.value = value
        self.calls = 0
        self.error: Exception | None = None
        self.delay = 0.0

    async def __call__(self):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.value


@pytest_asyncio.fixture
async def env(store, dismissals):
    await store.upsert_trigger_definition(crm_definition("seguimiento_negociacion", 30))
    crm = Loader(CrmSnapshot(leads=[make_lead("lead-1", status="Negociación", updated_at=days_ago(40))]))
    live = Loader(LiveSnapshot(stock=[StockItem(reference="R1", quantity=0, min_stock=5)]))
    reconciler = AlertReconciler(store, crm, clock=lambda: NOW)
    service = AlertsService(store, reconciler, dismissals, live, clock=lambda: NOW)
    return SimpleNamespace(service=service, crm=crm, live=live, store=store)


def ids(feed):
    return [a.id for a in feed.alerts]


def crm_alert(feed):
    [alert] = [a for a in feed.alerts if a.kind == "crm"]
    return alert


class TestRefresh:
    async def test_refresh_builds_feed(self, env):
        result = await env.service.refresh()
        assert result.reconcile == ReconcileResult(created=1, removed=0)
        assert result.instances == 1
        assert result.live == 1
        assert env.service.last_refresh == NOW

        feed = env.service.feed("admin")
        assert "stock_cero__global" in ids(feed)
        assert crm_alert(feed).instance.lead_id == "lead-1"

    async def test_concurrent_refreshes_are_coalesced(self, env):
        env.live.delay = 0.05
        first, second = await asyncio.gather(env.service.refresh(), env.service.refresh())
        assert first is second
        assert env.crm.calls == 1
        assert env.live.calls == 1

    async def test_sequential_refreshes_run_again(self, env):
        await env.service.refresh()
        await env.service.refresh()
        assert env.live.calls == 2

    async def test_failures_keep_previous_read_model(self, env):
        await env.service.refresh()
        env.crm.error = SnapshotFetchError("crm_leads", "HTTP 500")
        env.live.error = RuntimeError("backend down")

        result = await env.service.refresh()
        assert result.reconcile is None
        assert result.live == 1
        feed = env.service.feed("admin")
        assert "stock_cero__global" in ids(feed)
        assert len(feed.alerts) == 2

    async def test_role_visibility(self, env):
        await env.service.refresh()
        assert ids(env.service.feed("compras")) == ["stock_cero__global"]
        assert env.service.feed("encargado").alerts == []


class TestRunNow:
    async def test_returns_delta_and_updates_instances(self, env):
        assert await env.service.run_now() == ReconcileResult(created=1, removed=0)
        assert crm_alert(env.service.feed("admin")).instance.lead_id == "lead-1"
        assert env.live.calls == 0

    async def test_lead_failure_propagates(self, env):
        env.crm.error = SnapshotFetchError("crm_leads", "timeout")
        with pytest.raises(SnapshotFetchError):
            await env.service.run_now()


class TestLifecycle:
    async def test_mark_viewed_then_resolve(self, env):
        await env.service.refresh()
        alert_id = crm_alert(env.service.feed("admin")).id

        await env.service.mark_viewed(alert_id)
        assert crm_alert(env.service.feed("admin")).state == "vista"
        assert env.service.feed("admin").pending_count == 1

        await env.service.resolve(alert_id, actor="Marta")
        stored = await env.store.get_instance(alert_id)
        assert stored.state == "resuelta"
        assert stored.resolved_by == "Marta"
        assert stored.resolved_at == NOW

    async def test_repeated_view_is_rejected(self, env):
        await env.service.refresh()
        alert_id = crm_alert(env.service.feed("admin")).id
        await env.service.mark_viewed(alert_id)

        with pytest.raises(AlertActionError) as exc_info:
            await env.service.mark_viewed(alert_id)
        assert exc_info.value.not_found is False

    async def test_discard_removes_from_feed(self, env):
        await env.service.refresh()
        alert_id = crm_alert(env.service.feed("admin")).id
        await env.service.discard(alert_id)
        assert ids(env.service.feed("admin")) == ["stock_cero__global"]

    async def test_unknown_instance(self, env):
        with pytest.raises(AlertActionError) as exc_info:
            await env.service.resolve("missing")
        assert exc_info.value.not_found is True


class TestLiveDismissals:
    async def test_dismiss_hides_immediately(self, env):
        await env.service.refresh()
        env.service.dismiss_live("stock_cero__global")
        assert "stock_cero__global" not in ids(env.service.feed("admin"))

        assert env.service.undismiss_live("stock_cero__global") is True
        assert "stock_cero__global" in ids(env.service.feed("admin"))


class TestTriggers:
    async def test_list_includes_live_defaults(self, env):
        types = {d.trigger_type for d in await env.service.list_triggers()}
        assert "seguimiento_negociacion" in types
        assert set(LIVE_DEFAULTS) <= types

    async def test_editing_live_default_materializes_it(self, env):
        updated = await env.service.update_trigger("stock_cero", active=False)
        assert updated.active is False
        assert updated.target_roles == ["admin", "compras"]

        await env.service.refresh()
        assert "stock_cero__global" not in ids(env.service.feed("admin"))

    async def test_edit_stored_definition(self, env):
        updated = await env.service.update_trigger("seguimiento_negociacion", threshold_days=60)
        assert updated.threshold_days == 60

    async def test_unknown_trigger(self, env):
        with pytest.raises(AlertActionError) as exc_info:
            await env.service.update_trigger("no_such_trigger", active=False)
        assert exc_info.value.not_found is True
