"""Tests for the HTTP API (httpx ASGITransport against the FastAPI app)."""

from types import SimpleNamespace

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from workshop_alerts.alerts.models import CrmSnapshot, LiveSnapshot
from workshop_alerts.alerts.reconciler import AlertReconciler
from workshop_alerts.alerts.service import AlertsService
from workshop_alerts.api import create_app
from workshop_alerts.records import ProductionProject, StockItem
from workshop_alerts.sources.base import SnapshotFetchError
from workshop_alerts.workshop_status import WorkshopStatusCache

from tests.conftest import NOW, crm_definition, days_ago, make_lead


class CrmLoader:
    def __init__(self) -> None:
        self.error: Exception | None = None

    async def __call__(self) -> CrmSnapshot:
        if self.error:
            raise self.error
        return CrmSnapshot(leads=[make_lead("lead-1", status="Negociación", updated_at=days_ago(40))])


async def load_live() -> LiveSnapshot:
    return LiveSnapshot(stock=[StockItem(reference="R1", description="Vinilo", quantity=0, min_stock=5)])


async def load_projects():
    return [ProductionProject(id="p1", client_name="Ana", status="IN_PROGRESS")]


def make_client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def api(store, dismissals):
    await store.upsert_trigger_definition(crm_definition("seguimiento_negociacion", 30))
    crm = CrmLoader()
    service = AlertsService(
        store,
        AlertReconciler(store, crm, clock=lambda: NOW),
        dismissals,
        load_live,
        clock=lambda: NOW,
    )
    app = create_app(service, WorkshopStatusCache(load_projects), api_secret="")
    async with make_client(app) as client:
        yield SimpleNamespace(client=client, service=service, crm=crm)


async def crm_alert_id(client: AsyncClient) -> str:
    response = await client.get("/alerts", params={"module": "crm"}, headers={"X-User-Role": "admin"})
    [alert] = response.json()["alerts"]
    return alert["id"]


class TestFeed:
    async def test_health(self, api):
        response = await api.client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_feed_after_refresh(self, api):
        refresh = await api.client.post("/alerts/refresh")
        assert refresh.status_code == 200
        assert refresh.json()["created"] == 1
        assert refresh.json()["live"] == 1

        response = await api.client.get("/alerts", headers={"X-User-Role": "admin"})
        body = response.json()
        assert [a["kind"] for a in body["alerts"]] == ["live", "crm"]
        assert body["pending_count"] == 2
        assert body["count_by_module"]["stock"] == 1
        assert body["count_by_module"]["crm"] == 1
        assert body["alerts"][0]["meta"] == {"count": 1}

    async def test_role_header(self, api):
        await api.client.post("/alerts/refresh")
        response = await api.client.get("/alerts", headers={"X-User-Role": "compras"})
        assert [a["id"] for a in response.json()["alerts"]] == ["stock_cero__global"]

    async def test_state_filter(self, api):
        await api.client.post("/alerts/refresh")
        alert_id = await crm_alert_id(api.client)
        await api.client.post(f"/alerts/instances/{alert_id}/viewed")

        response = await api.client.get("/alerts", params={"state": "vista"})
        assert [a["id"] for a in response.json()["alerts"]] == [alert_id]

    async def test_viewed_alert_leaves_badges(self, api):
        await api.client.post("/alerts/refresh")
        alert_id = await crm_alert_id(api.client)
        await api.client.post(f"/alerts/instances/{alert_id}/viewed")

        body = (await api.client.get("/alerts", headers={"X-User-Role": "admin"})).json()
        assert len(body["alerts"]) == 2
        assert body["pending_count"] == 1
        assert body["count_by_module"]["total"] == 1
        assert body["count_by_module"]["crm"] == 0
        assert body["count_by_module"]["stock"] == 1

    async def test_unknown_module(self, api):
        response = await api.client.get("/alerts", params={"module": "rrhh"})
        assert response.status_code == 400


class TestRunNow:
    async def test_returns_delta(self, api):
        response = await api.client.post("/alerts/run")
        assert response.json() == {"created": 1, "removed": 0}

    async def test_lead_failure_is_bad_gateway(self, api):
        api.crm.error = SnapshotFetchError("crm_leads", "HTTP 500")
        response = await api.client.post("/alerts/run")
        assert response.status_code == 502


class TestInstanceActions:
    async def test_view_twice_conflicts(self, api):
        await api.client.post("/alerts/run")
        alert_id = await crm_alert_id(api.client)

        assert (await api.client.post(f"/alerts/instances/{alert_id}/viewed")).status_code == 200
        assert (await api.client.post(f"/alerts/instances/{alert_id}/viewed")).status_code == 409

    async def test_resolve_records_user(self, api):
        await api.client.post("/alerts/run")
        alert_id = await crm_alert_id(api.client)

        response = await api.client.post(
            f"/alerts/instances/{alert_id}/resolve", headers={"X-User-Name": "Marta"},
        )
        assert response.status_code == 200
        [alert] = (await api.client.get("/alerts", params={"module": "crm"})).json()["alerts"]
        assert alert["state"] == "resuelta"
        assert alert["resolved_by"] == "Marta"

    async def test_discard_unknown_is_not_found(self, api):
        response = await api.client.post("/alerts/instances/missing/discard")
        assert response.status_code == 404


class TestLiveDismiss:
    async def test_dismiss_and_restore(self, api):
        await api.client.post("/alerts/refresh")
        await api.client.post("/alerts/live/stock_cero__global/dismiss")
        body = (await api.client.get("/alerts", params={"module": "stock"})).json()
        assert body["alerts"] == []

        response = await api.client.delete("/alerts/live/stock_cero__global/dismiss")
        assert response.json()["restored"] is True
        body = (await api.client.get("/alerts", params={"module": "stock"})).json()
        assert [a["id"] for a in body["alerts"]] == ["stock_cero__global"]


class TestTriggers:
    async def test_list(self, api):
        response = await api.client.get("/triggers")
        types = {d["trigger_type"] for d in response.json()}
        assert {"seguimiento_negociacion", "stock_cero", "presupuesto_alto_perdido"} <= types

    async def test_patch(self, api):
        response = await api.client.patch(
            "/triggers/seguimiento_negociacion",
            json={"threshold_days": 45, "target_roles": ["admin", "encargado"]},
        )
        assert response.status_code == 200
        assert response.json()["threshold_days"] == 45
        assert response.json()["target_roles"] == ["admin", "encargado"]

    async def test_patch_empty_body(self, api):
        response = await api.client.patch("/triggers/seguimiento_negociacion", json={})
        assert response.status_code == 400

    async def test_patch_unknown(self, api):
        response = await api.client.patch("/triggers/no_such_trigger", json={"active": False})
        assert response.status_code == 404

    async def test_patch_rejects_bad_priority(self, api):
        response = await api.client.patch("/triggers/stock_cero", json={"priority": "urgente"})
        assert response.status_code == 422


class TestWorkshopStatus:
    async def test_lookup_and_invalidate(self, api):
        response = await api.client.get("/workshop-status/ana")
        assert response.json() == {"client_name": "ana", "status": "IN_PROGRESS"}
        assert (await api.client.delete("/workshop-status/cache")).status_code == 200


class TestAuth:
    async def test_secret_is_enforced_when_configured(self, store, dismissals):
        service = AlertsService(
            store,
            AlertReconciler(store, CrmLoader(), clock=lambda: NOW),
            dismissals,
            load_live,
        )
        app = create_app(service, WorkshopStatusCache(load_projects), api_secret="s3cret")
        async with make_client(app) as client:
            assert (await client.get("/health")).status_code == 200
            assert (await client.get("/alerts")).status_code == 401
            assert (await client.get("/alerts", headers={"Authorization": "Bearer wrong"})).status_code == 401
            ok = await client.get("/alerts", headers={"Authorization": "Bearer s3cret"})
            assert ok.status_code == 200
