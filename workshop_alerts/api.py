"""
Workshop Alerts HTTP API.

Авторизация: Bearer {API_SECRET}, если секрет задан. /health всегда открыт.
Роль пользователя: заголовок X-User-Role, имя: X-User-Name.
"""

import hmac
from typing import Any, Literal

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

from workshop_alerts.alerts.models import MODULES, EphemeralAlert, PersistentAlert, TriggerDefinition, UnifiedAlert
from workshop_alerts.alerts.service import AlertActionError, AlertsService
from workshop_alerts.config import settings
from workshop_alerts.sources.base import SnapshotFetchError
from workshop_alerts.workshop_status import WorkshopStatusCache


def _verify_secret(authorization: str, secret: str) -> None:
    """Проверка Bearer-токена, constant-time сравнение."""
    if not secret:
        return
    expected = f"Bearer {secret}"
    if not hmac.compare_digest(authorization.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _alert_to_dict(alert: UnifiedAlert) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": alert.id,
        "kind": alert.kind,
        "module": alert.module,
        "priority": alert.priority,
        "state": alert.state,
        "title": alert.title,
        "description": alert.description,
        "target_roles": alert.target_roles,
        "nav_path": alert.nav_path,
    }
    if isinstance(alert, PersistentAlert):
        inst = alert.instance
        data.update(
            trigger_type=inst.trigger_type,
            lead_id=inst.lead_id,
            generated_at=inst.generated_at.isoformat(),
            resolved_by=inst.resolved_by,
            resolved_at=inst.resolved_at.isoformat() if inst.resolved_at else None,
        )
    elif isinstance(alert, EphemeralAlert):
        data.update(trigger_type=alert.alert.trigger_type, meta=alert.alert.meta)
    return data


def _definition_to_dict(definition: TriggerDefinition) -> dict[str, Any]:
    return {
        "trigger_type": definition.trigger_type,
        "name": definition.name,
        "description": definition.description,
        "module": definition.module,
        "active": definition.active,
        "threshold_days": definition.threshold_days,
        "priority": definition.priority,
        "target_roles": definition.target_roles,
        "updated_at": definition.updated_at.isoformat() if definition.updated_at else None,
    }


class PatchTrigger(BaseModel):
    """Partial update определения триггера."""

    name: str | None = None
    description: str | None = None
    active: bool | None = None
    threshold_days: int | None = None
    priority: Literal["alta", "media", "baja"] | None = None
    target_roles: list[str] | None = None


def create_app(
    service: AlertsService,
    workshop_status: WorkshopStatusCache,
    api_secret: str | None = None,
) -> FastAPI:
    """Создать FastAPI-приложение движка алертов."""
    app = FastAPI(title="Workshop Alerts API", docs_url=None, redoc_url=None)
    secret = settings.api_secret if api_secret is None else api_secret

    @app.get("/health")
    async def health() -> dict[str, Any]:
        last = service.last_refresh
        return {"status": "ok", "last_refresh": last.isoformat() if last else None}

    @app.get("/alerts")
    async def get_alerts(
        module: str | None = None,
        state: str | None = None,
        authorization: str = Header(""),
        x_user_role: str | None = Header(None),
    ) -> dict[str, Any]:
        _verify_secret(authorization, secret)
        if module is not None and module not in MODULES:
            raise HTTPException(status_code=400, detail=f"Unknown module: {module}")

        feed = service.feed(x_user_role or settings.default_role)
        alerts = feed.alerts_for_module(module) if module else feed.alerts
        if state:
            alerts = [a for a in alerts if a.state == state]

        return {
            "alerts": [_alert_to_dict(a) for a in alerts],
            "pending_count": feed.pending_count,
            "count_by_module": feed.count_by_module,
        }

    @app.post("/alerts/refresh")
    async def refresh(authorization: str = Header("")) -> dict[str, Any]:
        _verify_secret(authorization, secret)
        result = await service.refresh()
        return {
            "instances": result.instances,
            "live": result.live,
            "created": result.reconcile.created if result.reconcile else None,
            "removed": result.reconcile.removed if result.reconcile else None,
            "refreshed_at": result.refreshed_at.isoformat(),
        }

    @app.post("/alerts/run")
    async def run_now(authorization: str = Header("")) -> dict[str, int]:
        _verify_secret(authorization, secret)
        try:
            result = await service.run_now()
        except SnapshotFetchError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        return {"created": result.created, "removed": result.removed}

    async def _instance_action(action, instance_id: str, **kwargs) -> dict[str, str]:
        try:
            await action(instance_id, **kwargs)
        except AlertActionError as e:
            raise HTTPException(status_code=404 if e.not_found else 409, detail=str(e)) from e
        return {"status": "ok"}

    @app.post("/alerts/instances/{instance_id}/viewed")
    async def mark_viewed(instance_id: str, authorization: str = Header("")) -> dict[str, str]:
        _verify_secret(authorization, secret)
        return await _instance_action(service.mark_viewed, instance_id)

    @app.post("/alerts/instances/{instance_id}/resolve")
    async def resolve(
        instance_id: str,
        authorization: str = Header(""),
        x_user_name: str | None = Header(None),
    ) -> dict[str, str]:
        _verify_secret(authorization, secret)
        return await _instance_action(service.resolve, instance_id, actor=x_user_name)

    @app.post("/alerts/instances/{instance_id}/discard")
    async def discard(instance_id: str, authorization: str = Header("")) -> dict[str, str]:
        _verify_secret(authorization, secret)
        return await _instance_action(service.discard, instance_id)

    @app.post("/alerts/live/{alert_id}/dismiss")
    async def dismiss_live(alert_id: str, authorization: str = Header("")) -> dict[str, str]:
        _verify_secret(authorization, secret)
        service.dismiss_live(alert_id)
        return {"status": "ok"}

    @app.delete("/alerts/live/{alert_id}/dismiss")
    async def undismiss_live(alert_id: str, authorization: str = Header("")) -> dict[str, Any]:
        _verify_secret(authorization, secret)
        return {"status": "ok", "restored": service.undismiss_live(alert_id)}

    @app.get("/triggers")
    async def list_triggers(authorization: str = Header("")) -> list[dict[str, Any]]:
        _verify_secret(authorization, secret)
        return [_definition_to_dict(d) for d in await service.list_triggers()]

    @app.patch("/triggers/{trigger_type}")
    async def patch_trigger(
        trigger_type: str,
        body: PatchTrigger,
        authorization: str = Header(""),
    ) -> dict[str, Any]:
        _verify_secret(authorization, secret)

        updates = body.model_dump(exclude_none=True)
        if not updates:
            raise HTTPException(status_code=400, detail="No fields to update")

        try:
            definition = await service.update_trigger(trigger_type, **updates)
        except AlertActionError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return _definition_to_dict(definition)

    @app.get("/workshop-status/{client_name}")
    async def get_workshop_status(client_name: str, authorization: str = Header("")) -> dict[str, Any]:
        _verify_secret(authorization, secret)
        try:
            status = await workshop_status.get(client_name)
        except SnapshotFetchError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        return {"client_name": client_name, "status": status}

    @app.delete("/workshop-status/cache")
    async def invalidate_workshop_status(authorization: str = Header("")) -> dict[str, str]:
        _verify_secret(authorization, secret)
        workshop_status.invalidate()
        return {"status": "ok"}

    return app
