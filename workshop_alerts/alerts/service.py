"""
AlertsService — цикл обновления и пользовательские действия над алертами.

refresh():
1. reconcile CRM-алертов (best-effort, ошибка только логируется)
2. перечитать инстансы из БД
3. пересчитать live-алерты по свежему снимку

Параллельные вызовы refresh() склеиваются в одну задачу.
При ошибке read model остаётся прежним.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

from loguru import logger

from workshop_alerts.alerts.live import LIVE_DEFAULTS, LiveAlertComposer
from workshop_alerts.alerts.models import AlertInstance, LiveAlert, LiveSnapshot, ReconcileResult, TriggerDefinition
from workshop_alerts.alerts.read_model import AlertFeed, build_feed

if TYPE_CHECKING:
    from workshop_alerts.alerts.dismissals import DismissalCache
    from workshop_alerts.alerts.reconciler import AlertReconciler
    from workshop_alerts.alerts.storage import AlertStore


class AlertActionError(Exception):
    """Недопустимое действие над алертом (или алерт не найден)."""

    def __init__(self, message: str, not_found: bool = False) -> None:
        super().__init__(message)
        self.not_found = not_found


@dataclass
class RefreshResult:
    reconcile: ReconcileResult | None
    instances: int
    live: int
    refreshed_at: datetime


class AlertsService:
    """Держит актуальный read model и выполняет действия пользователей."""

    def __init__(
        self,
        store: AlertStore,
        reconciler: AlertReconciler,
        dismissals: DismissalCache,
        load_live_snapshot: Callable[[], Awaitable[LiveSnapshot]],
        admin_role: str = "admin",
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self._dismissals = dismissals
        self._composer = LiveAlertComposer(dismissals)
        self._load_live_snapshot = load_live_snapshot
        self._admin_role = admin_role
        self._clock = clock

        self._instances: list[AlertInstance] = []
        self._live: list[LiveAlert] = []
        self._last_refresh: datetime | None = None
        self._refresh_task: asyncio.Task | None = None

    @property
    def last_refresh(self) -> datetime | None:
        return self._last_refresh

    # =========================================================================
    # Refresh cycle
    # =========================================================================

    async def refresh(self) -> RefreshResult:
        """Один цикл обновления. Если цикл уже идёт, ждём его результат."""
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.create_task(self._do_refresh())
            self._refresh_task = task
        else:
            logger.debug("Refresh already running, joining")
        return await asyncio.shield(task)

    async def _do_refresh(self) -> RefreshResult:
        now = self._clock()

        reconcile: ReconcileResult | None = None
        try:
            reconcile = await self._reconciler.run()
        except Exception as e:
            logger.error(f"Refresh: CRM reconcile failed: {e}")

        try:
            self._instances = await self._store.list_instances()
        except Exception as e:
            logger.error(f"Refresh: loading alert instances failed: {e}")

        try:
            definitions = await self._store.list_trigger_definitions()
            snapshot = await self._load_live_snapshot()
            self._live = self._composer.compose(definitions, snapshot, now)
        except Exception as e:
            logger.error(f"Refresh: live alerts failed: {e}")

        self._last_refresh = now
        logger.info(f"Alerts refreshed: {len(self._instances)} instances, {len(self._live)} live")
        return RefreshResult(
            reconcile=reconcile,
            instances=len(self._instances),
            live=len(self._live),
            refreshed_at=now,
        )

    async def run_now(self) -> ReconcileResult:
        """Ручной запуск reconcile. Ошибка загрузки лидов пробрасывается."""
        result = await self._reconciler.run()
        self._instances = await self._store.list_instances()
        return result

    # =========================================================================
    # Read model
    # =========================================================================

    def feed(self, role: str) -> AlertFeed:
        live = [a for a in self._live if not self._dismissals.is_dismissed(a.id)]
        return build_feed(self._instances, live, role, self._admin_role)

    # =========================================================================
    # Instance lifecycle
    # =========================================================================

    async def mark_viewed(self, instance_id: str) -> None:
        await self._transition(instance_id, "vista")

    async def resolve(self, instance_id: str, actor: str | None = None) -> None:
        await self._transition(instance_id, "resuelta", actor=actor)

    async def discard(self, instance_id: str) -> None:
        await self._transition(instance_id, "descartada")

    async def _transition(self, instance_id: str, new_state: str, actor: str | None = None) -> None:
        changed = await self._store.update_instance_state(
            instance_id, new_state, actor=actor, at=self._clock(),
        )
        if not changed:
            current = await self._store.get_instance(instance_id)
            if current is None:
                raise AlertActionError(f"Alert {instance_id} not found", not_found=True)
            raise AlertActionError(f"Alert {instance_id} is {current.state}, cannot move to {new_state}")

        logger.info(f"Alert {instance_id} → {new_state}" + (f" by {actor}" if actor else ""))
        self._instances = await self._store.list_instances()

    # =========================================================================
    # Live dismissals
    # =========================================================================

    def dismiss_live(self, alert_id: str) -> None:
        self._dismissals.dismiss(alert_id)

    def undismiss_live(self, alert_id: str) -> bool:
        return self._dismissals.undismiss(alert_id)

    # =========================================================================
    # Trigger definitions
    # =========================================================================

    async def list_triggers(self) -> list[TriggerDefinition]:
        """Определения из БД + live-дефолты, которых там ещё нет."""
        stored = await self._store.list_trigger_definitions()
        known = {d.trigger_type for d in stored}
        defaults = [
            replace(d, target_roles=list(d.target_roles))
            for t, d in LIVE_DEFAULTS.items()
            if t not in known
        ]
        return stored + defaults

    async def update_trigger(self, trigger_type: str, **changes) -> TriggerDefinition:
        """
        Редактирование определения админом.

        Live-тип без строки в БД сначала материализуется из дефолта.
        """
        existing = await self._store.get_trigger_definition(trigger_type)
        if existing is None:
            default = LIVE_DEFAULTS.get(trigger_type)
            if default is None:
                raise AlertActionError(f"Unknown trigger type: {trigger_type}", not_found=True)
            await self._store.upsert_trigger_definition(replace(default, target_roles=list(default.target_roles)))

        await self._store.update_trigger_definition(trigger_type, **changes)
        updated = await self._store.get_trigger_definition(trigger_type)
        logger.info(f"Trigger {trigger_type} updated: {', '.join(sorted(changes))}")
        return updated
