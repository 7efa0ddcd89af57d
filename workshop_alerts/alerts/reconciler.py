"""
AlertReconciler — приводит alert_instances в соответствие с текущими данными.

Для каждого активного типа триггера:
1. evaluator → лиды, для которых условие выполняется сейчас
2. открытые (pendiente/vista) инстансы этого типа из БД
3. новый лид → INSERT pendiente
4. лид больше не срабатывает → DELETE (самоочистка)
5. лид всё ещё срабатывает → не трогаем (текст не обновляется)

Повторный прогон на тех же данных даёт {created: 0, removed: 0}.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Awaitable, Callable

from loguru import logger

from workshop_alerts.alerts.evaluators import DEFAULT_THRESHOLD_DAYS, EVALUATORS
from workshop_alerts.alerts.models import AlertInstance, CrmSnapshot, ReconcileResult, TriggerDefinition

if TYPE_CHECKING:
    from workshop_alerts.alerts.storage import AlertStore


class AlertReconciler:
    """Create/remove diff для персистентных CRM-алертов."""

    def __init__(
        self,
        store: AlertStore,
        load_snapshot: Callable[[], Awaitable[CrmSnapshot]],
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._load_snapshot = load_snapshot
        self._clock = clock

    async def run(self) -> ReconcileResult:
        """
        Полный проход: определения → снимок → reconcile.

        Ошибка загрузки определений или лидов пробрасывается наверх.
        """
        definitions = await self._store.list_active_trigger_definitions()
        if not definitions:
            logger.debug("Reconcile: no active trigger definitions")
            return ReconcileResult()

        snapshot = await self._load_snapshot()
        return await self.reconcile(definitions, snapshot)

    async def reconcile(
        self,
        definitions: list[TriggerDefinition],
        snapshot: CrmSnapshot,
    ) -> ReconcileResult:
        now = self._clock()
        runnable = []
        for definition in definitions:
            if not definition.active:
                continue
            if definition.trigger_type not in EVALUATORS:
                logger.debug(f"Reconcile: no evaluator for {definition.trigger_type}, skipped")
                continue
            runnable.append(definition)

        results = await asyncio.gather(
            *[self._reconcile_type(d, snapshot, now) for d in runnable],
            return_exceptions=True,
        )

        total = ReconcileResult()
        for definition, result in zip(runnable, results):
            if isinstance(result, Exception):
                logger.error(f"Reconcile [{definition.trigger_type}] failed: {result}")
                continue
            total = total + result

        logger.info(f"Reconcile done: created={total.created}, removed={total.removed}")
        return total

    async def _reconcile_type(
        self,
        definition: TriggerDefinition,
        snapshot: CrmSnapshot,
        now: datetime,
    ) -> ReconcileResult:
        evaluator = EVALUATORS[definition.trigger_type]
        threshold = definition.threshold_days
        if threshold is None:
            threshold = DEFAULT_THRESHOLD_DAYS

        # Один результат на лид, даже если лид пришёл в снимке дважды
        firing = {}
        for result in evaluator(snapshot, threshold, now):
            firing.setdefault(result.lead.id, result)

        existing = await self._store.list_open_instances(definition.trigger_type)
        existing_leads = {inst.lead_id for inst in existing}

        to_insert = [
            AlertInstance(
                id=uuid.uuid4().hex,
                trigger_type=definition.trigger_type,
                lead_id=lead_id,
                title=result.title,
                description=result.description,
                priority=definition.priority or "media",
                target_roles=list(definition.target_roles or ["admin"]),
                state="pendiente",
                generated_at=now,
            )
            for lead_id, result in firing.items()
            if lead_id not in existing_leads
        ]
        stale_ids = [inst.id for inst in existing if inst.lead_id not in firing]

        created = await self._store.insert_instances(to_insert)
        removed = await self._store.delete_instances(stale_ids)

        if created or removed:
            logger.debug(f"Reconcile [{definition.trigger_type}]: +{created} -{removed}")
        return ReconcileResult(created=created, removed=removed)
