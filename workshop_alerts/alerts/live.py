"""
Live Alerts — вычисляемые алерты по производству, закупкам, складу и сметам.

Ничего не пишется в БД: на каждом refresh список строится заново.
id алерта детерминирован (trigger_type__subject), поэтому DismissalCache
продолжает работать между обновлениями.

Конфигурация: строка из alert_settings, если есть, иначе встроенный
дефолт (всегда активен).
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Iterable

from loguru import logger

from workshop_alerts.alerts.dates import days_since, is_past, plural
from workshop_alerts.alerts.models import LiveAlert, LiveSnapshot, TriggerDefinition, live_alert_id

if TYPE_CHECKING:
    from workshop_alerts.alerts.dismissals import DismissalCache

_PROD_ROLES = ["admin", "encargado", "encargado_taller"]

LIVE_DEFAULTS: dict[str, TriggerDefinition] = {
    d.trigger_type: d
    for d in (
        TriggerDefinition("proyecto_atrasado", "Proyecto atrasado", module="produccion",
                          threshold_days=0, priority="alta", target_roles=_PROD_ROLES),
        TriggerDefinition("proyecto_sin_inicio", "Proyecto sin iniciar", module="produccion",
                          threshold_days=3, priority="media", target_roles=_PROD_ROLES),
        TriggerDefinition("tarea_bloqueada", "Tareas bloqueadas", module="produccion",
                          threshold_days=0, priority="alta", target_roles=_PROD_ROLES),
        TriggerDefinition("materiales_pendientes", "Materiales pendientes", module="produccion",
                          threshold_days=0, priority="alta", target_roles=["admin", "encargado", "compras"]),
        TriggerDefinition("diseno_pendiente", "Diseño pendiente", module="produccion",
                          threshold_days=0, priority="media", target_roles=["admin", "encargado"]),
        TriggerDefinition("pedido_urgente_sin_pedir", "Material urgente sin pedir", module="pedidos",
                          threshold_days=0, priority="alta", target_roles=["admin", "encargado", "compras"]),
        TriggerDefinition("pedidos_pendientes_resumen", "Pedidos pendientes", module="pedidos",
                          threshold_days=0, priority="media", target_roles=["admin", "encargado", "compras"]),
        TriggerDefinition("pedido_sin_recibir", "Pedido sin recibir", module="pedidos",
                          threshold_days=10, priority="media", target_roles=["admin", "compras"]),
        TriggerDefinition("stock_bajo", "Stock bajo mínimo", module="stock",
                          threshold_days=0, priority="media", target_roles=["admin", "compras"]),
        TriggerDefinition("stock_cero", "Stock agotado", module="stock",
                          threshold_days=0, priority="alta", target_roles=["admin", "compras"]),
        TriggerDefinition("presupuesto_alto_perdido", "Presupuesto alto sin respuesta", module="presupuestos",
                          threshold_days=14, priority="alta", target_roles=["admin", "encargado", "compras"]),
    )
}

# Сметы от этой суммы (€) считаются крупными
HIGH_VALUE_QUOTE = 5000

# Сколько имён показывать в агрегированном алерте
SUMMARY_NAMES = 3

URGENT_PURCHASE_PRIORITY = 6


def resolve_trigger(trigger_type: str, definitions: Iterable[TriggerDefinition]) -> TriggerDefinition | None:
    """
    Эффективная конфигурация live-триггера.

    Строка из БД имеет приоритет (None если выключена),
    иначе встроенный дефолт. Неизвестный тип → None.
    """
    for definition in definitions:
        if definition.trigger_type == trigger_type:
            if not definition.active:
                return None
            if definition.threshold_days is None and trigger_type in LIVE_DEFAULTS:
                return replace(definition, threshold_days=LIVE_DEFAULTS[trigger_type].threshold_days)
            return definition

    default = LIVE_DEFAULTS.get(trigger_type)
    if default is None:
        return None
    return replace(default, active=True, target_roles=list(default.target_roles))


def format_eur(value: float) -> str:
    """Сумма в формате es-ES: 12.500,00 € (четырёхзначные без разделителя)."""
    sign = "-" if value < 0 else ""
    integer, decimals = f"{abs(value):.2f}".split(".")
    if len(integer) > 4:
        groups = []
        while integer:
            groups.insert(0, integer[-3:])
            integer = integer[:-3]
        integer = ".".join(groups)
    return f"{sign}{integer},{decimals} €"


def _summary(names: list[str]) -> str:
    """'a, b, c y 2 más'."""
    text = ", ".join(n for n in names[:SUMMARY_NAMES] if n)
    if len(names) > SUMMARY_NAMES:
        text += f" y {len(names) - SUMMARY_NAMES} más"
    return text


def _threshold(trigger: TriggerDefinition) -> int:
    return trigger.threshold_days or 0


# =========================================================================
# Production
# =========================================================================


def eval_overdue_projects(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    alerts = []
    for project in snapshot.projects:
        if project.status in ("COMPLETED", "ON_HOLD") or not is_past(project.end_date, now):
            continue
        days = days_since(project.end_date, now) or 0
        vehicle = f" ({project.vehicle_model})" if project.vehicle_model else ""
        if days == 0:
            title = f"⏰ Proyecto termina hoy — {project.client_name}"
            description = f'"{project.quote_number}" termina hoy{vehicle}'
        else:
            title = f"🚨 Proyecto atrasado — {project.client_name}"
            description = f'"{project.quote_number}" lleva {days} {plural(days, "día")} de retraso{vehicle}'
        alerts.append(LiveAlert(
            id=live_alert_id(trigger.trigger_type, project.id),
            trigger_type=trigger.trigger_type,
            module="produccion",
            title=title,
            description=description,
            priority="alta",
            target_roles=trigger.target_roles,
            nav_path="/production",
            meta={"projectId": project.id, "projectName": project.quote_number},
        ))
    return alerts


def eval_stalled_projects(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    alerts = []
    for project in snapshot.projects:
        if project.status not in ("SCHEDULED", "WAITING"):
            continue
        days = days_since(project.start_date, now)
        if days is None or days < _threshold(trigger):
            continue
        alerts.append(LiveAlert(
            id=live_alert_id(trigger.trigger_type, project.id),
            trigger_type=trigger.trigger_type,
            module="produccion",
            title=f"⏳ Proyecto sin iniciar — {project.client_name}",
            description=(
                f'"{project.quote_number}" lleva {days} {plural(days, "día")} '
                f"sin iniciarse (estado: {project.status})"
            ),
            priority=trigger.priority,
            target_roles=trigger.target_roles,
            nav_path="/production",
            meta={"projectId": project.id},
        ))
    return alerts


def eval_blocked_tasks(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    """Один алерт на проект, а не на каждую задачу."""
    by_project: dict[str, int] = {}
    for task in snapshot.tasks:
        if task.status == "BLOCKED":
            by_project[task.project_id] = by_project.get(task.project_id, 0) + 1

    projects = {p.id: p for p in snapshot.projects}
    alerts = []
    for project_id, count in by_project.items():
        project = projects.get(project_id)
        client = project.client_name if project and project.client_name else "Proyecto"
        name = project.quote_number if project and project.quote_number else project_id
        alerts.append(LiveAlert(
            id=live_alert_id(trigger.trigger_type, project_id),
            trigger_type=trigger.trigger_type,
            module="produccion",
            title=f"🔒 Tareas bloqueadas — {client}",
            description=f'{count} {plural(count, "tarea")} {plural(count, "bloqueada")} en "{name}"',
            priority="alta",
            target_roles=trigger.target_roles,
            nav_path="/production",
            meta={"projectId": project_id, "blockedCount": count},
        ))
    return alerts


def eval_missing_materials(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    return [
        LiveAlert(
            id=live_alert_id(trigger.trigger_type, p.id),
            trigger_type=trigger.trigger_type,
            module="produccion",
            title=f"📦 Materiales pendientes — {p.client_name}",
            description=f'El proyecto "{p.quote_number}" está en marcha pero faltan materiales',
            priority="alta",
            target_roles=trigger.target_roles,
            nav_path="/purchases",
            meta={"projectId": p.id},
        )
        for p in snapshot.projects
        if p.status == "IN_PROGRESS" and p.requires_materials and not p.materials_ready
    ]


def eval_missing_design(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    return [
        LiveAlert(
            id=live_alert_id(trigger.trigger_type, p.id),
            trigger_type=trigger.trigger_type,
            module="produccion",
            title=f"🎨 Diseño pendiente — {p.client_name}",
            description=f'El proyecto "{p.quote_number}" está en marcha pero el diseño no está aprobado',
            priority=trigger.priority,
            target_roles=trigger.target_roles,
            nav_path="/production",
            meta={"projectId": p.id},
        )
        for p in snapshot.projects
        if p.status == "IN_PROGRESS" and p.requires_design and not p.design_ready
    ]


# =========================================================================
# Purchases
# =========================================================================


def eval_urgent_purchases(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    """Агрегат: все срочные незаказанные позиции в одном алерте."""
    items = [
        p for p in snapshot.purchases
        if p.status == "PENDING" and p.priority >= URGENT_PURCHASE_PRIORITY
    ]
    if not items:
        return []
    n = len(items)
    return [LiveAlert(
        id=live_alert_id(trigger.trigger_type, "global"),
        trigger_type=trigger.trigger_type,
        module="pedidos",
        title=f"🔴 {n} {plural(n, 'material', 'materiales')} {plural(n, 'urgente')} sin pedir",
        description=_summary([i.material_name for i in items]),
        priority="alta",
        target_roles=trigger.target_roles,
        nav_path="/purchases",
        meta={"count": n},
    )]


def eval_pending_purchases(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    items = [p for p in snapshot.purchases if p.status == "PENDING"]
    if not items:
        return []
    n = len(items)
    return [LiveAlert(
        id=live_alert_id(trigger.trigger_type, "global"),
        trigger_type=trigger.trigger_type,
        module="pedidos",
        title=f"📋 {n} {plural(n, 'pedido')} {plural(n, 'pendiente')} de tramitar",
        description=_summary([i.material_name for i in items]),
        priority=trigger.priority,
        target_roles=trigger.target_roles,
        nav_path="/purchases",
        meta={"count": n},
    )]


def eval_undelivered_orders(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    alerts = []
    for item in snapshot.purchases:
        if item.status != "ORDERED":
            continue
        days = days_since(item.ordered_at, now)
        if days is None or days < _threshold(trigger):
            continue
        provider = f" ({item.provider})" if item.provider else ""
        project = f" · Proyecto {item.project_number}" if item.project_number else ""
        alerts.append(LiveAlert(
            id=live_alert_id(trigger.trigger_type, item.id),
            trigger_type=trigger.trigger_type,
            module="pedidos",
            title=f"📬 Pedido sin recibir — {item.material_name}",
            description=f"Pedido hace {days} días{provider}{project}",
            priority=trigger.priority,
            target_roles=trigger.target_roles,
            nav_path="/purchases",
            meta={"purchaseId": item.id},
        ))
    return alerts


# =========================================================================
# Stock
# =========================================================================


def eval_low_stock(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    """Ниже минимума, но не ноль (ноль обрабатывает stock_cero)."""
    items = [
        s for s in snapshot.stock
        if s.min_stock is not None and 0 < s.quantity < s.min_stock
    ]
    if not items:
        return []
    n = len(items)
    return [LiveAlert(
        id=live_alert_id(trigger.trigger_type, "global"),
        trigger_type=trigger.trigger_type,
        module="stock",
        title=f"📉 {n} {plural(n, 'artículo')} por debajo del mínimo",
        description=_summary([s.display_name for s in items]),
        priority=trigger.priority,
        target_roles=trigger.target_roles,
        nav_path="/purchases",
        meta={"count": n},
    )]


def eval_zero_stock(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    items = [s for s in snapshot.stock if s.quantity == 0]
    if not items:
        return []
    n = len(items)
    return [LiveAlert(
        id=live_alert_id(trigger.trigger_type, "global"),
        trigger_type=trigger.trigger_type,
        module="stock",
        title=f"❌ {n} {plural(n, 'artículo')} {plural(n, 'agotado')}",
        description=_summary([s.display_name for s in items]),
        priority="alta",
        target_roles=trigger.target_roles,
        nav_path="/purchases",
        meta={"count": n},
    )]


# =========================================================================
# Quotes
# =========================================================================


def eval_stale_high_value_quotes(snapshot: LiveSnapshot, trigger: TriggerDefinition, now: datetime) -> list[LiveAlert]:
    alerts = []
    for quote in snapshot.quotes:
        if quote.status in ("APPROVED", "REJECTED"):
            continue
        total = quote.total or 0
        if total < HIGH_VALUE_QUOTE:
            continue
        days = days_since(quote.created_at, now)
        if days is None or days < _threshold(trigger):
            continue
        alerts.append(LiveAlert(
            id=live_alert_id(trigger.trigger_type, quote.id),
            trigger_type=trigger.trigger_type,
            module="presupuestos",
            title=f"💰 Presupuesto alto sin respuesta — {quote.client_name or quote.quote_number or quote.id}",
            description=f"Valor: {format_eur(total)} · {days} días en estado {quote.status}",
            priority="alta",
            target_roles=trigger.target_roles,
            nav_path="/quotes",
            meta={"quoteId": quote.id, "total": total},
        ))
    return alerts


LiveEvaluator = Callable[[LiveSnapshot, TriggerDefinition, datetime], list[LiveAlert]]

# Порядок важен: так алерты попадают в ленту при равном приоритете
LIVE_EVALUATORS: dict[str, LiveEvaluator] = {
    "proyecto_atrasado": eval_overdue_projects,
    "proyecto_sin_inicio": eval_stalled_projects,
    "materiales_pendientes": eval_missing_materials,
    "diseno_pendiente": eval_missing_design,
    "tarea_bloqueada": eval_blocked_tasks,
    "pedido_urgente_sin_pedir": eval_urgent_purchases,
    "pedidos_pendientes_resumen": eval_pending_purchases,
    "pedido_sin_recibir": eval_undelivered_orders,
    "stock_bajo": eval_low_stock,
    "stock_cero": eval_zero_stock,
    "presupuesto_alto_perdido": eval_stale_high_value_quotes,
}


class LiveAlertComposer:
    """Строит live-алерты по снимку и фильтрует отклонённые."""

    def __init__(self, dismissals: DismissalCache | None = None) -> None:
        self._dismissals = dismissals

    def compose(
        self,
        definitions: Iterable[TriggerDefinition],
        snapshot: LiveSnapshot,
        now: datetime | None = None,
    ) -> list[LiveAlert]:
        now = now or datetime.now()
        definitions = list(definitions)

        alerts: list[LiveAlert] = []
        for trigger_type, evaluator in LIVE_EVALUATORS.items():
            trigger = resolve_trigger(trigger_type, definitions)
            if trigger is None:
                continue
            alerts.extend(evaluator(snapshot, trigger, now))

        if self._dismissals is None:
            return alerts

        visible = [a for a in alerts if not self._dismissals.is_dismissed(a.id)]
        hidden = len(alerts) - len(visible)
        if hidden:
            logger.debug(f"Live alerts: {hidden} hidden by dismissals")
        return visible
