"""
CRM evaluators — чистые функции для персистентного пути.

Каждый evaluator: (snapshot, threshold_days, now) → list[TriggerResult].
Лид с пустой/битой датой просто не попадает в результат.
"""

from datetime import datetime
from typing import Callable

from workshop_alerts.alerts.dates import days_since, days_until, is_past, plural
from workshop_alerts.alerts.models import CrmSnapshot, TriggerResult

# Лиды в этих статусах не участвуют в sin_actividad / fecha_accion_vencida
TERMINAL_STATES: frozenset[str] = frozenset({"Entregado", "Perdido", "Aprobado"})

# Закрытые статусы сметы
CLOSED_QUOTE_STATES: frozenset[str] = frozenset({"APPROVED", "REJECTED"})

DEFAULT_THRESHOLD_DAYS = 30

Evaluator = Callable[[CrmSnapshot, int, datetime], list[TriggerResult]]


def eval_unanswered_quote(snapshot: CrmSnapshot, threshold: int, now: datetime) -> list[TriggerResult]:
    """presupuesto_caducando: открытая смета старше порога."""
    # lead_id → возраст самой старой открытой сметы
    oldest: dict[str, int] = {}
    for quote in snapshot.quotes:
        if not quote.lead_id or quote.status in CLOSED_QUOTE_STATES:
            continue
        age = days_since(quote.created_at, now)
        if age is None or age < threshold:
            continue
        if age > oldest.get(quote.lead_id, -1):
            oldest[quote.lead_id] = age

    return [
        TriggerResult(
            lead=lead,
            title=f"📄 Presupuesto sin respuesta — {lead.client}",
            description=f"El presupuesto lleva {oldest[lead.id]}+ días sin aprobación ni rechazo",
        )
        for lead in snapshot.leads
        if lead.id in oldest
    ]


def eval_quality_call(snapshot: CrmSnapshot, threshold: int, now: datetime) -> list[TriggerResult]:
    """llamada_calidad: окно [t, 4t] дней после выдачи, чтобы алерт не висел вечно."""
    results = []
    for lead in snapshot.leads:
        if lead.status != "Entregado":
            continue
        days = days_since(lead.delivery_date, now)
        if days is None or not (threshold <= days <= threshold * 4):
            continue
        vehicle = f" del {lead.vehicle}" if lead.vehicle else ""
        results.append(TriggerResult(
            lead=lead,
            title=f"📞 Control de calidad — {lead.client}",
            description=f"Han pasado {days} días desde la entrega{vehicle}",
        ))
    return results


def eval_scheduled_review(snapshot: CrmSnapshot, threshold: int, now: datetime) -> list[TriggerResult]:
    """revision_programada: действие запланировано в ближайшие t дней."""
    results = []
    for lead in snapshot.leads:
        if not lead.next_action:
            continue
        remaining = days_until(lead.next_action_date, now)
        if remaining is None or not (0 <= remaining <= threshold):
            continue
        if remaining == 0:
            description = f"Hoy: {lead.next_action}"
        else:
            description = (
                f"En {remaining} {plural(remaining, 'día')}: "
                f"{lead.next_action} ({lead.next_action_date})"
            )
        results.append(TriggerResult(
            lead=lead,
            title=f"🔧 Revisión próxima — {lead.client}",
            description=description,
        ))
    return results


def eval_inactivity(snapshot: CrmSnapshot, threshold: int, now: datetime) -> list[TriggerResult]:
    """sin_actividad: незакрытый лид без изменений t+ дней."""
    results = []
    for lead in snapshot.leads:
        if (lead.status or "") in TERMINAL_STATES:
            continue
        days = days_since(lead.updated_at, now)
        if days is None or days < threshold:
            continue
        results.append(TriggerResult(
            lead=lead,
            title=f"😴 Sin actividad — {lead.client}",
            description=f"Lleva {days} días sin cambios (estado: {lead.status or '—'})",
        ))
    return results


def eval_overdue_action(snapshot: CrmSnapshot, threshold: int, now: datetime) -> list[TriggerResult]:
    """fecha_accion_vencida: дата действия в прошлом. Порог не используется."""
    results = []
    for lead in snapshot.leads:
        if not lead.next_action or (lead.status or "") in TERMINAL_STATES:
            continue
        if not is_past(lead.next_action_date, now):
            continue
        overdue = abs(days_until(lead.next_action_date, now) or 0)
        results.append(TriggerResult(
            lead=lead,
            title=f"⏰ Acción vencida — {lead.client}",
            description=f'"{lead.next_action}" — vencida hace {overdue} {plural(overdue, "día")}',
        ))
    return results


def eval_negotiation_followup(snapshot: CrmSnapshot, threshold: int, now: datetime) -> list[TriggerResult]:
    """seguimiento_negociacion: лид в переговорах без обновлений t+ дней."""
    results = []
    for lead in snapshot.leads:
        if lead.status != "Negociación":
            continue
        days = days_since(lead.updated_at, now)
        if days is None or days < threshold:
            continue
        results.append(TriggerResult(
            lead=lead,
            title=f"🤝 Seguimiento en negociación — {lead.client}",
            description=f"Lleva {days} días en negociación sin actualización registrada",
        ))
    return results


EVALUATORS: dict[str, Evaluator] = {
    "presupuesto_caducando": eval_unanswered_quote,
    "llamada_calidad": eval_quality_call,
    "revision_programada": eval_scheduled_review,
    "sin_actividad": eval_inactivity,
    "fecha_accion_vencida": eval_overdue_action,
    "seguimiento_negociacion": eval_negotiation_followup,
}

