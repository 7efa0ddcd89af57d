"""
Sources — снимки бизнес-данных для движка алертов.

CRM-путь: лиды читаются строго (ошибка → наверх), сметы с fallback.
Live-путь: все пять источников параллельно, каждый с fallback на кэш.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path

from workshop_alerts.alerts.models import CrmSnapshot, LiveSnapshot
from workshop_alerts.records import Lead, ProductionProject, ProductionTask, PurchaseItem, Quote, StockItem
from workshop_alerts.sources.backend import BackendClient
from workshop_alerts.sources.base import SnapshotFetchError, SnapshotSource, load_with_fallback


@dataclass
class SnapshotSources:
    leads: SnapshotSource[Lead]
    quotes: SnapshotSource[Quote]
    projects: SnapshotSource[ProductionProject]
    tasks: SnapshotSource[ProductionTask]
    purchases: SnapshotSource[PurchaseItem]
    stock: SnapshotSource[StockItem]


def build_sources(backend: BackendClient, cache_dir: Path) -> SnapshotSources:
    return SnapshotSources(
        leads=SnapshotSource(
            "crm_leads", backend, Lead.from_row, cache_dir,
            limit=2000,
        ),
        quotes=SnapshotSource(
            "quotes", backend, Quote.from_row, cache_dir,
            columns="id,quote_number,client_name,total,status,created_at,lead_id",
            filters={"status": "not.in.(APPROVED,REJECTED)"},
            limit=500,
        ),
        projects=SnapshotSource(
            "production_projects", backend, ProductionProject.from_row, cache_dir,
            columns=(
                "id,quote_number,client_name,vehicle_model,status,start_date,end_date,"
                "requires_materials,materials_ready,requires_design,design_ready"
            ),
            filters={"status": "neq.COMPLETED"},
            limit=500,
        ),
        tasks=SnapshotSource(
            "production_tasks", backend, ProductionTask.from_row, cache_dir,
            columns="id,project_id,task_name,status,blocked_reason",
            filters={"status": "eq.BLOCKED"},
            limit=500,
        ),
        purchases=SnapshotSource(
            "purchase_items", backend, PurchaseItem.from_row, cache_dir,
            columns="id,material_name,status,priority,ordered_at,provider,project_number",
            filters={"status": "in.(PENDING,ORDERED)"},
            limit=500,
        ),
        stock=SnapshotSource(
            "stock_items", backend, StockItem.from_row, cache_dir,
            limit=2000,
        ),
    )


# Статусы проектов, которые считаются "в мастерской"
WORKSHOP_STATUSES = ("WAITING", "SCHEDULED", "IN_PROGRESS", "ON_HOLD")


async def fetch_workshop_projects(backend: BackendClient) -> list[ProductionProject]:
    """Проекты в мастерской (для WorkshopStatusCache). Без кэша на диске."""
    rows = await backend.select(
        "production_projects",
        columns="id,client_name,status",
        filters={"status": f"in.({','.join(WORKSHOP_STATUSES)})"},
        limit=500,
    )
    return [p for p in (ProductionProject.from_row(r) for r in rows) if p is not None]


async def load_crm_snapshot(sources: SnapshotSources) -> CrmSnapshot:
    """Лиды читаются без fallback: ошибка уходит вызывающему."""
    leads = await sources.leads.fetch()
    quotes = await load_with_fallback(sources.quotes)
    return CrmSnapshot(leads=leads, quotes=quotes)


async def load_live_snapshot(sources: SnapshotSources) -> LiveSnapshot:
    projects, tasks, purchases, stock, quotes = await asyncio.gather(
        load_with_fallback(sources.projects),
        load_with_fallback(sources.tasks),
        load_with_fallback(sources.purchases),
        load_with_fallback(sources.stock),
        load_with_fallback(sources.quotes),
    )
    return LiveSnapshot(projects=projects, tasks=tasks, purchases=purchases, stock=stock, quotes=quotes)


__all__ = [
    "BackendClient",
    "SnapshotFetchError",
    "SnapshotSource",
    "SnapshotSources",
    "build_sources",
    "fetch_workshop_projects",
    "load_crm_snapshot",
    "load_live_snapshot",
    "load_with_fallback",
]
