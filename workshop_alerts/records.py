"""
Records — бизнес-записи, которые читает движок алертов.

Строки приходят из hosted backend (или из локального кэша) как dict.
from_row() терпим к мусору: битые значения превращаются в None,
строка без id отбрасывается (возвращает None). Даты хранятся как есть
(строки): их разбирают evaluators, непарсящаяся дата = нет сигнала.
"""

from dataclasses import dataclass
from typing import Any


def _to_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "si", "sí")
    return bool(value)


@dataclass
class Lead:
    """Лид CRM."""

    id: str
    client: str = ""
    phone: str | None = None
    email: str | None = None
    vehicle: str | None = None
    status: str | None = None
    delivery_date: str | None = None
    next_action: str | None = None
    next_action_date: str | None = None
    updated_at: str | None = None
    amount: float | None = None
    business_line: str | None = None

    @staticmethod
    def from_row(row: dict) -> "Lead | None":
        lead_id = _to_str(row.get("id"))
        if lead_id is None:
            return None
        return Lead(
            id=lead_id,
            client=_to_str(row.get("cliente")) or "",
            phone=_to_str(row.get("telefono")),
            email=_to_str(row.get("email")),
            vehicle=_to_str(row.get("vehiculo")),
            status=_to_str(row.get("estado")),
            delivery_date=_to_str(row.get("fecha_entrega")),
            next_action=_to_str(row.get("proxima_accion")),
            next_action_date=_to_str(row.get("fecha_accion")),
            updated_at=_to_str(row.get("updated_at")),
            amount=_to_float(row.get("importe")),
            business_line=_to_str(row.get("linea_negocio")),
        )


@dataclass
class Quote:
    """Presupuesto."""

    id: str
    quote_number: str | None = None
    client_name: str | None = None
    total: float | None = None
    status: str | None = None
    created_at: str | None = None
    lead_id: str | None = None

    @staticmethod
    def from_row(row: dict) -> "Quote | None":
        quote_id = _to_str(row.get("id"))
        if quote_id is None:
            return None
        return Quote(
            id=quote_id,
            quote_number=_to_str(row.get("quote_number")),
            client_name=_to_str(row.get("client_name")),
            total=_to_float(row.get("total")),
            status=_to_str(row.get("status")),
            created_at=_to_str(row.get("created_at")),
            lead_id=_to_str(row.get("lead_id")),
        )


@dataclass
class ProductionProject:
    """Проект в производстве (мастерская)."""

    id: str
    quote_number: str = ""
    client_name: str = ""
    vehicle_model: str | None = None
    status: str | None = None  # WAITING, SCHEDULED, IN_PROGRESS, COMPLETED, ON_HOLD
    start_date: str | None = None
    end_date: str | None = None
    requires_materials: bool = False
    materials_ready: bool = False
    requires_design: bool = False
    design_ready: bool = False

    @staticmethod
    def from_row(row: dict) -> "ProductionProject | None":
        project_id = _to_str(row.get("id"))
        if project_id is None:
            return None
        return ProductionProject(
            id=project_id,
            quote_number=_to_str(row.get("quote_number")) or "",
            client_name=_to_str(row.get("client_name")) or "",
            vehicle_model=_to_str(row.get("vehicle_model")),
            status=_to_str(row.get("status")),
            start_date=_to_str(row.get("start_date")),
            end_date=_to_str(row.get("end_date")),
            requires_materials=_to_bool(row.get("requires_materials")),
            materials_ready=_to_bool(row.get("materials_ready")),
            requires_design=_to_bool(row.get("requires_design")),
            design_ready=_to_bool(row.get("design_ready")),
        )


@dataclass
class ProductionTask:
    id: str
    project_id: str
    task_name: str = ""
    status: str | None = None
    blocked_reason: str | None = None

    @staticmethod
    def from_row(row: dict) -> "ProductionTask | None":
        task_id = _to_str(row.get("id"))
        project_id = _to_str(row.get("project_id"))
        if task_id is None or project_id is None:
            return None
        return ProductionTask(
            id=task_id,
            project_id=project_id,
            task_name=_to_str(row.get("task_name")) or "",
            status=_to_str(row.get("status")),
            blocked_reason=_to_str(row.get("blocked_reason")),
        )


@dataclass
class PurchaseItem:
    """Позиция закупки."""

    id: str
    material_name: str = ""
    status: str | None = None  # PENDING, ORDERED, RECEIVED, CANCELLED
    priority: float = 5
    ordered_at: str | None = None
    provider: str | None = None
    project_number: str | None = None

    @staticmethod
    def from_row(row: dict) -> "PurchaseItem | None":
        item_id = _to_str(row.get("id"))
        if item_id is None:
            return None
        priority = _to_float(row.get("priority"))
        return PurchaseItem(
            id=item_id,
            material_name=_to_str(row.get("material_name")) or "",
            status=_to_str(row.get("status")),
            priority=priority if priority is not None else 5,
            ordered_at=_to_str(row.get("ordered_at")),
            provider=_to_str(row.get("provider")),
            project_number=_to_str(row.get("project_number")),
        )


@dataclass
class StockItem:
    """
    Складская позиция. Колонки в backend в нижнем регистре.

    Пустое или нечисловое cantidad читается как 0: позиция попадает в stock_cero.
    """

    reference: str | None = None
    article: str | None = None
    description: str | None = None
    quantity: float = 0.0
    min_stock: float | None = None

    @property
    def display_name(self) -> str:
        return self.description or self.article or self.reference or ""

    @staticmethod
    def from_row(row: dict) -> "StockItem | None":
        item = StockItem(
            reference=_to_str(row.get("referencia")),
            article=_to_str(row.get("articulo")),
            description=_to_str(row.get("descripcion")),
            quantity=_to_float(row.get("cantidad")) or 0.0,
            min_stock=_to_float(row.get("stock_minimo")),
        )
        if not item.display_name:
            return None
        return item
