"""
Alert Models — структуры данных движка алертов.

Два вида алертов:
- AlertInstance: персистентный (CRM), живёт в SQLite, есть жизненный цикл
- LiveAlert: вычисляется заново на каждом refresh, не хранится

В read model они объединяются через PersistentAlert / EphemeralAlert
(tagged union по полю kind).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from workshop_alerts.records import Lead, ProductionProject, ProductionTask, PurchaseItem, Quote, StockItem

Priority = Literal["alta", "media", "baja"]
InstanceState = Literal["pendiente", "vista", "resuelta", "descartada"]
AlertModule = Literal["crm", "produccion", "pedidos", "stock", "presupuestos"]

PRIORITY_ORDER: dict[str, int] = {
    "alta": 0,
    "media": 1,
    "baja": 2,
}

MODULES: tuple[str, ...] = ("crm", "produccion", "pedidos", "stock", "presupuestos")

MODULE_NAV_PATHS: dict[str, str] = {
    "crm": "/crm",
    "produccion": "/production",
    "pedidos": "/purchases",
    "stock": "/purchases",
    "presupuestos": "/quotes",
}

# Состояния, в которых инстанс ещё "открыт" (не терминальный)
OPEN_STATES: tuple[str, ...] = ("pendiente", "vista")


@dataclass
class TriggerDefinition:
    """Правило алерта (строка alert_settings). Ключ: trigger_type."""

    trigger_type: str
    name: str = ""
    description: str = ""
    module: str = "crm"
    active: bool = True
    threshold_days: int | None = None
    priority: str = "media"
    target_roles: list[str] = field(default_factory=lambda: ["admin"])
    updated_at: datetime | None = None


@dataclass
class AlertInstance:
    """Персистентный CRM-алерт, привязан к одному лиду."""

    id: str
    trigger_type: str
    lead_id: str
    title: str
    description: str
    priority: str = "media"
    target_roles: list[str] = field(default_factory=list)
    state: str = "pendiente"
    generated_at: datetime = field(default_factory=datetime.now)
    resolved_by: str | None = None
    resolved_at: datetime | None = None


@dataclass
class LiveAlert:
    """Вычисляемый алерт. id детерминирован: f"{trigger_type}__{subject}"."""

    id: str
    trigger_type: str
    module: str
    title: str
    description: str
    priority: str
    target_roles: list[str]
    nav_path: str
    meta: dict[str, str | int | float] = field(default_factory=dict)


def live_alert_id(trigger_type: str, subject_key: str) -> str:
    return f"{trigger_type}__{subject_key}"


@dataclass
class TriggerResult:
    """Результат CRM evaluator'а: лид, для которого условие выполнено."""

    lead: Lead
    title: str
    description: str


@dataclass
class ReconcileResult:
    created: int = 0
    removed: int = 0

    def __add__(self, other: "ReconcileResult") -> "ReconcileResult":
        return ReconcileResult(
            created=self.created + other.created,
            removed=self.removed + other.removed,
        )


@dataclass
class CrmSnapshot:
    """Снимок данных для персистентного пути."""

    leads: list[Lead] = field(default_factory=list)
    quotes: list[Quote] = field(default_factory=list)


@dataclass
class LiveSnapshot:
    """Снимок данных для live-алертов."""

    projects: list[ProductionProject] = field(default_factory=list)
    tasks: list[ProductionTask] = field(default_factory=list)
    purchases: list[PurchaseItem] = field(default_factory=list)
    stock: list[StockItem] = field(default_factory=list)
    quotes: list[Quote] = field(default_factory=list)


# =========================================================================
# Unified read model
# =========================================================================


@dataclass(frozen=True)
class PersistentAlert:
    """Вариант read model: CRM-инстанс из БД."""

    instance: AlertInstance
    kind: Literal["crm"] = "crm"

    @property
    def id(self) -> str:
        return self.instance.id

    @property
    def module(self) -> str:
        return "crm"

    @property
    def priority(self) -> str:
        return self.instance.priority

    @property
    def state(self) -> str:
        return self.instance.state

    @property
    def title(self) -> str:
        return self.instance.title

    @property
    def description(self) -> str:
        return self.instance.description

    @property
    def target_roles(self) -> list[str]:
        return self.instance.target_roles

    @property
    def nav_path(self) -> str:
        return MODULE_NAV_PATHS["crm"]


@dataclass(frozen=True)
class EphemeralAlert:
    """Вариант read model: live-алерт. Жизненного цикла нет, всегда pendiente."""

    alert: LiveAlert
    kind: Literal["live"] = "live"

    @property
    def id(self) -> str:
        return self.alert.id

    @property
    def module(self) -> str:
        return self.alert.module

    @property
    def priority(self) -> str:
        return self.alert.priority

    @property
    def state(self) -> str:
        return "pendiente"

    @property
    def title(self) -> str:
        return self.alert.title

    @property
    def description(self) -> str:
        return self.alert.description

    @property
    def target_roles(self) -> list[str]:
        return self.alert.target_roles

    @property
    def nav_path(self) -> str:
        return self.alert.nav_path


UnifiedAlert = PersistentAlert | EphemeralAlert
