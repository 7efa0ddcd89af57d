"""
Read model — единая лента алертов для роли пользователя.

Персистентные (новые первыми) + live, затем стабильная сортировка
по приоритету: внутри одного приоритета порядок источников сохраняется.
"""

from dataclasses import dataclass, field

from workshop_alerts.alerts.models import (
    MODULES,
    PRIORITY_ORDER,
    AlertInstance,
    EphemeralAlert,
    LiveAlert,
    PersistentAlert,
    UnifiedAlert,
)


def is_visible(target_roles: list[str], role: str, admin_role: str = "admin") -> bool:
    """Пустой список ролей = видно всем, админ видит всё."""
    return role == admin_role or not target_roles or role in target_roles


@dataclass
class AlertFeed:
    alerts: list[UnifiedAlert] = field(default_factory=list)

    @property
    def pending(self) -> list[UnifiedAlert]:
        return [a for a in self.alerts if a.state == "pendiente"]

    @property
    def pending_count(self) -> int:
        return len(self.pending)

    @property
    def count_by_module(self) -> dict[str, int]:
        """Бейджи: pending всего + pending по каждому модулю (нули включительно)."""
        pending = self.pending
        counts = {"total": len(pending)}
        for module in MODULES:
            counts[module] = 0
        for alert in pending:
            counts[alert.module] = counts.get(alert.module, 0) + 1
        return counts

    def alerts_for_module(self, module: str) -> list[UnifiedAlert]:
        return [a for a in self.alerts if a.module == module]


def build_feed(
    instances: list[AlertInstance],
    live_alerts: list[LiveAlert],
    role: str,
    admin_role: str = "admin",
) -> AlertFeed:
    persistent = sorted(
        (
            inst for inst in instances
            if inst.state != "descartada" and is_visible(inst.target_roles, role, admin_role)
        ),
        key=lambda inst: inst.generated_at,
        reverse=True,
    )
    merged: list[UnifiedAlert] = [PersistentAlert(instance=inst) for inst in persistent]
    merged.extend(
        EphemeralAlert(alert=alert)
        for alert in live_alerts
        if is_visible(alert.target_roles, role, admin_role)
    )
    merged.sort(key=lambda a: PRIORITY_ORDER.get(a.priority, len(PRIORITY_ORDER)))
    return AlertFeed(alerts=merged)
