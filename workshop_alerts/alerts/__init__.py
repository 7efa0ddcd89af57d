"""
Alerts — движок алертов мастерской.

Персистентные (CRM, SQLite + reconcile) + live (пересчёт на каждом refresh).
"""

from workshop_alerts.alerts.models import (
    AlertInstance,
    EphemeralAlert,
    LiveAlert,
    PersistentAlert,
    ReconcileResult,
    TriggerDefinition,
    UnifiedAlert,
)
from workshop_alerts.alerts.evaluators import EVALUATORS
from workshop_alerts.alerts.live import LIVE_DEFAULTS, LiveAlertComposer, resolve_trigger
from workshop_alerts.alerts.dismissals import DismissalCache
from workshop_alerts.alerts.read_model import AlertFeed, build_feed
from workshop_alerts.alerts.reconciler import AlertReconciler
from workshop_alerts.alerts.storage import AlertStore

__all__ = [
    "AlertInstance",
    "EphemeralAlert",
    "LiveAlert",
    "PersistentAlert",
    "ReconcileResult",
    "TriggerDefinition",
    "UnifiedAlert",
    "EVALUATORS",
    "LIVE_DEFAULTS",
    "LiveAlertComposer",
    "resolve_trigger",
    "DismissalCache",
    "AlertFeed",
    "build_feed",
    "AlertReconciler",
    "AlertStore",
]
