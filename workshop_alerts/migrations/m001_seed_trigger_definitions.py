"""Дефолтные определения CRM-триггеров в alert_settings."""

from pathlib import Path

from loguru import logger

from workshop_alerts.alerts.models import TriggerDefinition
from workshop_alerts.alerts.storage import AlertStore

_ADMIN_AND_MANAGER = ["admin", "encargado"]

DEFAULT_CRM_TRIGGERS = [
    TriggerDefinition(
        "presupuesto_caducando",
        name="Presupuesto sin respuesta",
        description="Presupuesto enviado sin aprobación ni rechazo",
        threshold_days=7,
        target_roles=_ADMIN_AND_MANAGER,
    ),
    TriggerDefinition(
        "llamada_calidad",
        name="Llamada de calidad",
        description="Llamar al cliente tras la entrega del vehículo",
        threshold_days=7,
        target_roles=_ADMIN_AND_MANAGER,
    ),
    TriggerDefinition(
        "revision_programada",
        name="Revisión programada",
        description="Acción programada en los próximos días",
        threshold_days=3,
        target_roles=_ADMIN_AND_MANAGER,
    ),
    TriggerDefinition(
        "sin_actividad",
        name="Sin actividad",
        description="Lead abierto sin cambios",
        threshold_days=30,
        priority="baja",
        target_roles=["admin"],
    ),
    TriggerDefinition(
        "fecha_accion_vencida",
        name="Acción vencida",
        description="La fecha de la próxima acción ya pasó",
        threshold_days=0,
        priority="alta",
        target_roles=_ADMIN_AND_MANAGER,
    ),
    TriggerDefinition(
        "seguimiento_negociacion",
        name="Seguimiento en negociación",
        description="Lead en negociación sin actualización",
        threshold_days=30,
        target_roles=_ADMIN_AND_MANAGER,
    ),
]


async def apply(data_dir: Path) -> None:
    store = AlertStore(str(data_dir / "alerts.sqlite"))
    try:
        inserted = await store.insert_missing_trigger_definitions(DEFAULT_CRM_TRIGGERS)
    finally:
        await store.close()
    logger.info(f"Seeded {inserted} CRM trigger definitions")
