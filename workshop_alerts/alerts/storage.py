"""
AlertStore — SQLite хранилище алертов.

Две таблицы:
- alert_settings: определения триггеров (редактирует админ)
- alert_instances: персистентные CRM-алерты

Своё подключение (WAL mode). Переходы состояний защищены условием
WHERE state IN (...): если строка не в нужном состоянии, rowcount = 0.
"""

import asyncio
import json
from datetime import datetime

import aiosqlite
from loguru import logger

from workshop_alerts.alerts.models import OPEN_STATES, AlertInstance, TriggerDefinition

# Из каких состояний разрешён переход в целевое
ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "vista": ("pendiente",),
    "resuelta": ("pendiente", "vista"),
    "descartada": ("pendiente", "vista"),
}

# Колонки alert_settings, которые можно менять через update_trigger_definition
EDITABLE_FIELDS = ("name", "description", "module", "active", "threshold_days", "priority", "target_roles")


class AlertStore:
    """Хранилище определений триггеров и инстансов алертов."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None
        self._db_lock = asyncio.Lock()

    async def _get_db(self) -> aiosqlite.Connection:
        if self._db is not None:
            return self._db

        async with self._db_lock:
            if self._db is None:
                db = await aiosqlite.connect(self._db_path)
                db.row_factory = aiosqlite.Row
                try:
                    await db.execute("PRAGMA journal_mode=WAL")
                    self._db = db
                    await self._init_schema()
                except Exception:
                    self._db = None
                    await db.close()
                    raise
        return self._db

    async def _init_schema(self) -> None:
        db = self._db
        await db.execute("""
            CREATE TABLE IF NOT EXISTS alert_settings (
                trigger_type TEXT PRIMARY KEY,
                name TEXT DEFAULT '',
                description TEXT DEFAULT '',
                module TEXT DEFAULT 'crm',
                active INTEGER DEFAULT 1,
                threshold_days INTEGER,
                priority TEXT DEFAULT 'media',
                target_roles TEXT DEFAULT '["admin"]',
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS alert_instances (
                id TEXT PRIMARY KEY,
                trigger_type TEXT NOT NULL,
                lead_id TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT DEFAULT '',
                priority TEXT DEFAULT 'media',
                target_roles TEXT DEFAULT '[]',
                state TEXT DEFAULT 'pendiente',
                generated_at TEXT NOT NULL,
                resolved_by TEXT,
                resolved_at TEXT
            )
        """)
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_alert_instances_type_state "
            "ON alert_instances (trigger_type, state)"
        )
        await db.commit()
        logger.debug("AlertStore schema initialized")

    # =========================================================================
    # Trigger definitions
    # =========================================================================

    async def list_trigger_definitions(self) -> list[TriggerDefinition]:
        """Все определения (включая выключенные)."""
        db = await self._get_db()
        cursor = await db.execute("SELECT * FROM alert_settings ORDER BY trigger_type")
        rows = await cursor.fetchall()
        return [self._row_to_definition(row) for row in rows]

    async def list_active_trigger_definitions(self) -> list[TriggerDefinition]:
        db = await self._get_db()
        cursor = await db.execute(
            "SELECT * FROM alert_settings WHERE active = 1 ORDER BY trigger_type"
        )
        rows = await cursor.fetchall()
        return [self._row_to_definition(row) for row in rows]

    async def get_trigger_definition(self, trigger_type: str) -> TriggerDefinition | None:
        db = await self._get_db()
        cursor = await db.execute(
            "SELECT * FROM alert_settings WHERE trigger_type = ?",
            (trigger_type,),
        )
        row = await cursor.fetchone()
        return self._row_to_definition(row) if row else None

    async def upsert_trigger_definition(self, definition: TriggerDefinition) -> None:
        """Создаёт или полностью перезаписывает определение."""
        db = await self._get_db()
        await db.execute(
            "INSERT INTO alert_settings "
            "(trigger_type, name, description, module, active, threshold_days, priority, target_roles, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(trigger_type) DO UPDATE SET "
            "name = excluded.name, description = excluded.description, module = excluded.module, "
            "active = excluded.active, threshold_days = excluded.threshold_days, "
            "priority = excluded.priority, target_roles = excluded.target_roles, "
            "updated_at = excluded.updated_at",
            (
                definition.trigger_type,
                definition.name,
                definition.description,
                definition.module,
                1 if definition.active else 0,
                definition.threshold_days,
                definition.priority,
                json.dumps(definition.target_roles, ensure_ascii=False),
                (definition.updated_at or datetime.now()).isoformat(),
            ),
        )
        await db.commit()

    async def insert_missing_trigger_definitions(self, definitions: list[TriggerDefinition]) -> int:
        """Добавляет только отсутствующие определения, существующие не трогает."""
        if not definitions:
            return 0
        db = await self._get_db()
        inserted = 0
        for definition in definitions:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO alert_settings "
                "(trigger_type, name, description, module, active, threshold_days, priority, target_roles, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    definition.trigger_type,
                    definition.name,
                    definition.description,
                    definition.module,
                    1 if definition.active else 0,
                    definition.threshold_days,
                    definition.priority,
                    json.dumps(definition.target_roles, ensure_ascii=False),
                    (definition.updated_at or datetime.now()).isoformat(),
                ),
            )
            inserted += cursor.rowcount
        await db.commit()
        return inserted

    async def update_trigger_definition(self, trigger_type: str, **changes) -> bool:
        """
        Частичное обновление определения.

        Неизвестные поля → ValueError. False если такого trigger_type нет.
        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown trigger definition fields: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValueError("Nothing to update")

        assignments = []
        params: list = []
        for key, value in changes.items():
            if key == "active":
                value = 1 if value else 0
            elif key == "target_roles":
                value = json.dumps(list(value), ensure_ascii=False)
            assignments.append(f"{key} = ?")
            params.append(value)
        assignments.append("updated_at = ?")
        params.append(datetime.now().isoformat())
        params.append(trigger_type)

        db = await self._get_db()
        cursor = await db.execute(
            f"UPDATE alert_settings SET {', '.join(assignments)} WHERE trigger_type = ?",
            params,
        )
        await db.commit()
        return cursor.rowcount > 0

    # =========================================================================
    # Instances
    # =========================================================================

    async def list_open_instances(self, trigger_type: str) -> list[AlertInstance]:
        """Открытые (pendiente/vista) инстансы одного типа."""
        db = await self._get_db()
        cursor = await db.execute(
            "SELECT * FROM alert_instances WHERE trigger_type = ? AND state IN (?, ?)",
            (trigger_type, *OPEN_STATES),
        )
        rows = await cursor.fetchall()
        return [self._row_to_instance(row) for row in rows]

    async def insert_instances(self, instances: list[AlertInstance]) -> int:
        if not instances:
            return 0
        db = await self._get_db()
        await db.executemany(
            "INSERT INTO alert_instances "
            "(id, trigger_type, lead_id, title, description, priority, target_roles, state, generated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    inst.id,
                    inst.trigger_type,
                    inst.lead_id,
                    inst.title,
                    inst.description,
                    inst.priority,
                    json.dumps(inst.target_roles, ensure_ascii=False),
                    inst.state,
                    inst.generated_at.isoformat(),
                )
                for inst in instances
            ],
        )
        await db.commit()
        return len(instances)

    async def delete_instances(self, instance_ids: list[str]) -> int:
        if not instance_ids:
            return 0
        db = await self._get_db()
        placeholders = ", ".join("?" for _ in instance_ids)
        cursor = await db.execute(
            f"DELETE FROM alert_instances WHERE id IN ({placeholders})",
            list(instance_ids),
        )
        await db.commit()
        return cursor.rowcount

    async def get_instance(self, instance_id: str) -> AlertInstance | None:
        db = await self._get_db()
        cursor = await db.execute(
            "SELECT * FROM alert_instances WHERE id = ?",
            (instance_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_instance(row) if row else None

    async def update_instance_state(
        self,
        instance_id: str,
        new_state: str,
        actor: str | None = None,
        at: datetime | None = None,
    ) -> bool:
        """
        Переход состояния инстанса.

        Разрешены только переходы из ALLOWED_TRANSITIONS. Для resuelta
        дополнительно пишутся resolved_by / resolved_at.
        """
        allowed_from = ALLOWED_TRANSITIONS.get(new_state)
        if allowed_from is None:
            raise ValueError(f"Unsupported target state: {new_state}")

        placeholders = ", ".join("?" for _ in allowed_from)
        db = await self._get_db()
        if new_state == "resuelta":
            cursor = await db.execute(
                f"UPDATE alert_instances SET state = ?, resolved_by = ?, resolved_at = ? "
                f"WHERE id = ? AND state IN ({placeholders})",
                (new_state, actor, (at or datetime.now()).isoformat(), instance_id, *allowed_from),
            )
        else:
            cursor = await db.execute(
                f"UPDATE alert_instances SET state = ? WHERE id = ? AND state IN ({placeholders})",
                (new_state, instance_id, *allowed_from),
            )
        await db.commit()
        return cursor.rowcount > 0

    async def list_instances(self, state: str | None = None) -> list[AlertInstance]:
        """Инстансы без descartada, новые первыми."""
        db = await self._get_db()
        if state:
            cursor = await db.execute(
                "SELECT * FROM alert_instances WHERE state = ? AND state != 'descartada' "
                "ORDER BY generated_at DESC",
                (state,),
            )
        else:
            cursor = await db.execute(
                "SELECT * FROM alert_instances WHERE state != 'descartada' "
                "ORDER BY generated_at DESC"
            )
        rows = await cursor.fetchall()
        return [self._row_to_instance(row) for row in rows]

    # =========================================================================
    # Row converters
    # =========================================================================

    def _row_to_definition(self, row: aiosqlite.Row) -> TriggerDefinition:
        roles_raw = row["target_roles"]
        updated_str = row["updated_at"]
        return TriggerDefinition(
            trigger_type=row["trigger_type"],
            name=row["name"] or "",
            description=row["description"] or "",
            module=row["module"] or "crm",
            active=bool(row["active"]),
            threshold_days=row["threshold_days"],
            priority=row["priority"] or "media",
            target_roles=json.loads(roles_raw) if roles_raw else [],
            updated_at=datetime.fromisoformat(updated_str) if updated_str else None,
        )

    def _row_to_instance(self, row: aiosqlite.Row) -> AlertInstance:
        roles_raw = row["target_roles"]
        resolved_str = row["resolved_at"]
        return AlertInstance(
            id=row["id"],
            trigger_type=row["trigger_type"],
            lead_id=row["lead_id"],
            title=row["title"],
            description=row["description"] or "",
            priority=row["priority"] or "media",
            target_roles=json.loads(roles_raw) if roles_raw else [],
            state=row["state"],
            generated_at=datetime.fromisoformat(row["generated_at"]),
            resolved_by=row["resolved_by"],
            resolved_at=datetime.fromisoformat(resolved_str) if resolved_str else None,
        )

    async def close(self) -> None:
        """Закрывает соединение с БД."""
        if self._db:
            await self._db.close()
            self._db = None
