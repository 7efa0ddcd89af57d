from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Конфигурация сервиса алертов."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Hosted backend (PostgREST-совместимый REST API с бизнес-данными)
    backend_url: str = ""
    backend_api_key: str = ""
    backend_timeout_seconds: float = 10.0

    # Refresh cycle
    refresh_interval_minutes: int = 5  # 0 = отключен
    dismissal_ttl_hours: int = 24
    workshop_status_ttl_seconds: int = 60

    @field_validator("refresh_interval_minutes", mode="before")
    @classmethod
    def _empty_str_to_default(cls, v: object) -> object:
        """Пустая строка из env var → дефолт."""
        if isinstance(v, str) and v.strip() == "":
            return 5
        return v

    # Роли
    default_role: str = "admin"  # если клиент не передал X-User-Role
    admin_role: str = "admin"    # видит все алерты

    # HTTP API
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    api_secret: str = ""  # пусто = авторизация отключена

    log_level: str = "INFO"

    # Paths
    data_dir: Path = Path("/data")

    @property
    def db_path(self) -> Path:
        return self.data_dir / "alerts.sqlite"

    @property
    def dismissals_path(self) -> Path:
        """JSON с отклонёнными live-алертами (id → timestamp ms)."""
        return self.data_dir / "dismissed_live_alerts.json"

    @property
    def snapshots_dir(self) -> Path:
        """Последние успешно загруженные снимки бизнес-данных."""
        return self.data_dir / "snapshots"


settings = Settings()
