from workshop_alerts.migrations.runner import pending_migrations, run_migrations

__all__ = ["pending_migrations", "run_migrations"]
