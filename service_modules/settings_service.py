"""
Settings Service - tenant-wide gym settings (global grace period).
"""
from .base import json, logging, datetime, get_db_session, AppSettingsORM

logger = logging.getLogger("gym_app")

GYM_SETTINGS_ID = "gym_settings"


class SettingsService:
    """Reads and writes the single gym settings row."""

    def __init__(self, session_factory=get_db_session):
        self.session_factory = session_factory

    def _load_value(self, db) -> dict:
        row = db.query(AppSettingsORM).filter(AppSettingsORM.id == GYM_SETTINGS_ID).first()
        if not row or not row.value:
            return {}
        return json.loads(row.value)

    def get_global_grace_period(self) -> int:
        """Tenant default grace period in days (0 when never configured)."""
        db = self.session_factory()
        try:
            return int(self._load_value(db).get("global_grace_period") or 0)
        finally:
            db.close()

    def set_global_grace_period(self, days: int) -> dict:
        db = self.session_factory()
        try:
            row = db.query(AppSettingsORM).filter(AppSettingsORM.id == GYM_SETTINGS_ID).first()
            value = json.loads(row.value) if row and row.value else {}
            value["global_grace_period"] = int(days)

            if row is None:
                row = AppSettingsORM(id=GYM_SETTINGS_ID)
                db.add(row)
            row.value = json.dumps(value)
            row.updated_at = datetime.utcnow().isoformat()
            db.commit()

            logger.info(f"Global grace period set to {days} days")
            return {"global_grace_period": value["global_grace_period"]}

        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


# Singleton instance
settings_service = SettingsService()


def get_settings_service() -> SettingsService:
    """Dependency injection helper."""
    return settings_service
