"""
Sync Log Service - append-only audit trail of device sync attempts.
"""
from .base import json, logging, datetime, get_db_session, DeviceSyncLogORM
from typing import List, Optional

logger = logging.getLogger("gym_app")


class SyncLogService:
    """Writes and lists device_sync_logs rows. Writing never raises."""

    def __init__(self, session_factory=get_db_session):
        self.session_factory = session_factory

    def record(
        self,
        member_id: str,
        command_kind: str,
        request_payload: Optional[dict],
        response_payload: Optional[dict],
        status: str,
        error_message: str = None
    ) -> None:
        """Append one attempt. Failures are logged and swallowed."""
        db = None
        try:
            db = self.session_factory()
            entry = DeviceSyncLogORM(
                profile_id=member_id,
                command=command_kind,
                request_payload=json.dumps(request_payload) if request_payload is not None else None,
                response_payload=json.dumps(response_payload, default=str) if response_payload is not None else None,
                status=status,
                error_message=error_message,
                created_at=datetime.utcnow().isoformat()
            )
            db.add(entry)
            db.commit()

        except Exception as e:
            if db is not None:
                db.rollback()
            logger.warning(f"Could not write sync log for member {member_id}: {e}")
        finally:
            if db is not None:
                db.close()

    def get_logs(self, member_id: str = None, limit: int = 50) -> List[dict]:
        """Most recent attempts first, optionally for one member."""
        db = self.session_factory()
        try:
            query = db.query(DeviceSyncLogORM)
            if member_id:
                query = query.filter(DeviceSyncLogORM.profile_id == member_id)

            logs = query.order_by(
                DeviceSyncLogORM.created_at.desc(),
                DeviceSyncLogORM.id.desc()
            ).limit(limit).all()

            return [
                {
                    "id": log.id,
                    "member_id": log.profile_id,
                    "command": log.command,
                    "request_payload": json.loads(log.request_payload) if log.request_payload else None,
                    "response_payload": json.loads(log.response_payload) if log.response_payload else None,
                    "status": log.status,
                    "error_message": log.error_message,
                    "created_at": log.created_at
                }
                for log in logs
            ]

        finally:
            db.close()


# Singleton instance
sync_log_service = SyncLogService()


def get_sync_log_service() -> SyncLogService:
    """Dependency injection helper."""
    return sync_log_service
