"""
Device Management Service - admin actions delivered through the command queue.

These only queue commands; essl_blocked and plan_status are left for the
reconciliation sweep, so right after queuing the member row may still show
the old state.
"""
from .base import logging, timedelta, get_db_session, MemberORM, utcnow
from .expiry_service import resolve_expiry, format_device_end_datetime, NO_EXPIRY_END_DATETIME
from .settings_service import SettingsService, get_settings_service
from .device_command_service import (
    DeviceCommandService, get_device_command_service,
    BROADCAST_TARGET, GROUP_BLOCKED, GROUP_ENABLED, access_group,
    update_user_access, update_user_name, delete_user, query_attlog,
    query_users, device_info, get_options
)
from models import EsslManagementRequest, QueuedCommand
from datetime import datetime

logger = logging.getLogger("gym_app")

ATTENDANCE_LOOKBACK_DAYS = 30


class DeviceManagementService:
    """Queued device actions triggered from the admin console."""

    def __init__(self, session_factory=get_db_session, settings: SettingsService = None, commands: DeviceCommandService = None):
        self.session_factory = session_factory
        self.settings = settings or get_settings_service()
        self.commands = commands or get_device_command_service()

    def handle(self, request: EsslManagementRequest, now: datetime = None) -> dict:
        """Dispatch an admin action by name. Raises ValueError for bad input."""
        action = request.action
        if action == "block-expired":
            return self.block_expired(now=now)
        if action == "sync-all-expiry":
            return self.sync_all_expiry(now=now)
        if action == "unblock-user":
            return self.unblock_user(self._require(request.essl_id, "essl_id"), request.user_id)
        if action == "sync-attendance":
            return self.sync_attendance(request.essl_id, request.pin, now=now)
        if action == "sync-names":
            return self.sync_names()
        if action == "delete-user":
            return self.delete_user(self._require(request.essl_id, "essl_id"))
        if action == "update-user":
            return self.update_user(self._require(request.essl_id, "essl_id"), self._require(request.name, "name"))
        if action == "device-info":
            return self.device_info(request.essl_id)
        if action == "get-options":
            return self.get_options(request.essl_id, request.options)

        logger.warning(f"Unknown essl-management action: {action}")
        raise ValueError("Invalid action")

    @staticmethod
    def _require(value, name: str) -> str:
        if not value:
            raise ValueError(f"Missing {name}")
        return value

    def _enrolled_members(self, only_unblocked: bool = False):
        db = self.session_factory()
        try:
            query = db.query(MemberORM).filter(
                MemberORM.essl_id.isnot(None),
                MemberORM.plan_expiry_date.isnot(None)
            )
            if only_unblocked:
                query = query.filter(MemberORM.essl_blocked == False)
            return [
                (m.id, m.essl_id, m.plan_expiry_date, m.grace_period)
                for m in query.all()
            ]
        finally:
            db.close()

    def block_expired(self, now: datetime = None) -> dict:
        """Queue a move to the blocked group for truly expired members still believed unblocked."""
        now = now or utcnow()
        default_grace = self.settings.get_global_grace_period()

        commands = []
        results = []
        for member_id, pin, expiry, grace in self._enrolled_members(only_unblocked=True):
            try:
                expired = resolve_expiry(now, expiry, grace, default_grace).is_truly_expired
            except ValueError as e:
                logger.error(f"Cannot resolve expiry for member {member_id}: {e}")
                results.append({"id": member_id, "essl_id": pin, "success": False, "error": str(e)})
                continue
            if not expired:
                continue
            commands.append(QueuedCommand(
                target=BROADCAST_TARGET,
                command=update_user_access(pin, group=GROUP_BLOCKED),
                payload={"user_id": member_id, "reason": "plan_expired", "pin": pin}
            ))
            results.append({"id": member_id, "essl_id": pin, "success": True})

        self.commands.emit(commands)
        logger.info(f"Queued block for {len(commands)} expired members")
        return {"results": results}

    def sync_all_expiry(self, now: datetime = None) -> dict:
        """Queue the resolved end date and group for every enrolled member."""
        now = now or utcnow()
        default_grace = self.settings.get_global_grace_period()

        commands = []
        failed = []
        for member_id, pin, expiry, grace in self._enrolled_members():
            try:
                resolution = resolve_expiry(now, expiry, grace, default_grace)
            except ValueError as e:
                logger.error(f"Cannot resolve expiry for member {member_id}: {e}")
                failed.append({"id": member_id, "error": str(e)})
                continue
            commands.append(QueuedCommand(
                target=BROADCAST_TARGET,
                command=update_user_access(
                    pin,
                    group=access_group(not resolution.is_truly_expired),
                    end_datetime=format_device_end_datetime(resolution.final_expiry)
                ),
                payload={"user_id": member_id, "action": "sync_all_expiry", "pin": pin}
            ))

        self.commands.emit(commands)
        return {"success": True, "count": len(commands), "failed": failed}

    def unblock_user(self, essl_id: str, user_id: str = None) -> dict:
        self.commands.emit([
            QueuedCommand(
                target=BROADCAST_TARGET,
                command=update_user_access(essl_id, group=GROUP_ENABLED, end_datetime=NO_EXPIRY_END_DATETIME),
                payload={"user_id": user_id, "action": "unblock"}
            ),
            QueuedCommand(
                target=BROADCAST_TARGET,
                command=query_attlog(essl_id),
                payload={"user_id": user_id, "action": "sync_after_renewal"}
            )
        ])
        return {"success": True, "message": "Unblock and sync commands queued"}

    def sync_attendance(self, essl_id: str = None, pin: str = None, now: datetime = None) -> dict:
        """Queue a current and a historical attendance log pull."""
        now = now or utcnow()
        start_time = (now - timedelta(days=ATTENDANCE_LOOKBACK_DAYS)).strftime("%Y-%m-%d") + " 00:00:00"
        target = essl_id or BROADCAST_TARGET

        self.commands.emit([
            QueuedCommand(target=target, command=query_attlog(pin), payload={"action": "manual_sync", "pin": pin}),
            QueuedCommand(target=target, command=query_attlog(pin, start_time), payload={"action": "historical_sync", "pin": pin})
        ])
        return {"success": True, "message": "Attendance sync commands queued"}

    def sync_names(self) -> dict:
        """Queue a user upload from the device and nudge the relay to do the same."""
        self.commands.emit([
            QueuedCommand(target=BROADCAST_TARGET, command=query_users(), payload={"action": "sync_all_users"})
        ])
        relay_result = self.commands.request_user_sync()
        return {"success": True, "message": "User sync queued", "relay": relay_result}

    def delete_user(self, essl_id: str) -> dict:
        self.commands.emit([
            QueuedCommand(target=BROADCAST_TARGET, command=delete_user(essl_id), payload={"action": "delete_user"})
        ])
        return {"success": True, "message": "Delete command queued"}

    def update_user(self, essl_id: str, name: str) -> dict:
        self.commands.emit([
            QueuedCommand(target=BROADCAST_TARGET, command=update_user_name(essl_id, name), payload={"action": "update_user"})
        ])
        return {"success": True, "message": "Update command queued"}

    def device_info(self, essl_id: str = None) -> dict:
        self.commands.emit([
            QueuedCommand(target=essl_id or BROADCAST_TARGET, command=device_info(), payload={"action": "device_info"})
        ])
        return {"success": True, "message": "INFO command queued"}

    def get_options(self, essl_id: str = None, options: str = None) -> dict:
        self.commands.emit([
            QueuedCommand(target=essl_id or BROADCAST_TARGET, command=get_options(options), payload={"action": "get_options"})
        ])
        return {"success": True, "message": "GET OPTIONS command queued"}


# Singleton instance
device_management_service = DeviceManagementService()


def get_device_management_service() -> DeviceManagementService:
    """Dependency injection helper."""
    return device_management_service
