"""
Reconciliation Service - keeps device access in line with membership expiry.

The enable/block decision is always recomputed from the plan dates; the
stored essl_blocked / plan_status fields are only a cached belief used to
decide whether a member needs a command at all.
"""
from .base import (
    logging, get_db_session, MemberORM, utcnow,
    DeviceSyncError, MemberNotFound, MissingCredential, RelayError
)
from .expiry_service import resolve_expiry, format_device_end_datetime
from .settings_service import SettingsService, get_settings_service
from .sync_log_service import SyncLogService, get_sync_log_service
from .device_command_service import DeviceCommandService, get_device_command_service
from models import DeviceUserState, DirectCall, ExpiryResolution, SyncOutcome
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import List, Optional
import os

logger = logging.getLogger("gym_app")

SYNC_ACTIONS = ("create", "renew", "expire")
ENABLING_ACTIONS = ("create", "renew")
MAX_SYNC_WORKERS = 8


def needs_reconciliation(essl_blocked: bool, plan_status: str, resolution: ExpiryResolution) -> Optional[str]:
    """
    Return "expire" or "renew" when the cached device state disagrees with the
    freshly resolved expiry, None when it already matches.
    """
    if resolution.is_truly_expired:
        if not essl_blocked or plan_status != "expired":
            return "expire"
    elif essl_blocked or plan_status == "expired":
        return "renew"
    return None


def build_device_state(member: dict, resolution: ExpiryResolution, enabled: bool, now: datetime) -> DeviceUserState:
    """Full desired state for the credential; replaying it only re-asserts it."""
    return DeviceUserState(
        employee_code=member["essl_id"],
        name=member["full_name"] or member["username"] or "User",
        valid_from=member["plan_start_date"] or now.isoformat(),
        valid_to=format_device_end_datetime(resolution.final_expiry),
        enabled=enabled
    )


class ReconciliationService:
    """Batch sweep and per-member direct sync of membership state to the device."""

    def __init__(
        self,
        session_factory=get_db_session,
        settings: SettingsService = None,
        commands: DeviceCommandService = None,
        sync_log: SyncLogService = None,
        max_workers: int = None
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings_service()
        self.commands = commands or get_device_command_service()
        self.sync_log = sync_log or get_sync_log_service()
        if max_workers is None:
            max_workers = int(os.getenv("SYNC_MAX_WORKERS", "1"))
        self.max_workers = max(1, min(max_workers, MAX_SYNC_WORKERS))

    # --- BATCH SWEEP ---

    def reconcile_all(self, now: datetime = None) -> dict:
        """
        Re-assert device state for every member whose cached state drifted.
        Per-member failures are reported in the results, never raised.
        """
        now = now or utcnow()
        logger.info(f"Checking for expired members at {now.isoformat()}")

        default_grace = self.settings.get_global_grace_period()
        logger.info(f"Global grace period: {default_grace} days")

        results = []
        candidates = []
        for member in self._load_enrolled_members():
            try:
                resolution = resolve_expiry(now, member["plan_expiry_date"], member["grace_period"], default_grace)
            except ValueError as e:
                logger.error(f"Cannot resolve expiry for member {member['id']}: {e}")
                results.append({"id": member["id"], "status": "failed", "error": str(e)})
                continue
            action = needs_reconciliation(member["essl_blocked"], member["plan_status"], resolution)
            if action:
                candidates.append((member["id"], action))

        logger.info(f"Found {len(candidates)} members needing status update")

        def run(candidate):
            member_id, action = candidate
            return self._reconcile_member(member_id, action, now, default_grace)

        if self.max_workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results.extend(pool.map(run, candidates))
        else:
            results.extend(run(candidate) for candidate in candidates)

        return {"processed": len(results), "results": results}

    def _load_enrolled_members(self) -> List[dict]:
        db = self.session_factory()
        try:
            members = db.query(MemberORM).filter(
                MemberORM.plan_expiry_date.isnot(None),
                MemberORM.essl_id.isnot(None)
            ).all()
            return [
                {
                    "id": m.id,
                    "plan_expiry_date": m.plan_expiry_date,
                    "grace_period": m.grace_period,
                    "essl_blocked": bool(m.essl_blocked),
                    "plan_status": m.plan_status
                }
                for m in members
            ]
        finally:
            db.close()

    def _reconcile_member(self, member_id: str, action: str, now: datetime, default_grace: int) -> dict:
        logger.info(f"Processing member {member_id}: {action}")
        try:
            outcome = self.sync_member_to_device(member_id, action, now=now, default_grace_days=default_grace)
        except DeviceSyncError as e:
            logger.error(f"Failed to process member {member_id}: {e}")
            return {"id": member_id, "status": "failed", "action": action, "error": str(e)}
        except Exception as e:
            logger.error(f"Unexpected error processing member {member_id}: {e}")
            return {"id": member_id, "status": "failed", "action": action, "error": str(e)}

        if outcome.success:
            return {"id": member_id, "status": "success", "action": action, "data": outcome.result}
        return {"id": member_id, "status": "failed", "action": action, "data": outcome.result, "error": outcome.error}

    # --- PER-MEMBER SYNC ---

    def sync_member_to_device(
        self,
        member_id: str,
        action: str,
        now: datetime = None,
        default_grace_days: int = None
    ) -> SyncOutcome:
        """
        Push one member's full desired state to the relay.

        Order: resolve expiry, call relay, write the sync log, update the member.
        The member row only changes when the relay reports success. No database
        session is held while the relay call is in flight.
        """
        if action not in SYNC_ACTIONS:
            raise ValueError(f"Unknown sync action: {action}")
        now = now or utcnow()

        member = self._load_member(member_id)
        if not member:
            error = MemberNotFound(member_id)
            self.sync_log.record(member_id, action, None, None, "skipped", str(error))
            raise error
        if not member["essl_id"]:
            error = MissingCredential(member_id)
            self.sync_log.record(member_id, action, None, None, "skipped", str(error))
            raise error

        if default_grace_days is None:
            default_grace_days = self.settings.get_global_grace_period()

        try:
            resolution = resolve_expiry(now, member["plan_expiry_date"], member["grace_period"], default_grace_days)
        except ValueError as e:
            self.sync_log.record(member_id, action, None, None, "skipped", f"Unreadable plan_expiry_date: {e}")
            raise
        # An expired member is blocked whatever the caller asked for
        should_be_enabled = not resolution.is_truly_expired and action in ENABLING_ACTIONS
        state = build_device_state(member, resolution, should_be_enabled, now)
        request_payload = state.model_dump()

        logger.info(
            f"Syncing member {member_id} ({member['essl_id']}): "
            f"{'ENABLED' if should_be_enabled else 'BLOCKED'} (Truly Expired: {resolution.is_truly_expired})"
        )

        try:
            reply = self.commands.emit(DirectCall(state=state))
        except RelayError as e:
            self.sync_log.record(member_id, action, request_payload, None, "failed", str(e))
            raise

        self.sync_log.record(
            member_id, action, request_payload, reply.body,
            "success" if reply.success else "failed", reply.error
        )

        if reply.success:
            self._mark_synced(member_id, should_be_enabled, resolution.is_truly_expired, now)
        else:
            logger.error(f"Relay rejected sync for member {member_id}: {reply.error}")

        return SyncOutcome(
            member_id=member_id,
            action=action,
            enabled=should_be_enabled,
            is_truly_expired=resolution.is_truly_expired,
            success=reply.success,
            request=request_payload,
            result=reply.body,
            error=reply.error
        )

    def _load_member(self, member_id: str) -> Optional[dict]:
        db = self.session_factory()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                return None
            return {
                "id": member.id,
                "username": member.username,
                "full_name": member.full_name,
                "essl_id": member.essl_id,
                "plan_start_date": member.plan_start_date,
                "plan_expiry_date": member.plan_expiry_date,
                "grace_period": member.grace_period
            }
        finally:
            db.close()

    def _mark_synced(self, member_id: str, enabled: bool, is_truly_expired: bool, now: datetime):
        db = self.session_factory()
        try:
            member = db.query(MemberORM).filter(MemberORM.id == member_id).first()
            if not member:
                logger.warning(f"Member {member_id} disappeared before its sync could be recorded")
                return
            member.essl_blocked = not enabled
            member.plan_status = "expired" if is_truly_expired else "active"
            member.device_sync_status = "SYNCED"
            member.last_synced_at = now.isoformat()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


# Singleton instance
reconciliation_service = ReconciliationService()


def get_reconciliation_service() -> ReconciliationService:
    """Dependency injection helper."""
    return reconciliation_service
