"""
Admin console API for membership access: grace periods, the subscription
tracker, the device sync audit log and the command queue.
"""

from fastapi import APIRouter, Depends, HTTPException
from auth import require_internal_secret
from models import GlobalGracePeriodUpdate, MemberGracePeriodUpdate
from service_modules.base import MemberNotFound
from service_modules.settings_service import SettingsService, get_settings_service
from service_modules.membership_service import MembershipService, get_membership_service
from service_modules.sync_log_service import SyncLogService, get_sync_log_service
from service_modules.device_command_service import DeviceCommandService, get_device_command_service
from typing import Optional

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_internal_secret)])


@router.get("/settings/grace-period")
async def get_global_grace_period(service: SettingsService = Depends(get_settings_service)):
    return {"global_grace_period": service.get_global_grace_period()}


@router.put("/settings/grace-period")
async def set_global_grace_period(
    data: GlobalGracePeriodUpdate,
    service: SettingsService = Depends(get_settings_service)
):
    return service.set_global_grace_period(data.global_grace_period)


@router.put("/members/{member_id}/grace-period")
async def set_member_grace_period(
    member_id: str,
    data: MemberGracePeriodUpdate,
    service: MembershipService = Depends(get_membership_service)
):
    """Override (or clear with null) one member's grace period."""
    try:
        return service.set_member_grace_period(member_id, data.grace_period)
    except MemberNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/subscriptions")
async def get_subscriptions(
    status: str = "all",
    search: str = "",
    service: MembershipService = Depends(get_membership_service)
):
    try:
        return {"members": service.get_subscriptions(status=status, search=search)}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/sync-logs")
async def get_sync_logs(
    member_id: Optional[str] = None,
    limit: int = 50,
    service: SyncLogService = Depends(get_sync_log_service)
):
    return {"logs": service.get_logs(member_id=member_id, limit=min(limit, 500))}


@router.get("/device-commands")
async def get_device_commands(
    status: Optional[str] = None,
    limit: int = 100,
    service: DeviceCommandService = Depends(get_device_command_service)
):
    return {"commands": service.get_commands(status=status, limit=min(limit, 500))}
