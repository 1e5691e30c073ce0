"""
Backend functions for the biometric access bridge: the scheduled expiry check,
the per-member device sync and the queued eSSL management actions.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from auth import require_internal_secret
from models import ExpiryCheckResponse, SyncMemberRequest, EsslManagementRequest
from service_modules.base import MemberNotFound, MissingCredential, RelayError
from service_modules.reconciliation_service import ReconciliationService, get_reconciliation_service
from service_modules.device_management_service import DeviceManagementService, get_device_management_service
import logging

logger = logging.getLogger("gym_app")

router = APIRouter(prefix="/functions", tags=["device-sync"], dependencies=[Depends(require_internal_secret)])


# Relay calls block, so these run as sync endpoints in the threadpool

@router.post("/check-expired-members", response_model=ExpiryCheckResponse)
def check_expired_members(service: ReconciliationService = Depends(get_reconciliation_service)):
    """Scheduler entry point: reconcile every enrolled member with the device."""
    try:
        return service.reconcile_all()
    except Exception as e:
        logger.error(f"Check expired error: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})


@router.post("/sync-member-to-device")
def sync_member_to_device(
    data: SyncMemberRequest,
    service: ReconciliationService = Depends(get_reconciliation_service)
):
    """Push one member's state to the relay and pass its answer through."""
    logger.info(f"Sync request - Member: {data.member_id}, Action: {data.action}")
    try:
        outcome = service.sync_member_to_device(data.member_id, data.action)
    except MemberNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (MissingCredential, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RelayError as e:
        logger.error(f"Sync error: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return outcome.result


@router.post("/essl-management")
def essl_management(
    data: EsslManagementRequest,
    service: DeviceManagementService = Depends(get_device_management_service)
):
    """Queue eSSL device commands for an admin action."""
    try:
        return service.handle(data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RelayError as e:
        logger.error(f"Relay error during {data.action}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
