from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Union

SyncAction = Literal["create", "renew", "expire"]

# --- EXPIRY ---
class ExpiryResolution(BaseModel):
    is_truly_expired: bool
    final_expiry: Optional[datetime] = None  # None = no enforced expiry
    effective_grace_days: Optional[int] = None

# --- DEVICE COMMANDS ---
class DeviceUserState(BaseModel):
    """Full desired state of one credential on the device, as the relay's /set-user expects it."""
    employee_code: str
    name: str
    valid_from: str
    valid_to: str
    enabled: bool

class DirectCall(BaseModel):
    kind: Literal["direct"] = "direct"
    state: DeviceUserState

class QueuedCommand(BaseModel):
    kind: Literal["queued"] = "queued"
    target: str = "ALL"
    command: str
    payload: Dict[str, Any] = Field(default_factory=dict)

DeviceEmission = Union[DirectCall, QueuedCommand]

class RelayReply(BaseModel):
    """The relay's answer to a direct call. body is exactly what the relay returned."""
    success: bool
    error: Optional[str] = None
    body: Dict[str, Any] = Field(default_factory=dict)

# --- REQUESTS ---
class SyncMemberRequest(BaseModel):
    member_id: str
    action: SyncAction

class EsslManagementRequest(BaseModel):
    action: str
    essl_id: Optional[str] = None
    user_id: Optional[str] = None
    pin: Optional[str] = None
    name: Optional[str] = None
    options: Optional[str] = None

class GlobalGracePeriodUpdate(BaseModel):
    global_grace_period: int

class MemberGracePeriodUpdate(BaseModel):
    grace_period: Optional[int] = None

# --- RESPONSES ---
class SyncOutcome(BaseModel):
    """Result of one direct sync of a member to the device."""
    member_id: str
    action: SyncAction
    enabled: bool
    is_truly_expired: bool
    success: bool
    request: Dict[str, Any]
    result: Dict[str, Any]
    error: Optional[str] = None

class MemberSyncResult(BaseModel):
    id: str
    status: Literal["success", "failed"]
    action: Optional[SyncAction] = None
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

class ExpiryCheckResponse(BaseModel):
    processed: int
    results: List[MemberSyncResult]
