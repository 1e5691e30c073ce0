"""
Base service utilities and shared imports.
All services should import from here for common functionality.
"""
import uuid
import json
import logging
from datetime import date, datetime, timedelta, timezone

from database import get_db_session, Base, engine
from models_orm import (
    MemberORM, AppSettingsORM, DeviceCommandORM, DeviceSyncLogORM
)

# Re-export for convenience
__all__ = [
    'uuid', 'json', 'logging', 'date', 'datetime', 'timedelta', 'timezone',
    'get_db_session', 'Base', 'engine',
    'MemberORM', 'AppSettingsORM', 'DeviceCommandORM', 'DeviceSyncLogORM',
    'DeviceSyncError', 'MemberNotFound', 'MissingCredential', 'RelayError',
    'utcnow',
]

logger = logging.getLogger("gym_app")


# --- ERRORS ---

class DeviceSyncError(Exception):
    """Base class for access bridge failures."""


class MemberNotFound(DeviceSyncError):
    def __init__(self, member_id: str):
        super().__init__(f"Member {member_id} not found")
        self.member_id = member_id


class MissingCredential(DeviceSyncError):
    def __init__(self, member_id: str):
        super().__init__("Member does not have an essl_id")
        self.member_id = member_id


class RelayError(DeviceSyncError):
    """The relay could not be reached or answered with something unusable."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
