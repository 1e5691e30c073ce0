from sqlalchemy import Column, Integer, String, Boolean, Text
from database import Base
from datetime import datetime

# --- MEMBERSHIP ---

class MemberORM(Base):
    """Member profile; only the fields the access bridge reads or writes."""
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True)
    username = Column(String, nullable=True, index=True)
    full_name = Column(String, nullable=True)
    approval_status = Column(String, default="approved", index=True)  # pending, approved, rejected
    created_at = Column(String, default=lambda: datetime.utcnow().isoformat())

    # Plan
    plan_start_date = Column(String, nullable=True)  # ISO date or datetime
    plan_expiry_date = Column(String, nullable=True, index=True)  # ISO date or datetime, NULL = never expires
    grace_period = Column(Integer, nullable=True)  # Per-member override in days, NULL = use global

    # Derived by the reconciliation engine, never set directly
    plan_status = Column(String, default="active", index=True)  # active, expired
    essl_blocked = Column(Boolean, default=False, index=True)  # Last known device state

    # Biometric device
    essl_id = Column(String, nullable=True, index=True)  # PIN enrolled on the eSSL device
    device_sync_status = Column(String, nullable=True)  # SYNCED
    last_synced_at = Column(String, nullable=True)


# --- SETTINGS ---

class AppSettingsORM(Base):
    """Key/value settings rows. The tenant row is id='gym_settings'."""
    __tablename__ = "app_settings"

    id = Column(String, primary_key=True)
    value = Column(Text, nullable=True)  # JSON string
    updated_at = Column(String, nullable=True)


# --- DEVICE COMMAND QUEUE ---

class DeviceCommandORM(Base):
    """Command queued for the eSSL device, picked up by the relay when the device polls."""
    __tablename__ = "essl_commands"

    id = Column(Integer, primary_key=True, autoincrement=True)  # Also the sequence id sent to the device
    essl_id = Column(String, index=True)  # Device serial number or "ALL"
    command = Column(Text)
    status = Column(String, default="pending", index=True)  # pending, sent, completed, failed
    payload = Column(Text, nullable=True)  # JSON string
    created_at = Column(String, default=lambda: datetime.utcnow().isoformat())
    updated_at = Column(String, nullable=True)


class DeviceSyncLogORM(Base):
    """Append-only audit of direct device sync attempts."""
    __tablename__ = "device_sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    profile_id = Column(String, index=True)
    command = Column(String)  # create, renew, expire
    request_payload = Column(Text, nullable=True)  # JSON string
    response_payload = Column(Text, nullable=True)  # JSON string
    status = Column(String)  # success, failed, skipped
    error_message = Column(Text, nullable=True)
    created_at = Column(String, default=lambda: datetime.utcnow().isoformat(), index=True)
