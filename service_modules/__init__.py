"""
Services package - organized service modules.

This package provides the access bridge services and their dependency helpers.
"""
from .base import *
from .settings_service import SettingsService, settings_service, get_settings_service
from .sync_log_service import SyncLogService, sync_log_service, get_sync_log_service
from .device_command_service import (
    RelayClient, DeviceCommandService, device_command_service, get_device_command_service
)
from .reconciliation_service import ReconciliationService, reconciliation_service, get_reconciliation_service
from .device_management_service import (
    DeviceManagementService, device_management_service, get_device_management_service
)
from .membership_service import MembershipService, membership_service, get_membership_service

__all__ = [
    'SettingsService',
    'settings_service',
    'get_settings_service',
    'SyncLogService',
    'sync_log_service',
    'get_sync_log_service',
    'RelayClient',
    'DeviceCommandService',
    'device_command_service',
    'get_device_command_service',
    'ReconciliationService',
    'reconciliation_service',
    'get_reconciliation_service',
    'DeviceManagementService',
    'device_management_service',
    'get_device_management_service',
    'MembershipService',
    'membership_service',
    'get_membership_service',
]
