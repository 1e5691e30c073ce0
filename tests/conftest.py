import os
import sys

# Keep the import-time engine off disk; tests build their own per-test database
os.environ.setdefault("DATABASE_URL", "sqlite://")
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models_orm import MemberORM
from service_modules.base import RelayError
from service_modules.settings_service import SettingsService
from service_modules.sync_log_service import SyncLogService
from service_modules.device_command_service import DeviceCommandService, relay_reply
from service_modules.reconciliation_service import ReconciliationService
from service_modules.device_management_service import DeviceManagementService
from service_modules.membership_service import MembershipService


class FakeRelay:
    """Stands in for RelayClient; answers per employee_code."""

    def __init__(self):
        self.sent = []
        self.responses = {}
        self.user_sync_calls = 0
        self.on_send = None

    def set_user(self, state):
        self.sent.append(state)
        if self.on_send:
            self.on_send(state)
        response = self.responses.get(state.employee_code, {"success": True})
        if isinstance(response, Exception):
            raise response
        return relay_reply(True, 200, dict(response))

    def request_user_sync(self):
        self.user_sync_calls += 1
        return {"status_code": 200, "body": "{\"success\": true}"}


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'gym_access_test.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def relay():
    return FakeRelay()


@pytest.fixture
def settings(session_factory):
    return SettingsService(session_factory=session_factory)


@pytest.fixture
def sync_log(session_factory):
    return SyncLogService(session_factory=session_factory)


@pytest.fixture
def commands(session_factory, relay):
    return DeviceCommandService(session_factory=session_factory, relay=relay)


@pytest.fixture
def engine_service(session_factory, settings, commands, sync_log):
    return ReconciliationService(
        session_factory=session_factory,
        settings=settings,
        commands=commands,
        sync_log=sync_log,
        max_workers=1
    )


@pytest.fixture
def management(session_factory, settings, commands):
    return DeviceManagementService(session_factory=session_factory, settings=settings, commands=commands)


@pytest.fixture
def membership(session_factory, settings):
    return MembershipService(session_factory=session_factory, settings=settings)


@pytest.fixture
def add_member(session_factory):
    def _add(member_id, **fields):
        values = {
            "username": member_id,
            "full_name": f"Member {member_id}",
            "essl_id": f"PIN{member_id}",
            "plan_status": "active",
            "essl_blocked": False,
            "approval_status": "approved",
        }
        values.update(fields)
        db = session_factory()
        try:
            db.add(MemberORM(id=member_id, **values))
            db.commit()
        finally:
            db.close()
        return member_id
    return _add


@pytest.fixture
def get_member(session_factory):
    def _get(member_id):
        db = session_factory()
        try:
            return db.query(MemberORM).filter(MemberORM.id == member_id).first()
        finally:
            db.close()
    return _get


@pytest.fixture
def relay_down():
    return RelayError("Relay request failed: connection refused")
