from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import auth
from main import app
from service_modules.reconciliation_service import get_reconciliation_service
from service_modules.device_management_service import get_device_management_service
from service_modules.settings_service import get_settings_service
from service_modules.membership_service import get_membership_service
from service_modules.sync_log_service import get_sync_log_service
from service_modules.device_command_service import get_device_command_service


@pytest.fixture
def client(engine_service, management, settings, membership, sync_log, commands):
    app.dependency_overrides[get_reconciliation_service] = lambda: engine_service
    app.dependency_overrides[get_device_management_service] = lambda: management
    app.dependency_overrides[get_settings_service] = lambda: settings
    app.dependency_overrides[get_membership_service] = lambda: membership
    app.dependency_overrides[get_sync_log_service] = lambda: sync_log
    app.dependency_overrides[get_device_command_service] = lambda: commands
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_check_expired_members(client, add_member, get_member):
    add_member("m1", plan_expiry_date="2020-01-01")
    add_member("m2", plan_expiry_date="2099-01-01")

    response = client.post("/functions/check-expired-members")

    assert response.status_code == 200
    data = response.json()
    assert data["processed"] == 1
    assert data["results"][0]["id"] == "m1"
    assert data["results"][0]["status"] == "success"
    assert data["results"][0]["action"] == "expire"
    assert get_member("m1").essl_blocked is True


def test_check_expired_members_survives_unreadable_dates(client, add_member, get_member):
    add_member("good", plan_expiry_date="2020-01-01")
    add_member("bad", plan_expiry_date="01/01/2020")

    response = client.post("/functions/check-expired-members")

    assert response.status_code == 200
    statuses = {r["id"]: r["status"] for r in response.json()["results"]}
    assert statuses == {"good": "success", "bad": "failed"}
    assert get_member("good").essl_blocked is True
    assert client.post("/functions/sync-member-to-device", json={"member_id": "bad", "action": "renew"}).status_code == 400


def test_check_expired_members_reports_startup_failure(client, settings):
    with patch.object(settings, "get_global_grace_period", side_effect=RuntimeError("settings unavailable")):
        response = client.post("/functions/check-expired-members")
    assert response.status_code == 500
    assert response.json() == {"error": "settings unavailable"}


def test_sync_member_passes_relay_result_through(client, relay, add_member):
    add_member("m1", plan_expiry_date="2099-01-01")
    relay.responses["PINm1"] = {"success": True, "device": "X990"}

    response = client.post("/functions/sync-member-to-device", json={"member_id": "m1", "action": "create"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "device": "X990"}
    assert relay.sent[0].enabled is True


def test_sync_member_returns_relay_body_unmodified(client, relay, add_member):
    add_member("m1", plan_expiry_date="2099-01-01")
    relay.responses["PINm1"] = {"ok": True}

    response = client.post("/functions/sync-member-to-device", json={"member_id": "m1", "action": "renew"})

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_sync_member_errors(client, relay, relay_down, add_member):
    add_member("nopin", essl_id=None)
    add_member("m1", plan_expiry_date="2099-01-01")
    relay.responses["PINm1"] = relay_down

    assert client.post("/functions/sync-member-to-device", json={"member_id": "ghost", "action": "renew"}).status_code == 404
    missing = client.post("/functions/sync-member-to-device", json={"member_id": "nopin", "action": "renew"})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Member does not have an essl_id"
    assert client.post("/functions/sync-member-to-device", json={"member_id": "m1", "action": "renew"}).status_code == 502
    assert client.post("/functions/sync-member-to-device", json={"member_id": "m1", "action": "pause"}).status_code == 422


def test_essl_management(client, commands):
    response = client.post("/functions/essl-management", json={"action": "delete-user", "essl_id": "77"})
    assert response.status_code == 200
    assert response.json()["message"] == "Delete command queued"
    assert [c["command"] for c in commands.get_commands()] == ["DATA DELETE USER PIN=77"]

    invalid = client.post("/functions/essl-management", json={"action": "explode"})
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid action"

    missing = client.post("/functions/essl-management", json={"action": "delete-user"})
    assert missing.status_code == 400
    assert missing.json()["detail"] == "Missing essl_id"


def test_grace_period_settings(client):
    assert client.get("/api/admin/settings/grace-period").json() == {"global_grace_period": 0}
    response = client.put("/api/admin/settings/grace-period", json={"global_grace_period": 3})
    assert response.json() == {"global_grace_period": 3}
    assert client.get("/api/admin/settings/grace-period").json() == {"global_grace_period": 3}


def test_member_grace_period_endpoint(client, add_member, get_member):
    add_member("m1", plan_expiry_date="2024-01-10")
    response = client.put("/api/admin/members/m1/grace-period", json={"grace_period": -1})
    assert response.status_code == 200
    assert get_member("m1").grace_period == -1
    assert client.put("/api/admin/members/ghost/grace-period", json={"grace_period": 1}).status_code == 404


def test_subscriptions_and_logs(client, add_member):
    add_member("m1", plan_expiry_date="2020-01-01")
    client.post("/functions/check-expired-members")

    subs = client.get("/api/admin/subscriptions", params={"status": "expired"})
    assert subs.status_code == 200
    assert [m["id"] for m in subs.json()["members"]] == ["m1"]
    assert client.get("/api/admin/subscriptions", params={"status": "bogus"}).status_code == 400

    logs = client.get("/api/admin/sync-logs", params={"member_id": "m1"}).json()["logs"]
    assert len(logs) == 1
    assert logs[0]["command"] == "expire"
    assert logs[0]["status"] == "success"

    assert client.get("/api/admin/device-commands").json() == {"commands": []}


def test_internal_secret_is_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(auth, "FUNCTIONS_SECRET", "top-secret")

    assert client.post("/functions/check-expired-members").status_code == 401
    assert client.get("/api/admin/sync-logs", headers={"X-Internal-Secret": "wrong"}).status_code == 401
    ok = client.get("/api/admin/sync-logs", headers={"X-Internal-Secret": "top-secret"})
    assert ok.status_code == 200
