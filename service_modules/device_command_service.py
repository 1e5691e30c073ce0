"""
Device Command Service - gets desired credential state onto the eSSL device.

Two delivery paths:
  * direct: POST the full user state to the relay's /set-user and wait for the answer.
  * queued: insert a text command into essl_commands; the relay hands it to the
    device on its next poll. Nothing waits for it and the member row is not touched.
"""
from .base import (
    json, logging, datetime, get_db_session, DeviceCommandORM, RelayError
)
from models import DeviceUserState, DirectCall, QueuedCommand, DeviceEmission, RelayReply
from typing import List, Optional, Sequence, Union
import os
import requests

logger = logging.getLogger("gym_app")

# --- RELAY CONFIGURATION ---
WORKER_URL = os.getenv("WORKER_URL", "http://localhost:8787").rstrip("/")
WORKER_SECRET = os.getenv("WORKER_SECRET") or os.getenv("INTERNAL_SECRET") or ""
RELAY_TIMEOUT_SECONDS = float(os.getenv("RELAY_TIMEOUT_SECONDS", "15"))

SET_USER_PATH = "/set-user"
USER_SYNC_PATH = "/essl/users/sync"

# --- DEVICE VOCABULARY ---
BROADCAST_TARGET = "ALL"
GROUP_ENABLED = 1
GROUP_BLOCKED = 99
DEFAULT_OPTIONS = "Delay,DateTime,TransTimes"


def _field(value) -> str:
    text = str(value).strip()
    if not text or any(ch in text for ch in "\r\n\t"):
        raise ValueError(f"Invalid device command field: {value!r}")
    return text


def access_group(enabled: bool) -> int:
    return GROUP_ENABLED if enabled else GROUP_BLOCKED


def update_user_access(pin: str, group: int = None, end_datetime: str = None) -> str:
    command = f"DATA UPDATE USER PIN={_field(pin)}"
    if group is not None:
        command += f" Group={int(group)}"
    if end_datetime:
        command += f" EndDateTime={_field(end_datetime)}"
    return command


def update_user_name(pin: str, name: str) -> str:
    return f"DATA UPDATE USER PIN={_field(pin)} Name={_field(name)}"


def delete_user(pin: str) -> str:
    return f"DATA DELETE USER PIN={_field(pin)}"


def query_attlog(pin: str = None, start_time: str = None) -> str:
    """Attendance log query; start_time is 'YYYY-MM-DD HH:MM:SS'."""
    command = "DATA QUERY ATTLOG"
    if pin:
        command += f" PIN={_field(pin)}"
    if start_time:
        command += f" StartTime={start_time}"
    return command


def query_users() -> str:
    return "DATA QUERY User"


def device_info() -> str:
    return "INFO"


def get_options(options: str = None) -> str:
    return f"GET OPTIONS {_field(options or DEFAULT_OPTIONS)}"


# --- RELAY CLIENT ---

def relay_reply(ok: bool, status_code: int, body: dict) -> RelayReply:
    """
    Decide success from the relay's answer without touching the body.
    Non-2xx always fails; a 2xx fails when it carries an error or success=false.
    """
    if not ok:
        return RelayReply(success=False, error=str(body.get("error") or f"HTTP Error {status_code}"), body=body)
    if body.get("error"):
        return RelayReply(success=False, error=str(body["error"]), body=body)
    if body.get("success", True) is False:
        return RelayReply(success=False, error="Relay reported failure", body=body)
    return RelayReply(success=True, body=body)


class RelayClient:
    """HTTP client for the relay (the worker that talks to the device)."""

    def __init__(self, base_url: str = None, secret: str = None, timeout: float = None, session: requests.Session = None):
        self.base_url = (base_url or WORKER_URL).rstrip("/")
        self.secret = WORKER_SECRET if secret is None else secret
        self.timeout = timeout or RELAY_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        # The relay accepts either header name, send both
        return {
            "Content-Type": "application/json",
            "x-api-key": self.secret,
            "x-internal-secret": self.secret
        }

    def set_user(self, state: DeviceUserState) -> RelayReply:
        """
        Push the full credential state. Raises RelayError on transport failure.
        """
        url = f"{self.base_url}{SET_USER_PATH}"
        try:
            response = self.session.post(url, headers=self._headers(), json=state.model_dump(), timeout=self.timeout)
        except requests.RequestException as e:
            raise RelayError(f"Relay request failed: {e}") from e

        try:
            body = response.json()
            body = body if isinstance(body, dict) else {"data": body}
        except ValueError:
            body = {"message": response.text}

        return relay_reply(response.ok, response.status_code, body)

    def request_user_sync(self) -> dict:
        """Ask the relay to pull the user list from the device."""
        url = f"{self.base_url}{USER_SYNC_PATH}"
        try:
            response = self.session.post(url, headers={"x-internal-secret": self.secret}, timeout=self.timeout)
        except requests.RequestException as e:
            raise RelayError(f"Relay request failed: {e}") from e
        return {"status_code": response.status_code, "body": response.text}


# --- EMITTER ---

class DeviceCommandService:
    """Sends device state directly through the relay or queues device commands."""

    def __init__(self, session_factory=get_db_session, relay: Optional[RelayClient] = None):
        self.session_factory = session_factory
        self.relay = relay or RelayClient()

    def emit(self, emission: Union[DeviceEmission, Sequence[QueuedCommand]]):
        """
        Deliver device state by the emission's kind.
        DirectCall returns the RelayReply, a QueuedCommand its row id, and a
        batch of QueuedCommands is inserted in one transaction and returns the ids.
        """
        if isinstance(emission, DirectCall):
            return self.send_direct(emission.state)
        if isinstance(emission, QueuedCommand):
            return self.queue([emission])[0]
        if isinstance(emission, (list, tuple)) and all(isinstance(cmd, QueuedCommand) for cmd in emission):
            return self.queue(list(emission))
        raise TypeError(f"Unknown device emission: {type(emission).__name__}")

    def send_direct(self, state: DeviceUserState) -> RelayReply:
        logger.info(f"Relay set-user {state.employee_code}: {'ENABLED' if state.enabled else 'BLOCKED'} until {state.valid_to}")
        return self.relay.set_user(state)

    def queue(self, commands: List[QueuedCommand]) -> List[int]:
        """Insert pending commands in one transaction and return their sequence ids."""
        if not commands:
            return []

        db = self.session_factory()
        try:
            now = datetime.utcnow().isoformat()
            rows = [
                DeviceCommandORM(
                    essl_id=cmd.target,
                    command=cmd.command,
                    status="pending",
                    payload=json.dumps(cmd.payload),
                    created_at=now
                )
                for cmd in commands
            ]
            db.add_all(rows)
            db.commit()

            ids = [row.id for row in rows]
            for cmd in commands:
                logger.info(f"Queued device command for {cmd.target}: {cmd.command}")
            return ids

        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_commands(self, status: str = None, limit: int = 100) -> List[dict]:
        db = self.session_factory()
        try:
            query = db.query(DeviceCommandORM)
            if status:
                query = query.filter(DeviceCommandORM.status == status)
            rows = query.order_by(DeviceCommandORM.id.asc()).limit(limit).all()
            return [
                {
                    "id": row.id,
                    "essl_id": row.essl_id,
                    "command": row.command,
                    "status": row.status,
                    "payload": json.loads(row.payload) if row.payload else None,
                    "created_at": row.created_at
                }
                for row in rows
            ]
        finally:
            db.close()

    def request_user_sync(self) -> dict:
        return self.relay.request_user_sync()


# Singleton instance
device_command_service = DeviceCommandService()


def get_device_command_service() -> DeviceCommandService:
    """Dependency injection helper."""
    return device_command_service
