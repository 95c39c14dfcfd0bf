import logging
from datetime import date, datetime, time, timezone
from typing import Any, List, Optional, Sequence, Tuple

import requests

from safety_net.core.errors import DependencyError
from safety_net.services.storage import (
    AttendanceRow,
    ProfileRow,
    ScheduleRow,
    StorageClient,
    UserAccount,
)


def _fmt_time(value: time) -> str:
    return value.strftime("%H:%M:%S")


def _error_body(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class RestStorage(StorageClient):
    """Hosted backend-as-a-service accessed over its REST (PostgREST) and auth-admin APIs.

    Requests carry the privileged service key, so row-level security does not hide rows
    belonging to other users.
    """

    def __init__(self, base_url: str, service_key: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Content-Type": "application/json",
        })

    def _request(self, stage: str, method: str, path: str, params: Optional[Sequence[Tuple[str, str]]] = None,
                 json_body: Any = None, headers: Optional[dict] = None, allow: Sequence[int] = ()) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(
                method, url, params=params, json=json_body, headers=headers, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise DependencyError(stage, f"Storage request timed out after {self.timeout}s: {method} {path}") from e
        except requests.RequestException as e:
            raise DependencyError(stage, f"Storage unreachable: {e}") from e
        if resp.ok or resp.status_code in allow:
            return resp
        body = _error_body(resp)
        message = body.get("message") if isinstance(body, dict) and body.get("message") else f"HTTP {resp.status_code}"
        raise DependencyError(stage, f"Storage query failed: {message}", status=resp.status_code, body=body)

    def _rows(self, stage: str, path: str, params: Sequence[Tuple[str, str]]) -> List[dict]:
        resp = self._request(stage, "GET", path, params=params)
        try:
            data = resp.json()
        except ValueError as e:
            raise DependencyError(stage, "Storage returned a non-JSON body") from e
        if not isinstance(data, list):
            raise DependencyError(stage, "Storage returned an unexpected payload", body=data)
        return data

    def find_schedules(self, after: Optional[time], until: time) -> List[ScheduleRow]:
        params = [("select", "id,time,medications(name,user_id)")]
        if after is None:
            params.append(("time", f"gte.{_fmt_time(time(0, 0, 0))}"))
        else:
            params.append(("time", f"gt.{_fmt_time(after)}"))
        params.append(("time", f"lte.{_fmt_time(until)}"))
        params.append(("order", "time.asc,id.asc"))
        rows = self._rows("fetch-schedules", "/rest/v1/medication_schedules", params)
        return [ScheduleRow.model_validate(r) for r in rows]

    def find_attendance(self, schedule_id: str, on: date) -> Optional[AttendanceRow]:
        # A list query with limit=1 yields [] for "no record" instead of an error
        rows = self._rows("attendance", "/rest/v1/medication_logs", [
            ("select", "id,status"),
            ("schedule_id", f"eq.{schedule_id}"),
            ("date", f"eq.{on.isoformat()}"),
            ("limit", "1"),
        ])
        return AttendanceRow.model_validate(rows[0]) if rows else None

    def get_user(self, user_id: str) -> Optional[UserAccount]:
        resp = self._request("resolve-user", "GET", f"/auth/v1/admin/users/{user_id}", allow=(404,))
        if resp.status_code == 404:
            return None
        try:
            data = resp.json()
        except ValueError as e:
            raise DependencyError("resolve-user", "Auth admin returned a non-JSON body") from e
        # Some deployments wrap the account as {"user": {...}}
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            data = data["user"]
        if not isinstance(data, dict) or not data.get("id"):
            return None
        return UserAccount.model_validate(data)

    def get_profile(self, user_id: str) -> Optional[ProfileRow]:
        rows = self._rows("resolve-profile", "/rest/v1/profiles", [
            ("select", "id,patient_name"),
            ("id", f"eq.{user_id}"),
            ("limit", "1"),
        ])
        return ProfileRow.model_validate(rows[0]) if rows else None

    def claim_alert(self, schedule_id: str, on: date, alert_type: str) -> bool:
        resp = self._request(
            "claim",
            "POST",
            "/rest/v1/alert_claims",
            json_body={"schedule_id": schedule_id, "date": on.isoformat(), "alert_type": alert_type},
            headers={"Prefer": "return=minimal"},
            allow=(409,),
        )
        if resp.status_code == 409:
            logging.info(f"Alert already claimed for schedule {schedule_id} on {on.isoformat()}")
            return False
        return True

    def record_alert(self, schedule_id: str, on: date, alert_type: str, message_id: Optional[str]) -> None:
        self._request(
            "record",
            "PATCH",
            "/rest/v1/alert_claims",
            params=[
                ("schedule_id", f"eq.{schedule_id}"),
                ("date", f"eq.{on.isoformat()}"),
                ("alert_type", f"eq.{alert_type}"),
            ],
            json_body={"message_id": message_id, "sent_at": datetime.now(timezone.utc).isoformat()},
            headers={"Prefer": "return=minimal"},
        )

    def release_alert(self, schedule_id: str, on: date, alert_type: str) -> None:
        self._request(
            "release",
            "DELETE",
            "/rest/v1/alert_claims",
            params=[
                ("schedule_id", f"eq.{schedule_id}"),
                ("date", f"eq.{on.isoformat()}"),
                ("alert_type", f"eq.{alert_type}"),
                ("sent_at", "is.null"),
            ],
            headers={"Prefer": "return=minimal"},
        )

    def close(self) -> None:
        self._session.close()
