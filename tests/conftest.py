from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional, Set, Tuple

import pytest

from safety_net.core.config import Settings
from safety_net.core.errors import DependencyError
from safety_net.services.mail_service import MailMessage
from safety_net.services.storage import (
    AttendanceRow,
    ProfileRow,
    ScheduleRow,
    StorageClient,
    UserAccount,
)


class FakeStorage(StorageClient):
    """In-memory storage collaborator; records every call it receives."""

    def __init__(self):
        self.schedules: List[dict] = []
        self.logs: Set[Tuple[str, date]] = set()
        self.users: Dict[str, dict] = {}
        self.profiles: Dict[str, dict] = {}
        self.claims: Dict[Tuple[str, date, str], Optional[str]] = {}
        self.fail_fetch = False
        self.fail_attendance_for: Set[str] = set()
        self.fail_user_for: Set[str] = set()
        self.fail_profile_for: Set[str] = set()
        self.fail_claim = False
        self.released: List[Tuple[str, date, str]] = []
        self.attendance_calls: List[Tuple[str, date]] = []
        self.schedule_queries: List[Tuple[Optional[time], time]] = []

    def add_schedule(self, schedule_id, at, medication=None):
        self.schedules.append({"id": schedule_id, "time": at, "medications": medication})

    def add_user(self, user_id, email, metadata=None, patient_name=None):
        self.users[user_id] = {"id": user_id, "email": email, "user_metadata": metadata or {}}
        if patient_name is not None:
            self.profiles[user_id] = {"id": user_id, "patient_name": patient_name}

    def find_schedules(self, after, until):
        self.schedule_queries.append((after, until))
        if self.fail_fetch:
            raise DependencyError("fetch-schedules", "connection refused")
        rows = [ScheduleRow.model_validate(s) for s in self.schedules]
        picked = [r for r in rows if (after is None or r.time > after) and r.time <= until]
        return sorted(picked, key=lambda r: (r.time, r.id))

    def find_attendance(self, schedule_id, on):
        self.attendance_calls.append((schedule_id, on))
        if schedule_id in self.fail_attendance_for:
            raise DependencyError("attendance", "query timeout")
        if (schedule_id, on) in self.logs:
            return AttendanceRow(id=f"log-{schedule_id}", status="taken")
        return None

    def get_user(self, user_id):
        if user_id in self.fail_user_for:
            raise DependencyError("resolve-user", "auth admin unavailable")
        data = self.users.get(user_id)
        return UserAccount.model_validate(data) if data else None

    def get_profile(self, user_id):
        if user_id in self.fail_profile_for:
            raise DependencyError("resolve-profile", "profiles table unavailable")
        data = self.profiles.get(user_id)
        return ProfileRow.model_validate(data) if data else None

    def claim_alert(self, schedule_id, on, alert_type):
        if self.fail_claim:
            raise DependencyError("claim", "write rejected")
        key = (schedule_id, on, alert_type)
        if key in self.claims:
            return False
        self.claims[key] = None
        return True

    def record_alert(self, schedule_id, on, alert_type, message_id):
        self.claims[(schedule_id, on, alert_type)] = message_id

    def release_alert(self, schedule_id, on, alert_type):
        key = (schedule_id, on, alert_type)
        self.released.append(key)
        if key in self.claims and self.claims[key] is None:
            del self.claims[key]


class FakeMailer:
    def __init__(self):
        self.sent: List[MailMessage] = []
        self.fail_for: Set[str] = set()
        self.closed = False

    def send(self, message: MailMessage):
        if set(message.to) & self.fail_for:
            raise DependencyError("send", "Mail transport rejected the message: invalid domain", status=422)
        self.sent.append(message)
        return f"msg-{len(self.sent)}"

    def post_email(self, payload):
        self.sent.append(MailMessage(from_=payload["from"], to=payload["to"], subject=payload["subject"], html=payload["html"]))
        return 200, {"id": f"msg-{len(self.sent)}"}

    def close(self):
        self.closed = True


@pytest.fixture
def audit_log(tmp_path):
    return str(tmp_path / "alerts.log")


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def now():
    return datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def cfg():
    return Settings(
        _env_file=None,
        STORAGE_BACKEND="rest",
        STORAGE_URL="https://storage.example.test",
        STORAGE_SERVICE_KEY="service-key",
        RESEND_API_KEY="re_test",
        ALERT_TIMEZONE="UTC",
        LOOKBACK_LOW_MINUTES=90,
        LOOKBACK_HIGH_MINUTES=60,
        CRON_SECRET=None,
    )
