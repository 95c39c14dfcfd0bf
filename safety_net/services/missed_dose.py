"""Missed-dose detection and alerting.

One invocation walks a linear pipeline:

    compute_window -> find_candidates -> (per schedule) check_attendance
        -> resolve_recipient -> dispatch_alert

Per-schedule stages return an ``Outcome`` tagged with an ``OutcomeKind``. The driver
keeps going while the tag says so and records the outcome otherwise, so expected
"no data" situations never travel as exceptions. Only the schedule fetch is fatal.
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Dict, List, Optional

from safety_net.core.errors import DependencyError
from safety_net.services.mail_service import MailMessage, ResendMailClient
from safety_net.services.storage import ScheduleRow, StorageClient
from safety_net.utils.alert_logger import log_alert_event
from safety_net.utils.templates import render_template

ALERT_TYPE = "missed_dose"
ALERT_SUBJECT = "CRITICAL: Missed Medication Alert"
DEFAULT_PATIENT_NAME = "the patient"
DEFAULT_NOTIFICATION_SETTINGS = {"emailNotifications": True, "missedAlerts": True}

_END_OF_DAY = time(23, 59, 59)


def _fmt(value: time) -> str:
    return value.strftime("%H:%M:%S")


@dataclass(frozen=True)
class WindowSegment:
    """Part of the window that falls on one civil date; ``after=None`` means from midnight inclusive."""
    on: date
    after: Optional[time]
    until: time


@dataclass(frozen=True)
class Window:
    now: datetime
    today: date
    start: datetime
    end: datetime
    segments: List[WindowSegment]

    @property
    def window_start(self) -> str:
        return _fmt(self.start.time())

    @property
    def window_end(self) -> str:
        return _fmt(self.end.time())

    def describe(self) -> str:
        return f"({self.window_start}, {self.window_end}]"


def compute_window(now: datetime, tz: tzinfo, lookback_low: timedelta, lookback_high: timedelta) -> Window:
    """Turn "now" into the civil time-of-day interval (now - low, now - high].

    A naive ``now`` is taken as UTC. "now" is truncated to the minute so that
    invocations on a fixed cadence produce adjacent windows even when the trigger
    fires a few seconds late. The subtraction is done on absolute instants and only
    then converted to civil time, so a window crossing midnight is split into one
    segment per civil date instead of producing out-of-range times.
    """
    if lookback_low <= lookback_high:
        raise ValueError("lookback_low must be greater than lookback_high")
    if lookback_high < timedelta(0):
        raise ValueError("lookback_high must not be negative")
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    instant = now.astimezone(timezone.utc).replace(second=0, microsecond=0)

    civil_now = now.astimezone(tz)
    start = (instant - lookback_low).astimezone(tz)
    end = (instant - lookback_high).astimezone(tz)

    if start.date() == end.date():
        # On a DST fall-back day the repeated hour can put start after end on the
        # wall clock; that interval holds no time-of-day, so nothing is queried.
        segments = []
        if start.time() < end.time():
            segments.append(WindowSegment(on=end.date(), after=start.time(), until=end.time()))
    else:
        segments = [
            WindowSegment(on=start.date(), after=start.time(), until=_END_OF_DAY),
            WindowSegment(on=end.date(), after=None, until=end.time()),
        ]
    return Window(now=civil_now, today=civil_now.date(), start=start, end=end, segments=segments)


@dataclass(frozen=True)
class Candidate:
    schedule: ScheduleRow
    dose_date: date

    @property
    def schedule_id(self) -> str:
        return self.schedule.id


@dataclass(frozen=True)
class Recipient:
    email: str
    user_id: str
    patient_name: str
    medication_name: str


class OutcomeKind(str, enum.Enum):
    MISSED = "missed"
    RESOLVED = "resolved"
    ATTENDED = "attended"
    SKIPPED = "skipped"
    SUPPRESSED = "suppressed"
    ALREADY_ALERTED = "already_alerted"
    FAILED = "failed"
    DISPATCHED = "dispatched"


CONTINUE_KINDS = {OutcomeKind.MISSED, OutcomeKind.RESOLVED}


@dataclass
class Outcome:
    schedule_id: str
    kind: OutcomeKind
    reason: Optional[str] = None
    recipient: Optional[Recipient] = None
    message_id: Optional[str] = None


@dataclass
class CheckResult:
    window: Window
    candidates: int = 0
    outcomes: List[Outcome] = field(default_factory=list)

    @property
    def no_candidates(self) -> bool:
        return self.candidates == 0

    @property
    def reports(self) -> List[Dict[str, Optional[str]]]:
        return [
            {"scheduleId": o.schedule_id, "emailId": o.message_id}
            for o in self.outcomes if o.kind == OutcomeKind.DISPATCHED
        ]

    def count(self, kind: OutcomeKind) -> int:
        return sum(1 for o in self.outcomes if o.kind == kind)


def find_candidates(storage: StorageClient, window: Window) -> List[Candidate]:
    """Schedules whose time-of-day lies in the window, each tagged with the date its dose was due.

    Raises DependencyError: no partial window can be trusted.
    """
    candidates: List[Candidate] = []
    for segment in window.segments:
        try:
            rows = storage.find_schedules(segment.after, segment.until)
        except DependencyError:
            raise
        except Exception as e:
            raise DependencyError("fetch-schedules", f"Schedule query failed: {e}") from e
        candidates.extend(Candidate(schedule=row, dose_date=segment.on) for row in rows)
    return candidates


def check_attendance(storage: StorageClient, candidate: Candidate) -> Outcome:
    try:
        record = storage.find_attendance(candidate.schedule_id, candidate.dose_date)
    except Exception as e:
        logging.error(f"Attendance lookup failed for schedule {candidate.schedule_id}: {e}")
        return Outcome(candidate.schedule_id, OutcomeKind.FAILED, reason=f"attendance: {e}")
    if record is not None:
        return Outcome(candidate.schedule_id, OutcomeKind.ATTENDED)
    logging.info(f"Miss detected for schedule {candidate.schedule_id} on {candidate.dose_date.isoformat()}")
    return Outcome(candidate.schedule_id, OutcomeKind.MISSED)


def notification_settings(user_metadata: Optional[dict]) -> dict:
    raw = (user_metadata or {}).get("notificationSettings")
    if not isinstance(raw, dict):
        return dict(DEFAULT_NOTIFICATION_SETTINGS)
    merged = dict(DEFAULT_NOTIFICATION_SETTINGS)
    merged.update(raw)
    return merged


def resolve_recipient(storage: StorageClient, candidate: Candidate) -> Outcome:
    sid = candidate.schedule_id
    medication = candidate.schedule.medication
    if medication is None:
        logging.warning(f"Schedule {sid} has no medication; cannot address an alert")
        return Outcome(sid, OutcomeKind.SKIPPED, reason="no medication")
    if not medication.user_id:
        logging.warning(f"Medication for schedule {sid} has no owning user; cannot address an alert")
        return Outcome(sid, OutcomeKind.SKIPPED, reason="no user id")

    user_id = medication.user_id
    try:
        account = storage.get_user(user_id)
    except Exception as e:
        logging.error(f"Could not fetch account for user {user_id}: {e}")
        return Outcome(sid, OutcomeKind.FAILED, reason=f"resolve-user: {e}")
    if account is None or not account.email:
        logging.error(f"Could not fetch email for user {user_id}")
        return Outcome(sid, OutcomeKind.SKIPPED, reason="no account email")

    prefs = notification_settings(account.user_metadata)
    if not prefs.get("emailNotifications") or not prefs.get("missedAlerts"):
        logging.info(f"Skipping notification for {user_id} (Disabled in settings)")
        return Outcome(sid, OutcomeKind.SUPPRESSED, reason="disabled in settings")

    try:
        profile = storage.get_profile(user_id)
    except Exception as e:
        # Display name only; the placeholder below covers it
        logging.warning(f"Profile lookup failed for user {user_id}: {e}")
        profile = None
    patient_name = (profile.patient_name if profile else None) or DEFAULT_PATIENT_NAME

    recipient = Recipient(
        email=account.email,
        user_id=user_id,
        patient_name=patient_name,
        medication_name=medication.name or "their medication",
    )
    return Outcome(sid, OutcomeKind.RESOLVED, recipient=recipient)


def compose_alert(recipient: Recipient, candidate: Candidate, now: datetime, mail_from: str) -> MailMessage:
    body = render_template("missed_dose_alert.html", {
        "patient_name": recipient.patient_name,
        "medicine_name": recipient.medication_name,
        "scheduled_time": candidate.schedule.time_label,
        "current_time": now.strftime("%H:%M:%S %Z").strip(),
    })
    return MailMessage(from_=mail_from, to=[recipient.email], subject=ALERT_SUBJECT, html=body)


def dispatch_alert(mailer: ResendMailClient, recipient: Recipient, candidate: Candidate, now: datetime,
                   mail_from: str) -> Outcome:
    sid = candidate.schedule_id
    message = compose_alert(recipient, candidate, now, mail_from)
    try:
        message_id = mailer.send(message)
    except Exception as e:
        logging.error(f"Alert dispatch failed for schedule {sid}: {e}")
        return Outcome(sid, OutcomeKind.FAILED, reason=f"send: {e}", recipient=recipient)
    logging.info(f"Missed-dose alert sent for schedule {sid} (message {message_id})")
    return Outcome(sid, OutcomeKind.DISPATCHED, recipient=recipient, message_id=message_id)


def _claim(storage: StorageClient, candidate: Candidate) -> Optional[Outcome]:
    sid = candidate.schedule_id
    try:
        claimed = storage.claim_alert(sid, candidate.dose_date, ALERT_TYPE)
    except Exception as e:
        logging.error(f"Could not claim alert for schedule {sid}: {e}")
        return Outcome(sid, OutcomeKind.FAILED, reason=f"claim: {e}")
    if not claimed:
        return Outcome(sid, OutcomeKind.ALREADY_ALERTED)
    return None


def _record(storage: StorageClient, candidate: Candidate, message_id: Optional[str]) -> None:
    try:
        storage.record_alert(candidate.schedule_id, candidate.dose_date, ALERT_TYPE, message_id)
    except Exception as e:
        logging.warning(f"Alert sent but claim not updated for schedule {candidate.schedule_id}: {e}")


def _release(storage: StorageClient, candidate: Candidate) -> None:
    try:
        storage.release_alert(candidate.schedule_id, candidate.dose_date, ALERT_TYPE)
    except Exception as e:
        logging.error(f"Alert failed and claim could not be released for schedule {candidate.schedule_id}: {e}")


def process_candidate(storage: StorageClient, mailer: ResendMailClient, candidate: Candidate, now: datetime,
                      mail_from: str, claims_enabled: bool = False) -> Outcome:
    outcome = check_attendance(storage, candidate)
    if outcome.kind not in CONTINUE_KINDS:
        return outcome
    outcome = resolve_recipient(storage, candidate)
    if outcome.kind not in CONTINUE_KINDS:
        return outcome
    recipient = outcome.recipient
    if claims_enabled:
        blocked = _claim(storage, candidate)
        if blocked is not None:
            return blocked
    outcome = dispatch_alert(mailer, recipient, candidate, now, mail_from)
    if claims_enabled:
        if outcome.kind == OutcomeKind.DISPATCHED:
            _record(storage, candidate, outcome.message_id)
        else:
            _release(storage, candidate)
    return outcome


def run_missed_dose_check(
    storage: StorageClient,
    mailer: ResendMailClient,
    *,
    tz: tzinfo,
    lookback_low: timedelta,
    lookback_high: timedelta,
    mail_from: str,
    now: Optional[datetime] = None,
    claims_enabled: bool = False,
    audit_log: Optional[str] = None,
) -> CheckResult:
    """Run one invocation of the missed-dose job against the given collaborators.

    Raises DependencyError when the candidate schedules cannot be fetched. Every
    other failure is confined to the schedule it happened on. Dispatch outcomes are
    appended to ``audit_log`` when a path is given.
    """
    window = compute_window(now or datetime.now(timezone.utc), tz, lookback_low, lookback_high)
    logging.info(f"Checking for misses in window {window.describe()} (today={window.today.isoformat()})")

    candidates = find_candidates(storage, window)
    result = CheckResult(window=window, candidates=len(candidates))
    if not candidates:
        logging.info("No schedules found for this window.")
        return result

    seen = set()
    for candidate in candidates:
        key = (candidate.schedule_id, candidate.dose_date)
        if key in seen:
            continue
        seen.add(key)
        outcome = process_candidate(storage, mailer, candidate, window.now, mail_from, claims_enabled)
        result.outcomes.append(outcome)
        if outcome.kind in (OutcomeKind.DISPATCHED, OutcomeKind.FAILED):
            log_alert_event(f"alert.{outcome.kind.value}", {
                "schedule_id": outcome.schedule_id,
                "date": candidate.dose_date.isoformat(),
                "message_id": outcome.message_id,
                "reason": outcome.reason,
            }, path=audit_log)

    log_alert_event("check.complete", {
        "window": window.describe(),
        "candidates": result.candidates,
        "dispatched": result.count(OutcomeKind.DISPATCHED),
        "failed": result.count(OutcomeKind.FAILED),
    }, path=audit_log)
    return result
