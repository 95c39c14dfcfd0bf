import json
from datetime import date

import pytest
from fastapi.testclient import TestClient

from safety_net.core.config import get_settings
from safety_net.main import app
from safety_net.routes import alerts as alerts_routes
from safety_net.routes.cron import get_clock, get_collaborators
from safety_net.services.clients import Collaborators


@pytest.fixture
def client(cfg, storage, mailer, now):
    app.dependency_overrides[get_settings] = lambda: cfg
    app.dependency_overrides[get_collaborators] = lambda: Collaborators(storage=storage, mailer=mailer)
    app.dependency_overrides[get_clock] = lambda: (lambda: now)
    yield TestClient(app)
    app.dependency_overrides.clear()


def seed_miss(storage, schedule_id="s1", at="09:00:00"):
    storage.add_user("u1", "care@example.com", patient_name="Asha")
    storage.add_schedule(schedule_id, at, {"name": "Metformin", "user_id": "u1"})


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_check_complete_reports_dispatches(client, storage, mailer):
    seed_miss(storage)

    resp = client.get("/api/cron/check-missed")

    assert resp.status_code == 200
    assert resp.json() == {
        "message": "Check complete",
        "reportsCount": 1,
        "reports": [{"scheduleId": "s1", "emailId": "msg-1"}],
    }
    assert len(mailer.sent) == 1


def test_post_also_runs_the_check(client, storage):
    seed_miss(storage)
    resp = client.post("/api/cron/check-missed")
    assert resp.status_code == 200
    assert resp.json()["reportsCount"] == 1


def test_check_complete_with_zero_misses(client, storage):
    seed_miss(storage)
    storage.logs.add(("s1", date(2024, 5, 1)))

    resp = client.get("/api/cron/check-missed")

    assert resp.json() == {"message": "Check complete", "reportsCount": 0, "reports": []}


def test_no_schedules_in_window(client, mailer):
    resp = client.get("/api/cron/check-missed")
    assert resp.status_code == 200
    assert resp.json() == {"message": "No schedules found for this window."}
    assert mailer.sent == []


@pytest.mark.parametrize("method", ["put", "patch", "delete"])
def test_other_methods_not_allowed(client, method):
    resp = getattr(client, method)("/api/cron/check-missed")
    assert resp.status_code == 405
    assert resp.json() == {"error": "Method not allowed"}


def test_fetch_failure_is_internal_server_error(client, storage, mailer):
    storage.fail_fetch = True

    resp = client.get("/api/cron/check-missed")

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Internal Server Error"
    assert "connection refused" in body["message"]
    assert mailer.sent == []


def test_missing_configuration_names_items(cfg):
    broken = cfg.model_copy(update={"RESEND_API_KEY": None, "STORAGE_SERVICE_KEY": None})
    app.dependency_overrides[get_settings] = lambda: broken
    try:
        resp = TestClient(app).get("/api/cron/check-missed")
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Configuration Error"
    assert "RESEND_API_KEY" in body["details"]
    assert "STORAGE_SERVICE_KEY" in body["details"]


def test_audit_log_follows_injected_settings(client, cfg, storage, tmp_path):
    cfg.ALERT_AUDIT_LOG = str(tmp_path / "cron-audit.log")
    seed_miss(storage)

    client.get("/api/cron/check-missed")

    with open(cfg.ALERT_AUDIT_LOG, encoding="utf-8") as f:
        events = [json.loads(line)["event"] for line in f]
    assert events == ["alert.dispatched", "check.complete"]


def test_cron_secret_required_when_configured(client, cfg, storage):
    cfg.CRON_SECRET = "s3cret"
    seed_miss(storage)

    assert client.get("/api/cron/check-missed").status_code == 401
    assert client.get("/api/cron/check-missed", headers={"Authorization": "Bearer nope"}).status_code == 401
    ok = client.get("/api/cron/check-missed", headers={"Authorization": "Bearer s3cret"})
    assert ok.status_code == 200
    assert ok.json()["reportsCount"] == 1


# --- manual alert endpoints ---------------------------------------------------

@pytest.fixture
def manual_mailer(monkeypatch, mailer):
    monkeypatch.setattr(alerts_routes, "build_mailer", lambda cfg: mailer)
    return mailer


def test_send_critical_alert(client, manual_mailer):
    resp = client.post("/api/send-critical-alert", json={
        "to": "care@example.com", "patientName": "Asha",
        "medicineName": "Metformin", "scheduledTime": "09:00:00",
    })

    assert resp.status_code == 200
    assert resp.json() == {"id": "msg-1"}
    sent = manual_mailer.sent[0]
    assert sent.subject == "CRITICAL: Missed Medication Alert for Asha"
    assert "Metformin" in sent.html and "09:00:00" in sent.html
    assert manual_mailer.closed


def test_send_critical_alert_requires_recipient(client, manual_mailer):
    resp = client.post("/api/send-critical-alert", json={"patientName": "Asha"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Recipient address (to) is required"}
    assert manual_mailer.sent == []


def test_send_critical_alert_without_api_key(client, cfg, manual_mailer):
    cfg.RESEND_API_KEY = None
    resp = client.post("/api/send-critical-alert", json={"to": "care@example.com"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Configuration Error: Missing RESEND_API_KEY"}


def test_send_critical_alert_passes_transport_error_through(client, manual_mailer, monkeypatch):
    monkeypatch.setattr(manual_mailer, "post_email", lambda payload: (422, {"message": "Invalid `to` field"}))
    resp = client.post("/api/send-critical-alert", json={"to": "not-an-email"})
    assert resp.status_code == 422
    assert resp.json() == {"message": "Invalid `to` field"}


def test_send_critical_alert_get_not_allowed(client):
    resp = client.get("/api/send-critical-alert")
    assert resp.status_code == 405
    assert resp.json() == {"error": "Method not allowed"}


def test_send_reminder_default_subject(client, manual_mailer):
    resp = client.post("/api/send-reminder", json={
        "to": "care@example.com", "patientName": "Asha", "medicineName": "Metformin",
    })
    assert resp.status_code == 200
    sent = manual_mailer.sent[0]
    assert sent.subject == "Medication Reminder: Metformin"
    assert "Medication Reminder" in sent.html
