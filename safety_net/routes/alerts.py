from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import logging

from safety_net.core.config import Settings, get_settings
from safety_net.core.errors import DependencyError
from safety_net.schemas.alerts import CriticalAlertRequest, ReminderRequest
from safety_net.services.clients import build_mailer
from safety_net.services.mail_service import MailMessage
from safety_net.utils.templates import render_template

router = APIRouter()


def _send(cfg: Settings, message_fields: dict, template: str, mapping: dict) -> JSONResponse:
    if not cfg.RESEND_API_KEY:
        logging.error('Missing RESEND_API_KEY')
        return JSONResponse(status_code=500, content={"error": "Configuration Error: Missing RESEND_API_KEY"})
    if not message_fields.get("to"):
        return JSONResponse(status_code=400, content={"error": "Recipient address (to) is required"})

    message = MailMessage(
        from_=cfg.MAIL_FROM,
        to=[message_fields["to"]],
        subject=message_fields["subject"],
        html=render_template(template, mapping),
    )
    mailer = build_mailer(cfg)
    try:
        status_code, data = mailer.post_email(message.payload())
    except DependencyError as e:
        logging.error(f"Send {template} error: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
    finally:
        mailer.close()

    if not 200 <= status_code < 300:
        logging.error(f"Resend API error: {data}")
        return JSONResponse(status_code=status_code, content=data)
    return JSONResponse(status_code=200, content=data)


@router.post("/send-critical-alert")
def send_critical_alert(req: CriticalAlertRequest, cfg: Settings = Depends(get_settings)):
    subject = req.subject or f"CRITICAL: Missed Medication Alert for {req.patientName}"
    return _send(
        cfg,
        {"to": req.to, "subject": subject},
        "critical_alert.html",
        {"patient_name": req.patientName, "medicine_name": req.medicineName, "scheduled_time": req.scheduledTime},
    )


@router.post("/send-reminder")
def send_reminder(req: ReminderRequest, cfg: Settings = Depends(get_settings)):
    subject = req.subject or f"Medication Reminder: {req.medicineName}"
    return _send(
        cfg,
        {"to": req.to, "subject": subject},
        "reminder.html",
        {"patient_name": req.patientName, "medicine_name": req.medicineName},
    )
