from pydantic import BaseModel
from typing import Optional


class ReminderRequest(BaseModel):
    to: Optional[str] = None
    subject: Optional[str] = None
    patientName: str = "the patient"
    medicineName: str = ""


class CriticalAlertRequest(ReminderRequest):
    scheduledTime: str = ""
