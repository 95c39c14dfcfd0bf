from pydantic import BaseModel
from typing import List, Optional


class CheckReport(BaseModel):
    scheduleId: str
    emailId: Optional[str] = None


class CheckResponse(BaseModel):
    message: str
    reportsCount: int
    reports: List[CheckReport]


class NoCandidatesResponse(BaseModel):
    message: str = "No schedules found for this window."
