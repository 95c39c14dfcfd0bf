"""Read-only storage contract used by the missed-dose job.

Rows coming back from either backend are validated into the models below right at
the boundary, so business logic never sees raw join shapes.
"""
from abc import ABC, abstractmethod
from datetime import date, time as dt_time
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, field_validator


def _coerce_id(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return str(value)


RowId = Annotated[str, BeforeValidator(_coerce_id)]


def first_related(value: Any) -> Any:
    """Collapse a joined relation to zero or one record.

    Joins come back either as a single object or as a collection depending on the
    query path; an empty collection means no related row.
    """
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


class MedicationRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    user_id: Optional[RowId] = None


class ScheduleRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: RowId
    time: dt_time
    medication: Optional[MedicationRef] = Field(
        default=None, validation_alias=AliasChoices("medication", "medications")
    )

    @field_validator("medication", mode="before")
    @classmethod
    def _single_medication(cls, value: Any) -> Any:
        return first_related(value)

    @property
    def time_label(self) -> str:
        return self.time.strftime("%H:%M:%S")


class AttendanceRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: RowId
    status: Optional[str] = None


class UserAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: RowId
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("user_metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


class ProfileRow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: RowId
    patient_name: Optional[str] = None


class StorageClient(ABC):
    """Queries the missed-dose job needs from the storage collaborator.

    Implementations raise DependencyError when the collaborator is unreachable or
    answers with an error. "No row" is never an error: those calls return None.
    """

    @abstractmethod
    def find_schedules(self, after: Optional[dt_time], until: dt_time) -> List[ScheduleRow]:
        """Schedules with after < time <= until, ordered by time; after=None starts at midnight inclusive."""

    @abstractmethod
    def find_attendance(self, schedule_id: str, on: date) -> Optional[AttendanceRow]:
        ...

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserAccount]:
        ...

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[ProfileRow]:
        ...

    @abstractmethod
    def claim_alert(self, schedule_id: str, on: date, alert_type: str) -> bool:
        """Insert a claim for this alert; False when another invocation already holds it."""

    @abstractmethod
    def record_alert(self, schedule_id: str, on: date, alert_type: str, message_id: Optional[str]) -> None:
        ...

    @abstractmethod
    def release_alert(self, schedule_id: str, on: date, alert_type: str) -> None:
        """Drop an unsent claim so a later invocation may alert again."""

    def close(self) -> None:
        pass
