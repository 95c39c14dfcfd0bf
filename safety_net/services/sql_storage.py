import logging
from datetime import date, datetime, time
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from safety_net.core.errors import DependencyError
from safety_net.models.alert_claim import AlertClaim
from safety_net.models.medication_log import MedicationLog
from safety_net.models.medication_schedule import MedicationSchedule
from safety_net.models.profile import Profile
from safety_net.models.user import User
from safety_net.services.storage import (
    AttendanceRow,
    MedicationRef,
    ProfileRow,
    ScheduleRow,
    StorageClient,
    UserAccount,
)


class SqlStorage(StorageClient):
    """Storage collaborator backed by a self-hosted relational database through the ORM."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    def find_schedules(self, after: Optional[time], until: time) -> List[ScheduleRow]:
        try:
            with self._session() as db:
                q = db.query(MedicationSchedule).options(joinedload(MedicationSchedule.medication))
                if after is not None:
                    q = q.filter(MedicationSchedule.time > after)
                q = q.filter(MedicationSchedule.time <= until)
                schedules = q.order_by(MedicationSchedule.time.asc(), MedicationSchedule.id.asc()).all()
                rows = []
                for s in schedules:
                    med = s.medication
                    rows.append(ScheduleRow(
                        id=s.id,
                        time=s.time,
                        medication=MedicationRef(name=med.name, user_id=med.user_id) if med else None,
                    ))
                return rows
        except SQLAlchemyError as e:
            raise DependencyError("fetch-schedules", f"Database query failed: {e}") from e

    def find_attendance(self, schedule_id: str, on: date) -> Optional[AttendanceRow]:
        try:
            with self._session() as db:
                log = db.query(MedicationLog).filter(
                    MedicationLog.schedule_id == schedule_id,
                    MedicationLog.date == on,
                ).first()
                return AttendanceRow(id=log.id, status=log.status) if log else None
        except SQLAlchemyError as e:
            raise DependencyError("attendance", f"Database query failed: {e}") from e

    def get_user(self, user_id: str) -> Optional[UserAccount]:
        try:
            with self._session() as db:
                user = db.query(User).filter(User.id == user_id).first()
                if not user:
                    return None
                return UserAccount(id=user.id, email=user.email, user_metadata=user.user_metadata or {})
        except SQLAlchemyError as e:
            raise DependencyError("resolve-user", f"Database query failed: {e}") from e

    def get_profile(self, user_id: str) -> Optional[ProfileRow]:
        try:
            with self._session() as db:
                profile = db.query(Profile).filter(Profile.id == user_id).first()
                return ProfileRow(id=profile.id, patient_name=profile.patient_name) if profile else None
        except SQLAlchemyError as e:
            raise DependencyError("resolve-profile", f"Database query failed: {e}") from e

    def claim_alert(self, schedule_id: str, on: date, alert_type: str) -> bool:
        with self._session() as db:
            try:
                db.add(AlertClaim(schedule_id=schedule_id, date=on, alert_type=alert_type))
                db.commit()
                return True
            except IntegrityError:
                db.rollback()
                logging.info(f"Alert already claimed for schedule {schedule_id} on {on.isoformat()}")
                return False
            except SQLAlchemyError as e:
                db.rollback()
                raise DependencyError("claim", f"Database write failed: {e}") from e

    def record_alert(self, schedule_id: str, on: date, alert_type: str, message_id: Optional[str]) -> None:
        with self._session() as db:
            try:
                db.query(AlertClaim).filter(
                    AlertClaim.schedule_id == schedule_id,
                    AlertClaim.date == on,
                    AlertClaim.alert_type == alert_type,
                ).update({"message_id": message_id, "sent_at": datetime.utcnow()}, synchronize_session=False)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise DependencyError("record", f"Database write failed: {e}") from e

    def release_alert(self, schedule_id: str, on: date, alert_type: str) -> None:
        with self._session() as db:
            try:
                db.query(AlertClaim).filter(
                    AlertClaim.schedule_id == schedule_id,
                    AlertClaim.date == on,
                    AlertClaim.alert_type == alert_type,
                    AlertClaim.sent_at.is_(None),
                ).delete(synchronize_session=False)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise DependencyError("release", f"Database write failed: {e}") from e
