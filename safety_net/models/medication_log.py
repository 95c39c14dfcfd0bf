from sqlalchemy import Column, String, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from safety_net.db.base import Base


class MedicationLog(Base):
    """Attendance record: whether a schedule's dose was taken on a given date."""
    __tablename__ = "medication_logs"
    __table_args__ = (
        UniqueConstraint('schedule_id', 'date', name='uq_medication_logs_schedule_date'),
    )
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_id = Column(String(36), ForeignKey("medication_schedules.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="taken")  # 'taken' | 'missed'
    taken_at = Column(DateTime, nullable=True)

    schedule = relationship("MedicationSchedule")
