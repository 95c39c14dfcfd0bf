from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Time
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from safety_net.db.base import Base


class MedicationSchedule(Base):
    """A daily time-of-day at which a dose of a medication is expected."""
    __tablename__ = "medication_schedules"
    __table_args__ = (
        Index('ix_medication_schedules_medication_id', 'medication_id'),
        Index('ix_medication_schedules_time', 'time'),
    )
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    medication_id = Column(String(36), ForeignKey("medications.id", ondelete="CASCADE"), nullable=True)
    time = Column(Time, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    medication = relationship("Medication", back_populates="schedules")
