from sqlalchemy import Column, String, Date, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from safety_net.db.base import Base


class AlertClaim(Base):
    __tablename__ = "alert_claims"
    __table_args__ = (
        UniqueConstraint('schedule_id', 'date', 'alert_type', name='uq_alert_claims_schedule_date_type'),
    )
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_id = Column(String(36), ForeignKey("medication_schedules.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    alert_type = Column(String(50), nullable=False, default="missed_dose")
    message_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    sent_at = Column(DateTime, nullable=True)

    schedule = relationship("MedicationSchedule")
