from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from safety_net.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"
    id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    patient_name = Column(String(255), nullable=True)
    caretaker_name = Column(String(255), nullable=True)
    caretaker_email = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    user = relationship("User", back_populates="profile")
