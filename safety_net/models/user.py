from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from safety_net.db.base import Base


class User(Base):
    """Account of the person who owns the medications (patient or caretaker login)."""
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, index=True, nullable=True)
    # Mirrors auth user_metadata; holds notificationSettings among others
    user_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime(), default=datetime.utcnow)
    updated_at = Column(DateTime(), default=datetime.utcnow, onupdate=datetime.utcnow)
    profile = relationship("Profile", uselist=False, back_populates="user")
    medications = relationship("Medication", back_populates="user")
