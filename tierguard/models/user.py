from sqlalchemy import Column, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from tierguard.core.database import Base
from datetime import datetime


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)  # Firebase UID
    email = Column(String, unique=True, index=True, nullable=False)
    is_super_admin = Column(Boolean, default=False, nullable=False)  # Platform-wide, not per organization
    created_at = Column(DateTime, default=datetime.utcnow)  # Start of the trial window
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    is_active = Column(Boolean, default=True)

    # Relationships
    memberships = relationship("Membership", back_populates="user", cascade="all, delete-orphan")
