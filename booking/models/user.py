"""User model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from booking.database import Base


class User(Base):
    """Represents a staff member or operator of a business."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    name = Column(String, nullable=False, default="")
    role = Column(String)  # owner/staff
    business_id = Column(Integer, index=True, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime, nullable=True)
