"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship
from booking.database import Base
from booking.scheduling.lifecycle import AppointmentStatus


class Appointment(Base):
    """Represents a booked appointment on a staff service.

    The duration is not stored; it is the linked service definition's
    ``base_duration``.
    """
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    start_time = Column(DateTime, nullable=False, index=True)
    status = Column(String, nullable=False, default=AppointmentStatus.RESERVED.value)
    notes = Column(Text, nullable=True)
    business_id = Column(Integer, index=True, nullable=False)
    service_id = Column(Integer, ForeignKey("staff_services.id", ondelete="CASCADE"), index=True, nullable=False)
    created_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    service = relationship("StaffService")
