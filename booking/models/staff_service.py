"""Staff service model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import relationship
from booking.database import Base


class StaffService(Base):
    """Binds one staff member to one service definition."""
    __tablename__ = "staff_services"
    __table_args__ = (
        UniqueConstraint(
            "business_id", "employee_id", "service_definition_id",
            name="uq_staff_service_employee_definition",
        ),
    )

    id = Column(Integer, primary_key=True)
    is_disabled = Column(Boolean, nullable=False, default=False)
    business_id = Column(Integer, index=True, nullable=False)
    employee_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    service_definition_id = Column(
        Integer,
        ForeignKey("service_definitions.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    employee = relationship("User")
    service_definition = relationship("ServiceDefinition")
