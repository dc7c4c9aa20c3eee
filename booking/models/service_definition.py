"""Service definition model definitions."""

from sqlalchemy import Boolean, Column, DateTime, Integer, Numeric, String, Text, UniqueConstraint, func
from booking.database import Base


class ServiceDefinition(Base):
    """A service a business offers, with its base price and duration."""
    __tablename__ = "service_definitions"
    __table_args__ = (
        UniqueConstraint("business_id", "name", name="uq_service_definition_business_name"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    base_duration = Column(Integer, nullable=False)  # minutes
    is_disabled = Column(Boolean, nullable=False, default=False)
    business_id = Column(Integer, index=True, nullable=False)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
