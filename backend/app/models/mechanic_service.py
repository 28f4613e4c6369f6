from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.db import Base


class MechanicService(Base):
    """
    One mechanic's price range for one catalog service.
    Price bounds are ordered (min <= max) for the total and for the parts/labor split.
    """

    __tablename__ = "mechanic_services"
    __table_args__ = (
        UniqueConstraint("mechanic_id", "service_id", name="uq_mechanic_services_mechanic_service"),
        CheckConstraint("min_price <= max_price", name="ck_mechanic_services_price_range"),
        CheckConstraint("parts_cost_min <= parts_cost_max", name="ck_mechanic_services_parts_range"),
        CheckConstraint("labor_cost_min <= labor_cost_max", name="ck_mechanic_services_labor_range"),
        CheckConstraint("min_price >= 0", name="ck_mechanic_services_min_price"),
    )

    id = Column(Integer, primary_key=True, index=True)

    mechanic_id = Column(
        Integer,
        ForeignKey("mechanics.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    service_id = Column(
        Integer,
        ForeignKey("services.id"),
        nullable=False,
        index=True,
    )

    min_price = Column(Numeric(8, 2), nullable=False)
    max_price = Column(Numeric(8, 2), nullable=False)

    # optional split of the estimate
    parts_cost_min = Column(Numeric(8, 2), nullable=True)
    parts_cost_max = Column(Numeric(8, 2), nullable=True)
    labor_cost_min = Column(Numeric(8, 2), nullable=True)
    labor_cost_max = Column(Numeric(8, 2), nullable=True)

    is_available = Column(Boolean, nullable=False, server_default="1", index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    mechanic = relationship("Mechanic", back_populates="offerings")
    service = relationship("Service", back_populates="offerings")
