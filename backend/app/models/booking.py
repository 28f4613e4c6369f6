from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.sql import func

from ..core.db import Base


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Booking(Base):
    """
    Booking placeholder: reviews hang off a booking (one review per booking).
    No status transitions are implemented.
    """

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    mechanic_id = Column(Integer, ForeignKey("mechanics.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)

    requested_time = Column(DateTime(timezone=True), nullable=False)

    status = Column(
        SAEnum(BookingStatus),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True,
    )

    estimated_price_min = Column(Numeric(8, 2), nullable=True)
    estimated_price_max = Column(Numeric(8, 2), nullable=True)

    customer_notes = Column(Text, nullable=True)

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
