from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.db import Base


class Mechanic(Base):
    """
    Repair shop / independent mechanic.

    geohash is derived from latitude/longitude on every write (see models/derived.py)
    and is the spatial index used by the proximity search without PostGIS.
    On PostgreSQL the table also carries location geography(POINT, 4326) with a
    GiST index, added and trigger-maintained by core/safe_migrations.py.
    rating / review_count are derived from published reviews, never set by API payloads.
    """

    __tablename__ = "mechanics"
    __table_args__ = (
        CheckConstraint("latitude IS NULL OR (latitude >= -90 AND latitude <= 90)", name="ck_mechanics_latitude"),
        CheckConstraint("longitude IS NULL OR (longitude >= -180 AND longitude <= 180)", name="ck_mechanics_longitude"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_mechanics_rating"),
        CheckConstraint("review_count >= 0", name="ck_mechanics_review_count"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Business
    business_name = Column(String(255), nullable=False)
    owner_name = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=False, unique=True)
    email = Column(String(255), nullable=True)

    address = Column(Text, nullable=False)
    city = Column(String(100), nullable=False)
    state = Column(String(50), nullable=False)
    zip_code = Column(String(10), nullable=False)
    country = Column(String(50), nullable=False, server_default="US")

    # Location
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    geohash = Column(String(12), nullable=True, index=True)

    years_in_business = Column(Integer, nullable=True)

    # Language / payment attributes
    preferred_language = Column(String(10), ForeignKey("languages.code"), nullable=False, server_default="en")
    speaks_spanish = Column(Boolean, nullable=False, server_default="0")
    speaks_english = Column(Boolean, nullable=False, server_default="1")
    accepts_cash = Column(Boolean, nullable=False, server_default="1")
    accepts_cards = Column(Boolean, nullable=False, server_default="1")

    # Aggregates
    rating = Column(Numeric(3, 2), nullable=False, default=0, server_default="0")
    review_count = Column(Integer, nullable=False, default=0, server_default="0")

    # Status: both must be true to show up in search
    is_verified = Column(Boolean, nullable=False, server_default="0", index=True)
    is_active = Column(Boolean, nullable=False, server_default="1", index=True)

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

    offerings = relationship(
        "MechanicService",
        back_populates="mechanic",
        cascade="all, delete-orphan",
    )
    reviews = relationship("Review", back_populates="mechanic")
