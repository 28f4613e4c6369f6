from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.db import Base


class Language(Base):
    __tablename__ = "languages"

    id = Column(Integer, primary_key=True, index=True)

    # 'en', 'es', 'es-MX'
    code = Column(String(10), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, server_default="1")

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class Service(Base):
    """
    Catalog entry. name/description are the canonical (default language) text,
    localized variants live in ServiceTranslation.
    """

    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(255), nullable=False)
    # 'Maintenance', 'Repair', 'Diagnostic', 'Safety'
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    estimated_duration = Column(Integer, nullable=False, default=60, server_default="60")  # minutes

    is_active = Column(Boolean, nullable=False, server_default="1")

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

    translations = relationship(
        "ServiceTranslation",
        back_populates="service",
        cascade="all, delete-orphan",
    )
    offerings = relationship("MechanicService", back_populates="service")


class ServiceTranslation(Base):
    __tablename__ = "service_translations"
    __table_args__ = (
        UniqueConstraint("service_id", "language_code", name="uq_service_translations_service_language"),
    )

    id = Column(Integer, primary_key=True, index=True)

    service_id = Column(
        Integer,
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    language_code = Column(String(10), ForeignKey("languages.code"), nullable=False)

    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    service = relationship("Service", back_populates="translations")
