from __future__ import annotations

from typing import List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.db import execute_with_timeout, storage_errors
from backend.app.core.errors import NotFoundError
from backend.app.models import Service, ServiceTranslation
from backend.app.schemas.service import ServiceLocalized


class CatalogService:
    """
    Service catalog resolved to a language.

    Name and description come from the translation for that language when one
    exists, otherwise from the canonical row. Unknown languages are not an
    error: every service then falls back to its canonical text.
    """

    @staticmethod
    def _localized_select(language: str):
        name = func.coalesce(ServiceTranslation.name, Service.name).label("name")
        description = func.coalesce(ServiceTranslation.description, Service.description).label("description")
        stmt = (
            select(
                Service.id,
                Service.category,
                Service.estimated_duration,
                name,
                description,
            )
            .outerjoin(
                ServiceTranslation,
                and_(
                    ServiceTranslation.service_id == Service.id,
                    ServiceTranslation.language_code == language,
                ),
            )
            .where(Service.is_active.is_(True))
        )
        return stmt, name

    @staticmethod
    def _to_schema(row) -> ServiceLocalized:
        return ServiceLocalized(
            id=row.id,
            category=row.category,
            estimated_duration=row.estimated_duration,
            name=row.name,
            description=row.description,
        )

    @staticmethod
    async def list_services(
        db: AsyncSession,
        language: str,
        *,
        timeout: Optional[float] = None,
    ) -> List[ServiceLocalized]:
        """Active services ordered by category (uncategorized last), then name."""
        stmt, name = CatalogService._localized_select(language)
        stmt = stmt.order_by(Service.category.asc().nulls_last(), name, Service.id)

        async with storage_errors(db, "Failed to fetch services"):
            rows = (await execute_with_timeout(db, stmt, timeout)).all()
        return [CatalogService._to_schema(row) for row in rows]

    @staticmethod
    async def get_service(
        db: AsyncSession,
        service_id: int,
        language: str,
        *,
        timeout: Optional[float] = None,
    ) -> ServiceLocalized:
        stmt, _ = CatalogService._localized_select(language)
        stmt = stmt.where(Service.id == service_id)

        async with storage_errors(db, "Failed to fetch service"):
            row = (await execute_with_timeout(db, stmt, timeout)).one_or_none()
        if row is None:
            raise NotFoundError("Service not found")
        return CatalogService._to_schema(row)
