from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple

from geoalchemy2 import Geography
from geoalchemy2.functions import ST_Distance, ST_DWithin
from geoalchemy2.shape import from_shape
from shapely.geometry import Point
from sqlalchemy import and_, func, literal_column, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.db import execute_with_timeout, storage_errors
from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.core.geo import (
    covering_cells,
    geohash_range,
    haversine_m,
    meters_to_miles,
    miles_to_meters,
)
from backend.app.models import Language, Mechanic, MechanicService, Review, Service
from backend.app.schemas.mechanic import (
    MechanicCreate,
    MechanicServiceUpsert,
    MechanicUpdate,
)

logger = logging.getLogger(__name__)

_TWO_PLACES = Decimal("0.01")

# PostGIS point, trigger-maintained from latitude/longitude (core/safe_migrations.py)
_MECHANIC_LOCATION = literal_column(
    "mechanics.location",
    type_=Geography(geometry_type="POINT", srid=4326),
)


@dataclass(frozen=True)
class NearbyResult:
    id: int
    business_name: str
    distance_miles: float
    rating: float
    min_price: float
    max_price: float


def _round2(value) -> float:
    return float(Decimal(str(value)).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _cell_predicate(cell: str):
    lower, upper = geohash_range(cell)
    if upper is None:
        return Mechanic.geohash >= lower
    return and_(Mechanic.geohash >= lower, Mechanic.geohash < upper)


class MechanicsService:
    """
    Mechanic registry: registration, moderation, offerings and proximity search.
    """

    # ------------------------------------------------------------------
    # Proximity search
    # ------------------------------------------------------------------
    @staticmethod
    def build_nearby_query(
        dialect_name: str,
        *,
        latitude: float,
        longitude: float,
        radius_m: float,
        service_filter: Optional[str] = None,
    ):
        """
        Candidate query for a proximity search.

        PostgreSQL: ST_DWithin over the GiST-indexed geography column, distance
        from ST_Distance (column distance_m), ordered in SQL.
        Other databases: one geohash range per covering cell over the indexed
        geohash column; exact distance is checked by the caller.
        """
        postgis = dialect_name == "postgresql"

        columns = [
            Mechanic.id,
            Mechanic.business_name,
            Mechanic.latitude,
            Mechanic.longitude,
            Mechanic.rating,
            func.min(MechanicService.min_price).label("min_price"),
            func.max(MechanicService.max_price).label("max_price"),
        ]
        if postgis:
            point = from_shape(Point(longitude, latitude), srid=4326)
            distance = ST_Distance(_MECHANIC_LOCATION, point).label("distance_m")
            columns.append(distance)

        stmt = (
            select(*columns)
            .join(MechanicService, MechanicService.mechanic_id == Mechanic.id)
            .join(Service, Service.id == MechanicService.service_id)
            .where(
                Mechanic.is_active.is_(True),
                Mechanic.is_verified.is_(True),
                MechanicService.is_available.is_(True),
            )
            .group_by(
                Mechanic.id,
                Mechanic.business_name,
                Mechanic.latitude,
                Mechanic.longitude,
                Mechanic.rating,
            )
        )

        if postgis:
            stmt = stmt.where(ST_DWithin(_MECHANIC_LOCATION, point, radius_m)).order_by(
                distance,
                Mechanic.id,
            )
        else:
            stmt = stmt.where(Mechanic.geohash.is_not(None))
            cells = covering_cells(latitude, longitude, radius_m)
            if cells is not None:
                stmt = stmt.where(or_(*[_cell_predicate(cell) for cell in cells]))

        term = (service_filter or "").strip()
        if term:
            stmt = stmt.where(Service.name.ilike(f"%{_escape_like(term)}%", escape="\\"))
        return stmt

    @staticmethod
    async def find_within_radius(
        db: AsyncSession,
        *,
        latitude: float,
        longitude: float,
        radius_miles: float,
        service_filter: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> List[NearbyResult]:
        """
        Active, verified mechanics with at least one available offering whose
        location lies within radius_miles of the point. Ordered by distance,
        ties by id.
        """
        radius_m = miles_to_meters(radius_miles)
        dialect_name = db.get_bind().dialect.name

        stmt = MechanicsService.build_nearby_query(
            dialect_name,
            latitude=latitude,
            longitude=longitude,
            radius_m=radius_m,
            service_filter=service_filter,
        )

        async with storage_errors(db, "Failed to find nearby mechanics"):
            rows = (await execute_with_timeout(db, stmt, timeout)).all()

        matches: List[Tuple[float, object]] = []
        for row in rows:
            if dialect_name == "postgresql":
                matches.append((float(row.distance_m), row))
                continue
            meters = haversine_m(latitude, longitude, row.latitude, row.longitude)
            if meters <= radius_m:
                matches.append((meters, row))
        matches.sort(key=lambda item: (item[0], item[1].id))

        logger.debug(
            "nearby search: dialect=%s lat=%s lng=%s radius=%s candidates=%s matches=%s",
            dialect_name,
            latitude,
            longitude,
            radius_miles,
            len(rows),
            len(matches),
        )

        return [
            NearbyResult(
                id=row.id,
                business_name=row.business_name,
                distance_miles=_round2(meters_to_miles(meters)),
                rating=float(row.rating or 0),
                min_price=float(row.min_price),
                max_price=float(row.max_price),
            )
            for meters, row in matches
        ]

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    @staticmethod
    async def create_mechanic(
        db: AsyncSession,
        data_in: MechanicCreate,
    ) -> Mechanic:
        """
        New mechanics are always unverified (moderation) and start with an
        empty rating; both are ignored if passed.
        """
        await MechanicsService._ensure_language(db, data_in.preferred_language)

        mechanic = Mechanic(**data_in.model_dump())
        mechanic.is_verified = False
        mechanic.is_active = True
        db.add(mechanic)

        async with storage_errors(db, "Failed to register mechanic"):
            await db.commit()
            await db.refresh(mechanic)

        logger.info("mechanic registered: id=%s geohash=%s", mechanic.id, mechanic.geohash)
        return mechanic

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    @staticmethod
    async def get_by_id(
        db: AsyncSession,
        mechanic_id: int,
        *,
        active_only: bool = True,
    ) -> Optional[Mechanic]:
        stmt = select(Mechanic).where(Mechanic.id == mechanic_id)
        if active_only:
            stmt = stmt.where(Mechanic.is_active.is_(True))

        async with storage_errors(db, "Failed to load mechanic"):
            result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_active_or_404(db: AsyncSession, mechanic_id: int) -> Mechanic:
        mechanic = await MechanicsService.get_by_id(db, mechanic_id)
        if mechanic is None:
            raise NotFoundError("Mechanic not found")
        return mechanic

    @staticmethod
    async def get_detail(
        db: AsyncSession,
        mechanic_id: int,
        *,
        timeout: Optional[float] = None,
    ) -> Tuple[Mechanic, List[str]]:
        """
        Full record of an active mechanic plus the distinct names of the
        services it offers, sorted.
        """
        mechanic = await MechanicsService.get_active_or_404(db, mechanic_id)

        stmt = (
            select(Service.name)
            .distinct()
            .join(MechanicService, MechanicService.service_id == Service.id)
            .where(MechanicService.mechanic_id == mechanic_id)
            .order_by(Service.name)
        )
        async with storage_errors(db, "Failed to get mechanic details"):
            names = list((await execute_with_timeout(db, stmt, timeout)).scalars().all())
        return mechanic, names

    # ------------------------------------------------------------------
    # Update / moderation
    # ------------------------------------------------------------------
    @staticmethod
    async def update_mechanic(
        db: AsyncSession,
        mechanic: Mechanic,
        data_in: MechanicUpdate,
    ) -> Mechanic:
        data = data_in.model_dump(exclude_unset=True)

        # a position is either fully known or absent
        lat = data.get("latitude", mechanic.latitude)
        lng = data.get("longitude", mechanic.longitude)
        if (lat is None) != (lng is None):
            raise ValidationError("latitude and longitude must be provided together")

        if data.get("preferred_language") is not None:
            await MechanicsService._ensure_language(db, data["preferred_language"])

        for field, value in data.items():
            setattr(mechanic, field, value)

        async with storage_errors(db, "Failed to update mechanic"):
            await db.commit()
            await db.refresh(mechanic)
        return mechanic

    @staticmethod
    async def deactivate_mechanic(
        db: AsyncSession,
        mechanic: Mechanic,
    ) -> Mechanic:
        """Soft delete: the row stays, it just disappears from reads and search."""
        mechanic.is_active = False
        async with storage_errors(db, "Failed to deactivate mechanic"):
            await db.commit()
            await db.refresh(mechanic)
        logger.info("mechanic deactivated: id=%s", mechanic.id)
        return mechanic

    # ------------------------------------------------------------------
    # Offerings
    # ------------------------------------------------------------------
    @staticmethod
    async def upsert_offering(
        db: AsyncSession,
        mechanic: Mechanic,
        service_id: int,
        data_in: MechanicServiceUpsert,
    ) -> Tuple[MechanicService, bool]:
        """
        Create or replace the mechanic's price range for one service.
        Returns (offering, created).
        """
        async with storage_errors(db, "Failed to save mechanic service"):
            service = await db.get(Service, service_id)
            if service is None:
                raise NotFoundError("Service not found")

            result = await db.execute(
                select(MechanicService).where(
                    MechanicService.mechanic_id == mechanic.id,
                    MechanicService.service_id == service_id,
                )
            )
            offering = result.scalar_one_or_none()
            created = offering is None
            if created:
                offering = MechanicService(mechanic_id=mechanic.id, service_id=service_id)
                db.add(offering)

            for field, value in data_in.model_dump().items():
                setattr(offering, field, value)

            await db.commit()
            await db.refresh(offering)
        return offering, created

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------
    @staticmethod
    async def list_published_reviews(
        db: AsyncSession,
        mechanic_id: int,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Review]:
        stmt = (
            select(Review)
            .where(
                Review.mechanic_id == mechanic_id,
                Review.is_published.is_(True),
            )
            .order_by(Review.created_at.desc(), Review.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with storage_errors(db, "Failed to list reviews"):
            result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    @staticmethod
    async def _ensure_language(db: AsyncSession, code: str) -> None:
        async with storage_errors(db, "Failed to check language"):
            result = await db.execute(select(Language.id).where(Language.code == code))
        if result.scalar_one_or_none() is None:
            raise ValidationError(f"Unsupported language: {code}")
