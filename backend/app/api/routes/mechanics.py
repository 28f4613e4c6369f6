import logging
import math
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_settings
from backend.app.core.config import Settings
from backend.app.core.db import get_db
from backend.app.core.errors import ValidationError
from backend.app.schemas.mechanic import (
    MechanicCreate,
    MechanicDetail,
    MechanicDetailResponse,
    MechanicRead,
    MechanicServiceRead,
    MechanicServiceUpsert,
    MechanicUpdate,
    NearbyMechanic,
    NearbyMechanicsResponse,
    SearchCriteria,
)
from backend.app.schemas.review import ReviewRead
from backend.app.services.mechanics_service import MechanicsService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/mechanics",
    tags=["mechanics"],
)


# ----------------------------------------------------------------------
# query parsing: raw strings, so malformed input is a 400 with our message
# ----------------------------------------------------------------------

def _parse_coordinate(raw: Optional[str], low: float, high: float) -> float:
    if raw is None or not raw.strip():
        raise ValidationError("Valid latitude and longitude are required")
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError("Valid latitude and longitude are required")
    if not math.isfinite(value) or not low <= value <= high:
        raise ValidationError("Valid latitude and longitude are required")
    return value


def _parse_radius(raw: Optional[str], default: int, maximum: Optional[int]) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ValidationError("Radius must be a positive integer")
    if value < 1:
        raise ValidationError("Radius must be a positive integer")
    if maximum is not None and value > maximum:
        raise ValidationError(f"Radius must be between 1 and {maximum}")
    return value


# ----------------------------------------------------------------------
# Search (declared before /{mechanic_id})
# ----------------------------------------------------------------------

@router.get("/nearby", response_model=NearbyMechanicsResponse)
async def find_nearby_mechanics(
    latitude: Optional[str] = Query(default=None),
    longitude: Optional[str] = Query(default=None),
    radius: Optional[str] = Query(default=None, description="Miles"),
    service: Optional[str] = Query(default=None, description="Service name contains"),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    lat = _parse_coordinate(latitude, -90.0, 90.0)
    lng = _parse_coordinate(longitude, -180.0, 180.0)
    radius_miles = _parse_radius(
        radius,
        settings.DEFAULT_SEARCH_RADIUS_MILES,
        settings.MAX_SEARCH_RADIUS_MILES,
    )
    term = (service or "").strip() or None

    results = await MechanicsService.find_within_radius(
        db,
        latitude=lat,
        longitude=lng,
        radius_miles=radius_miles,
        service_filter=term,
        timeout=settings.QUERY_TIMEOUT_SECONDS,
    )
    return NearbyMechanicsResponse(
        mechanics=[NearbyMechanic(**asdict(r)) for r in results],
        search_criteria=SearchCriteria(
            latitude=lat,
            longitude=lng,
            radius=radius_miles,
            service=term,
        ),
    )


# ----------------------------------------------------------------------
# Registration / read / update
# ----------------------------------------------------------------------

@router.post("", response_model=MechanicRead, status_code=status.HTTP_201_CREATED)
async def create_mechanic(
    data_in: MechanicCreate,
    db: AsyncSession = Depends(get_db),
):
    return await MechanicsService.create_mechanic(db, data_in)


@router.get("/{mechanic_id}", response_model=MechanicDetailResponse)
async def get_mechanic(
    mechanic_id: int,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    mechanic, services = await MechanicsService.get_detail(
        db,
        mechanic_id,
        timeout=settings.QUERY_TIMEOUT_SECONDS,
    )
    detail = MechanicRead.model_validate(mechanic).model_dump()
    return MechanicDetailResponse(mechanic=MechanicDetail(**detail, services=services))


@router.patch("/{mechanic_id}", response_model=MechanicRead)
async def update_mechanic(
    mechanic_id: int,
    data_in: MechanicUpdate,
    db: AsyncSession = Depends(get_db),
):
    mechanic = await MechanicsService.get_active_or_404(db, mechanic_id)
    return await MechanicsService.update_mechanic(db, mechanic, data_in)


@router.delete("/{mechanic_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_mechanic(
    mechanic_id: int,
    db: AsyncSession = Depends(get_db),
):
    mechanic = await MechanicsService.get_active_or_404(db, mechanic_id)
    await MechanicsService.deactivate_mechanic(db, mechanic)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ----------------------------------------------------------------------
# Offerings / reviews
# ----------------------------------------------------------------------

@router.put("/{mechanic_id}/services/{service_id}", response_model=MechanicServiceRead)
async def upsert_mechanic_service(
    mechanic_id: int,
    service_id: int,
    data_in: MechanicServiceUpsert,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    mechanic = await MechanicsService.get_active_or_404(db, mechanic_id)
    offering, created = await MechanicsService.upsert_offering(db, mechanic, service_id, data_in)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return offering


@router.get("/{mechanic_id}/reviews", response_model=List[ReviewRead])
async def list_mechanic_reviews(
    mechanic_id: int,
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    await MechanicsService.get_active_or_404(db, mechanic_id)
    reviews = await MechanicsService.list_published_reviews(db, mechanic_id, limit=limit, offset=offset)

    items: List[ReviewRead] = []
    for review in reviews:
        item = ReviewRead.model_validate(review)
        if review.is_anonymous:
            item.customer_id = None
        items.append(item)
    return items
