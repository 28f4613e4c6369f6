import re
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_settings
from backend.app.core.config import Settings
from backend.app.core.db import get_db
from backend.app.core.errors import ValidationError
from backend.app.schemas.service import ServiceResponse, ServicesResponse
from backend.app.services.catalog_service import CatalogService

router = APIRouter(
    prefix="/services",
    tags=["services"],
)

# en, es, es-MX, zh-Hant ...
_LANGUAGE_RE = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})?$")


def _resolve_language(raw: Optional[str], default: str) -> str:
    if raw is None or not raw.strip():
        return default
    language = raw.strip()
    if not _LANGUAGE_RE.match(language):
        raise ValidationError("Invalid language code")
    return language


@router.get("", response_model=ServicesResponse)
async def list_services(
    language: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    code = _resolve_language(language, settings.DEFAULT_LANGUAGE)
    services = await CatalogService.list_services(db, code, timeout=settings.QUERY_TIMEOUT_SECONDS)
    return ServicesResponse(services=services, language=code)


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(
    service_id: int,
    language: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    code = _resolve_language(language, settings.DEFAULT_LANGUAGE)
    service = await CatalogService.get_service(
        db,
        service_id,
        code,
        timeout=settings.QUERY_TIMEOUT_SECONDS,
    )
    return ServiceResponse(service=service, language=code)
