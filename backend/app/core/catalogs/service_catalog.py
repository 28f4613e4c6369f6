from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

#
# Reference data seeded on startup.
# - Rows are matched by code / canonical name; existing rows are never overwritten.
# - Canonical service text is English ("en"); other languages go to service_translations.
#

LANGUAGES: List[Tuple[str, str]] = [
    ("en", "English"),
    ("es", "Español"),
    ("es-MX", "Español (México)"),
]

# name, category, description, estimated_duration (minutes)
DEFAULT_SERVICES: List[Tuple[str, str, str, int]] = [
    ("Oil Change", "Maintenance", "Standard oil and filter change", 30),
    ("Brake Inspection", "Safety", "Complete brake system inspection", 45),
    ("Belt Replacement", "Repair", "Drive belt or timing belt replacement", 120),
    ("Tire Rotation", "Maintenance", "Rotate tires for even wear", 30),
    ("Battery Test", "Diagnostic", "Battery and charging system test", 20),
    ("AC Service", "Repair", "Air conditioning system service", 90),
    ("Transmission Service", "Maintenance", "Transmission fluid change and inspection", 60),
    ("Engine Diagnostic", "Diagnostic", "Computer diagnostic scan", 30),
]

# language -> canonical name -> (name, description)
SERVICE_TRANSLATIONS: Dict[str, Dict[str, Tuple[str, str]]] = {
    "es": {
        "Oil Change": ("Cambio de Aceite", "Cambio estándar de aceite y filtro"),
        "Brake Inspection": ("Inspección de Frenos", "Inspección completa del sistema de frenos"),
        "Belt Replacement": ("Reemplazo de Correa", "Reemplazo de correa de transmisión o distribución"),
        "Tire Rotation": ("Rotación de Llantas", "Rotación de llantas para desgaste uniforme"),
        "Battery Test": ("Prueba de Batería", "Prueba de batería y sistema de carga"),
        "AC Service": ("Servicio de Aire Acondicionado", "Servicio del sistema de aire acondicionado"),
        "Transmission Service": ("Servicio de Transmisión", "Cambio de fluido de transmisión e inspección"),
        "Engine Diagnostic": ("Diagnóstico del Motor", "Escaneo de diagnóstico por computadora"),
    },
}


async def seed_catalog(db: AsyncSession) -> None:
    """
    Idempotent: languages, default services and their translations.
    """
    from ...models import Language, Service, ServiceTranslation

    existing_codes = set((await db.execute(select(Language.code))).scalars().all())
    for code, name in LANGUAGES:
        if code not in existing_codes:
            db.add(Language(code=code, name=name))
    await db.flush()

    res = await db.execute(select(Service).where(Service.name.in_([s[0] for s in DEFAULT_SERVICES])))
    services_by_name = {s.name: s for s in res.scalars().all()}

    created = 0
    for name, category, description, duration in DEFAULT_SERVICES:
        if name in services_by_name:
            continue
        service = Service(
            name=name,
            category=category,
            description=description,
            estimated_duration=duration,
        )
        db.add(service)
        services_by_name[name] = service
        created += 1
    await db.flush()

    res = await db.execute(select(ServiceTranslation.service_id, ServiceTranslation.language_code))
    existing_pairs = {(service_id, code) for service_id, code in res.all()}

    for language_code, translations in SERVICE_TRANSLATIONS.items():
        for service_name, (name, description) in translations.items():
            service = services_by_name.get(service_name)
            if service is None or (service.id, language_code) in existing_pairs:
                continue
            db.add(
                ServiceTranslation(
                    service_id=service.id,
                    language_code=language_code,
                    name=name,
                    description=description,
                )
            )

    await db.commit()
    if created:
        logger.info("seed_catalog: created %s default services", created)
