from typing import List, Optional

from pydantic import BaseModel


class ServiceLocalized(BaseModel):
    """
    Catalog entry with name/description resolved to the requested language
    (falls back to the canonical text when there is no translation).
    """

    id: int
    category: Optional[str]
    estimated_duration: int
    name: str
    description: Optional[str]


class ServicesResponse(BaseModel):
    services: List[ServiceLocalized]
    language: str


class ServiceResponse(BaseModel):
    service: ServiceLocalized
    language: str
