from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class MechanicBase(BaseModel):
    """
    Fields shared by registration and read models.
    """

    business_name: str = Field(..., min_length=1, max_length=255)
    owner_name: Optional[str] = Field(default=None, max_length=255)
    phone: str = Field(..., min_length=5, max_length=20)
    email: Optional[str] = Field(default=None, max_length=255)

    address: str = Field(..., min_length=1)
    city: str = Field(..., max_length=100)
    state: str = Field(..., max_length=50)
    zip_code: str = Field(..., max_length=10)
    country: str = Field(default="US", max_length=50)

    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    years_in_business: Optional[int] = Field(default=None, ge=0)

    preferred_language: str = Field(default="en", max_length=10)
    speaks_spanish: bool = False
    speaks_english: bool = True
    accepts_cash: bool = True
    accepts_cards: bool = True


class MechanicCreate(MechanicBase):
    """
    Registration. New mechanics start unverified; rating is never accepted from clients.
    """

    @model_validator(mode="after")
    def _coordinates_together(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be provided together")
        return self


_MECHANIC_REQUIRED = frozenset(
    {
        "business_name",
        "phone",
        "address",
        "city",
        "state",
        "zip_code",
        "country",
        "preferred_language",
        "speaks_spanish",
        "speaks_english",
        "accepts_cash",
        "accepts_cards",
        "is_verified",
        "is_active",
    }
)


class MechanicUpdate(BaseModel):
    """
    Partial update. Only passed fields change.
    """

    business_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    owner_name: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, min_length=5, max_length=20)
    email: Optional[str] = Field(default=None, max_length=255)

    address: Optional[str] = Field(default=None, min_length=1)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=50)
    zip_code: Optional[str] = Field(default=None, max_length=10)
    country: Optional[str] = Field(default=None, max_length=50)

    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    years_in_business: Optional[int] = Field(default=None, ge=0)

    preferred_language: Optional[str] = Field(default=None, max_length=10)
    speaks_spanish: Optional[bool] = None
    speaks_english: Optional[bool] = None
    accepts_cash: Optional[bool] = None
    accepts_cards: Optional[bool] = None

    # moderation
    is_verified: Optional[bool] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _no_null_for_required(self):
        # absent means "keep"; an explicit null on a NOT NULL column is an error
        for name in sorted(self.model_fields_set & _MECHANIC_REQUIRED):
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class MechanicRead(MechanicBase):
    id: int

    rating: float
    review_count: int

    is_verified: bool
    is_active: bool

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MechanicDetail(MechanicRead):
    # distinct catalog names of everything the mechanic offers
    services: List[str] = []


class NearbyMechanic(BaseModel):
    id: int
    business_name: str
    distance_miles: float
    rating: float
    min_price: float
    max_price: float


class SearchCriteria(BaseModel):
    latitude: float
    longitude: float
    radius: int
    service: Optional[str] = None


class NearbyMechanicsResponse(BaseModel):
    mechanics: List[NearbyMechanic]
    search_criteria: SearchCriteria


class MechanicDetailResponse(BaseModel):
    mechanic: MechanicDetail


# ----------------------------------------------------------------------
# Offerings (mechanic_services)
# ----------------------------------------------------------------------

class MechanicServiceUpsert(BaseModel):
    min_price: Decimal = Field(..., ge=0, max_digits=8, decimal_places=2)
    max_price: Decimal = Field(..., ge=0, max_digits=8, decimal_places=2)

    parts_cost_min: Optional[Decimal] = Field(default=None, ge=0, max_digits=8, decimal_places=2)
    parts_cost_max: Optional[Decimal] = Field(default=None, ge=0, max_digits=8, decimal_places=2)
    labor_cost_min: Optional[Decimal] = Field(default=None, ge=0, max_digits=8, decimal_places=2)
    labor_cost_max: Optional[Decimal] = Field(default=None, ge=0, max_digits=8, decimal_places=2)

    is_available: bool = True
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _ordered_ranges(self):
        pairs = [
            ("min_price", "max_price"),
            ("parts_cost_min", "parts_cost_max"),
            ("labor_cost_min", "labor_cost_max"),
        ]
        for lo_name, hi_name in pairs:
            lo = getattr(self, lo_name)
            hi = getattr(self, hi_name)
            if lo is not None and hi is not None and lo > hi:
                raise ValueError(f"{lo_name} must not exceed {hi_name}")
        return self


class MechanicServiceRead(BaseModel):
    id: int
    mechanic_id: int
    service_id: int

    min_price: float
    max_price: float
    parts_cost_min: Optional[float] = None
    parts_cost_max: Optional[float] = None
    labor_cost_min: Optional[float] = None
    labor_cost_max: Optional[float] = None

    is_available: bool
    notes: Optional[str] = None

    class Config:
        from_attributes = True
