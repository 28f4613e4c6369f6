from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class ReviewCreate(BaseModel):
    booking_id: int
    customer_id: int
    mechanic_id: int

    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=2000)

    is_anonymous: bool = False
    is_published: bool = True


class ReviewUpdate(BaseModel):
    """
    Moderation / edit. Any change re-derives the mechanic rating.
    """

    rating: Optional[int] = Field(default=None, ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=2000)

    is_published: Optional[bool] = None
    is_flagged: Optional[bool] = None
    flagged_reason: Optional[str] = None

    @model_validator(mode="after")
    def _no_null_for_required(self):
        for name in sorted(self.model_fields_set & {"rating", "is_published", "is_flagged"}):
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ReviewRead(BaseModel):
    id: int
    booking_id: int
    # hidden for anonymous reviews in public listings
    customer_id: Optional[int]
    mechanic_id: int

    rating: int
    comment: Optional[str]

    is_anonymous: bool
    is_published: bool
    is_flagged: bool

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
