from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.db import storage_errors
from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.models import Booking, Review
from backend.app.schemas.review import ReviewCreate, ReviewUpdate


class ReviewsService:
    """
    Review writes. The mechanic's rating/review_count are not touched here:
    the review mapper hooks (models/derived.py) recompute them in the same
    flush, so the commit below carries both changes or neither.
    """

    @staticmethod
    async def create_review(
        db: AsyncSession,
        data_in: ReviewCreate,
    ) -> Review:
        async with storage_errors(db, "Failed to save review"):
            booking = await db.get(Booking, data_in.booking_id)
            if booking is None:
                raise NotFoundError("Booking not found")
            if booking.mechanic_id != data_in.mechanic_id or booking.customer_id != data_in.customer_id:
                raise ValidationError("Review does not match its booking")

            existing = await db.execute(select(Review.id).where(Review.booking_id == data_in.booking_id))
            if existing.scalar_one_or_none() is not None:
                raise ValidationError("Booking already has a review")

            review = Review(**data_in.model_dump())
            db.add(review)
            await db.commit()
            await db.refresh(review)
        return review

    @staticmethod
    async def get_by_id(
        db: AsyncSession,
        review_id: int,
    ) -> Optional[Review]:
        async with storage_errors(db, "Failed to load review"):
            return await db.get(Review, review_id)

    @staticmethod
    async def update_review(
        db: AsyncSession,
        review: Review,
        data_in: ReviewUpdate,
    ) -> Review:
        """Edit or moderate (publish/unpublish, flag) a review."""
        data = data_in.model_dump(exclude_unset=True)
        for field, value in data.items():
            setattr(review, field, value)

        async with storage_errors(db, "Failed to update review"):
            await db.commit()
            await db.refresh(review)
        return review

    @staticmethod
    async def delete_review(
        db: AsyncSession,
        review: Review,
    ) -> None:
        async with storage_errors(db, "Failed to delete review"):
            await db.delete(review)
            await db.commit()
