from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.db import get_db
from backend.app.core.errors import NotFoundError
from backend.app.schemas.review import ReviewCreate, ReviewRead, ReviewUpdate
from backend.app.services.reviews_service import ReviewsService

router = APIRouter(
    prefix="/reviews",
    tags=["reviews"],
)


@router.post("", response_model=ReviewRead, status_code=status.HTTP_201_CREATED)
async def create_review(
    data_in: ReviewCreate,
    db: AsyncSession = Depends(get_db),
):
    return await ReviewsService.create_review(db, data_in)


@router.patch("/{review_id}", response_model=ReviewRead)
async def update_review(
    review_id: int,
    data_in: ReviewUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Edit / moderate a review. The mechanic's rating follows in the same commit.
    """
    review = await ReviewsService.get_by_id(db, review_id)
    if review is None:
        raise NotFoundError("Review not found")
    return await ReviewsService.update_review(db, review, data_in)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: int,
    db: AsyncSession = Depends(get_db),
):
    review = await ReviewsService.get_by_id(db, review_id)
    if review is None:
        raise NotFoundError("Review not found")
    await ReviewsService.delete_review(db, review)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
