"""
WAXFEED — Ratings API

``PUT /ratings/{user_id}/{album_id}`` creates or updates a rating.  A new
rating can also earn the first-review-of-the-day bonus, tip the album into
trending and rebuild the user's TasteID at rating milestones.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from waxfeed.api.deps import get_rating_service, http_error
from waxfeed.database import get_db
from waxfeed.errors import WaxfeedError
from waxfeed.schemas.catalog import RatingResponse, RatingUpsert, RatingUpsertResponse
from waxfeed.services.rating_service import RatingService
from waxfeed.services.taste_engine import InsufficientData

logger = structlog.get_logger("waxfeed.api.ratings")

router = APIRouter()


@router.put(
    "/{user_id}/{album_id}",
    response_model=RatingUpsertResponse,
    summary="Create or update a rating",
)
async def upsert_rating(
    user_id: uuid.UUID,
    album_id: uuid.UUID,
    payload: RatingUpsert,
    db: AsyncSession = Depends(get_db),
    service: RatingService = Depends(get_rating_service),
) -> RatingUpsertResponse:
    try:
        outcome = await service.upsert_rating(
            db, user_id, album_id, payload.score, payload.text
        )
    except WaxfeedError as exc:
        raise http_error(exc)

    taste_status = None
    if isinstance(outcome.taste_profile, InsufficientData):
        taste_status = outcome.taste_profile.status
    elif outcome.taste_profile is not None:
        taste_status = "computed"

    return RatingUpsertResponse(
        rating=RatingResponse.model_validate(outcome.rating),
        created=outcome.created,
        review_reward=asdict(outcome.review_reward) if outcome.review_reward else None,
        album_trending=outcome.album_trending,
        taste_status=taste_status,
    )


@router.delete(
    "/{user_id}/{album_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a rating",
)
async def delete_rating(
    user_id: uuid.UUID,
    album_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: RatingService = Depends(get_rating_service),
) -> None:
    if not await service.delete_rating(db, user_id, album_id):
        logger.warning("delete_rating_not_found", user_id=str(user_id), album_id=str(album_id))
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Rating not found.",
        )
