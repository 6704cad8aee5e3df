"""
WAXFEED — TasteID API

Profile computation, history, tier progress, matchmaking and pairwise
comparison.  Too few ratings is not an error: those endpoints answer 200
with ``status="insufficient_data"``.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from waxfeed.api.deps import get_matching_service, get_taste_service, http_error
from waxfeed.database import get_db
from waxfeed.errors import UserNotFoundError, WaxfeedError
from waxfeed.models.user import User
from waxfeed.schemas.taste import (
    CompareResponse,
    InsufficientDataResponse,
    MatchItem,
    MatchListResponse,
    Milestone,
    SnapshotResponse,
    TasteProfileResponse,
    TierInfo,
    TierResponse,
)
from waxfeed.services import taste_tiers
from waxfeed.services.matching_service import MatchingService
from waxfeed.services.taste_engine import InsufficientData
from waxfeed.services.taste_service import TasteService

logger = structlog.get_logger("waxfeed.api.taste")

router = APIRouter()


async def _require_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise http_error(UserNotFoundError(user_id))
    return user


# ──────────────────────────────────────────────────────────────────────────────
# Profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{user_id}/compute",
    response_model=TasteProfileResponse | InsufficientDataResponse,
    summary="Rebuild the user's TasteID from all of their ratings",
)
async def compute_profile(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: TasteService = Depends(get_taste_service),
):
    try:
        result = await service.compute_taste_profile(db, user_id)
    except WaxfeedError as exc:
        raise http_error(exc)

    if isinstance(result, InsufficientData):
        return InsufficientDataResponse(
            rating_count=result.rating_count, required=result.required
        )
    return TasteProfileResponse.model_validate(result)


@router.get(
    "/{user_id}",
    response_model=TasteProfileResponse | InsufficientDataResponse,
    summary="Get the user's current TasteID",
)
async def get_profile(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: TasteService = Depends(get_taste_service),
):
    await _require_user(db, user_id)
    profile = await service.get_taste_profile(db, user_id)
    if profile is None:
        count = await service.rating_count(db, user_id)
        return InsufficientDataResponse(
            rating_count=count, required=service.engine.min_ratings
        )
    return TasteProfileResponse.model_validate(profile)


@router.get(
    "/{user_id}/snapshots",
    response_model=list[SnapshotResponse],
    summary="Monthly TasteID history, newest first",
)
async def list_snapshots(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: TasteService = Depends(get_taste_service),
):
    await _require_user(db, user_id)
    return await service.list_snapshots(db, user_id)


@router.get(
    "/{user_id}/tier",
    response_model=TierResponse,
    summary="TasteID tier and progress towards the next tier",
)
async def get_tier(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: TasteService = Depends(get_taste_service),
) -> TierResponse:
    await _require_user(db, user_id)
    count = await service.rating_count(db, user_id)
    progress = taste_tiers.progress_to_next_tier(count)

    return TierResponse(
        rating_count=count,
        current_tier=TierInfo.model_validate(progress["current_tier"]),
        next_tier=(
            TierInfo.model_validate(progress["next_tier"])
            if progress["next_tier"]
            else None
        ),
        progress=progress["progress"],
        ratings_to_next=progress["ratings_to_next"],
        milestones=[Milestone(**m) for m in taste_tiers.milestones(count)],
        message=taste_tiers.motivational_message(count),
    )


# ──────────────────────────────────────────────────────────────────────────────
# Matching
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/matches",
    response_model=MatchListResponse | InsufficientDataResponse,
    summary="Rank other users by taste compatibility",
)
async def get_matches(
    user_id: uuid.UUID,
    mode: str = Query("twins", pattern="^(twins|opposites|guides|all)$"),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    service: MatchingService = Depends(get_matching_service),
):
    try:
        result = await service.match_users(db, user_id, mode=mode, limit=limit)
    except WaxfeedError as exc:
        raise http_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    if isinstance(result, InsufficientData):
        return InsufficientDataResponse(
            rating_count=result.rating_count, required=result.required
        )
    logger.info("matches_served", user_id=str(user_id), mode=mode, count=len(result))
    return MatchListResponse(mode=mode, matches=[MatchItem(**m) for m in result])


@router.get(
    "/{user_id}/compare/{other_id}",
    response_model=CompareResponse | InsufficientDataResponse,
    summary="Score taste compatibility between two named users",
)
async def compare_users(
    user_id: uuid.UUID,
    other_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: MatchingService = Depends(get_matching_service),
):
    try:
        result = await service.compare_users(db, user_id, other_id)
    except WaxfeedError as exc:
        raise http_error(exc)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    if isinstance(result, InsufficientData):
        return InsufficientDataResponse(
            rating_count=result.rating_count, required=result.required
        )
    return CompareResponse(user_id=user_id, **result)
