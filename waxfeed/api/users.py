"""
WAXFEED — Users API

Endpoints for creating and reading users.  Every new user gets an empty
Wax wallet in the same transaction.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from waxfeed.api.deps import get_first_spin_service, http_error
from waxfeed.database import get_db
from waxfeed.errors import WaxfeedError
from waxfeed.models.user import User
from waxfeed.models.wax import WaxWallet
from waxfeed.schemas.user import (
    FirstSpinBadgeResponse,
    FirstSpinResponse,
    UserCreate,
    UserResponse,
)
from waxfeed.services.first_spin_service import FirstSpinService

logger = structlog.get_logger("waxfeed.api.users")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST /: Create a new user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user",
)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Register a new user and open their Wax wallet.

    Rejects duplicate usernames or emails with 409.
    """
    log = logger.bind(username=payload.username)
    log.info("create_user_start")

    stmt = select(User.id).where(
        or_(User.email == payload.email, User.username == payload.username)
    )
    if (await db.execute(stmt)).first() is not None:
        log.warning("create_user_duplicate")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A user with this username or email already exists.",
        )

    new_user = User(
        username=payload.username,
        email=payload.email,
        subscription_tier=payload.subscription_tier,
    )
    db.add(new_user)
    await db.flush()
    db.add(WaxWallet(user_id=new_user.id))
    await db.flush()

    log.info("create_user_complete", user_id=str(new_user.id))
    return new_user


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}: Get user by ID
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user by ID",
)
async def get_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Retrieve a single user by their UUID."""
    log = logger.bind(user_id=str(user_id))
    log.info("get_user")

    user = await db.get(User, user_id)
    if user is None:
        log.warning("get_user_not_found")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} not found.",
        )

    return user


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}/first-spin: Tastemaker stats and badges
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}/first-spin",
    response_model=FirstSpinResponse,
    summary="First Spin badges and tastemaker score",
)
async def get_first_spin(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: FirstSpinService = Depends(get_first_spin_service),
) -> FirstSpinResponse:
    try:
        stats = await service.first_spin_stats(db, user_id)
    except WaxfeedError as exc:
        raise http_error(exc)
    badges = await service.list_badges(db, user_id)
    return FirstSpinResponse(
        **stats,
        badges=[FirstSpinBadgeResponse.model_validate(b) for b in badges],
    )
