"""
WAXFEED — Wax API

Wallet reads, the daily claim, named spends and ledger reconciliation.

  - Insufficient balance      400
  - Unknown user              404
  - Ledger mismatch           409 (wallet frozen)
  - Write to frozen wallet    423
"""

from __future__ import annotations

import uuid
from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from waxfeed.api.deps import get_wax_ledger, http_error
from waxfeed.database import get_db
from waxfeed.errors import UserNotFoundError, WaxfeedError
from waxfeed.models.user import User
from waxfeed.schemas.wax import (
    DailyClaimResponse,
    SpendRequest,
    SpendResponse,
    TransactionResponse,
    VerifyResponse,
    WalletResponse,
)
from waxfeed.services.wax_ledger import SPEND_ACTIONS, WaxLedger

logger = structlog.get_logger("waxfeed.api.wax")

router = APIRouter()


@router.get(
    "/{user_id}/wallet",
    response_model=WalletResponse,
    summary="Wallet balance, weekly cap and streak",
)
async def get_wallet(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ledger: WaxLedger = Depends(get_wax_ledger),
) -> WalletResponse:
    try:
        stats = await ledger.wallet_stats(db, user_id)
    except WaxfeedError as exc:
        raise http_error(exc)
    return WalletResponse(**stats)


@router.get(
    "/{user_id}/transactions",
    response_model=list[TransactionResponse],
    summary="Most recent ledger entries, newest first",
)
async def list_transactions(
    user_id: uuid.UUID,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    ledger: WaxLedger = Depends(get_wax_ledger),
):
    if await db.get(User, user_id) is None:
        raise http_error(UserNotFoundError(user_id))
    return await ledger.recent_transactions(db, user_id, limit=limit)


@router.post(
    "/{user_id}/claim-daily",
    response_model=DailyClaimResponse,
    summary="Claim the daily login bonus",
)
async def claim_daily(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ledger: WaxLedger = Depends(get_wax_ledger),
) -> DailyClaimResponse:
    try:
        result = await ledger.claim_daily(db, user_id)
    except WaxfeedError as exc:
        raise http_error(exc)
    return DailyClaimResponse(**asdict(result))


@router.post(
    "/{user_id}/spend",
    response_model=SpendResponse,
    summary="Spend Wax on a named action",
)
async def spend(
    user_id: uuid.UUID,
    payload: SpendRequest,
    db: AsyncSession = Depends(get_db),
    ledger: WaxLedger = Depends(get_wax_ledger),
) -> SpendResponse:
    log = logger.bind(user_id=str(user_id), action=payload.action)

    if payload.action not in SPEND_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown action {payload.action!r}. "
            f"Expected one of: {', '.join(sorted(SPEND_ACTIONS))}",
        )

    try:
        result = await ledger.spend_action(db, user_id, payload.action, payload.target_id)
    except WaxfeedError as exc:
        raise http_error(exc)

    if not result.success:
        if result.error == "User not found":
            raise http_error(UserNotFoundError(user_id))
        log.info("spend_rejected", error=result.error)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)

    return SpendResponse(**asdict(result))


@router.post(
    "/{user_id}/verify",
    response_model=VerifyResponse,
    summary="Reconcile the wallet balance against the transaction log",
)
async def verify(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ledger: WaxLedger = Depends(get_wax_ledger),
) -> VerifyResponse:
    try:
        result = await ledger.verify_wallet(db, user_id)
    except WaxfeedError as exc:
        raise http_error(exc)
    return VerifyResponse(**result)
