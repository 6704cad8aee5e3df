"""
WAXFEED — Wax points ledger.

Every balance change is one unit of work:

  1. Lock the wallet row           SELECT ... FOR UPDATE
  2. Apply tier rules              multiplier, weekly cap, frozen check
  3. Update the cached balance and append a WaxTransaction
  4. Commit (or roll back everything on failure)

Invariant: ``wallet.balance == sum(transaction.amount)`` for every user at
every commit.  Nothing outside this module writes ``WaxWallet.balance``.

Tier table:
  FREE      cap 100/week  x1.0  award costs 5 / - / -
  WAX_PLUS  no cap        x1.5  award costs 3 / 20 / -
  WAX_PRO   no cap        x2.0  award costs 2 / 15 / 50
"""

from __future__ import annotations

import math
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import AsyncIterator, Callable
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from waxfeed.config import get_settings
from waxfeed.errors import LedgerIntegrityError, UserNotFoundError, WalletFrozenError
from waxfeed.models.rating import Rating
from waxfeed.models.taste import TasteProfile
from waxfeed.models.user import SubscriptionTier, User
from waxfeed.models.wax import TxType, WaxTransaction, WaxWallet

logger = structlog.get_logger("waxfeed.wax_ledger")


# ──────────────────────────────────────────────────────────────────────────────
# Pricing tables
# ──────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TierConfig:
    weekly_earn_cap: int | None
    earn_multiplier: float
    standard_wax_cost: int | None
    premium_wax_cost: int | None
    gold_wax_cost: int | None


TIER_CONFIGS: dict[SubscriptionTier, TierConfig] = {
    SubscriptionTier.FREE: TierConfig(100, 1.0, 5, None, None),
    SubscriptionTier.WAX_PLUS: TierConfig(None, 1.5, 3, 20, None),
    SubscriptionTier.WAX_PRO: TierConfig(None, 2.0, 2, 15, 50),
}

WAX_TYPES: tuple[str, ...] = ("standard", "premium", "gold")

DAILY_LOGIN = 5
STREAK_BONUS_PER_DAY = 2
STREAK_BONUS_MAX = 20
FIRST_REVIEW_OF_DAY = 10
RECEIVED_WAX = {"standard": 1, "premium": 3, "gold": 10}
TRENDING_REVIEW = 50
REFERRAL_SIGNUP = 100

WEEKLY_WINDOW = timedelta(days=7)


@dataclass(frozen=True)
class SpendAction:
    cost: int
    tx_type: TxType
    description: str
    free_for_subscribers: bool = False


SPEND_ACTIONS: dict[str, SpendAction] = {
    "boost_review_24h": SpendAction(50, TxType.BOOST_REVIEW, "Boosted review for 24 hours"),
    "boost_review_7d": SpendAction(250, TxType.BOOST_REVIEW, "Boosted review for 7 days"),
    "pin_review": SpendAction(25, TxType.PIN_REVIEW, "Pinned review to profile"),
    "username_change": SpendAction(
        500, TxType.USERNAME_CHANGE, "Username change", free_for_subscribers=True
    ),
    "tasteid_analysis": SpendAction(50, TxType.TASTEID_ANALYSIS, "Deep TasteID analysis"),
    "unlock_stats": SpendAction(100, TxType.UNLOCK_STATS, "Unlocked advanced stats"),
}


# ──────────────────────────────────────────────────────────────────────────────
# Results
# ──────────────────────────────────────────────────────────────────────────────


@dataclass
class EarnResult:
    earned: int
    capped: bool
    new_balance: int
    message: str | None = None


@dataclass
class SpendResult:
    success: bool
    spent: int
    new_balance: int
    error: str | None = None


@dataclass
class DailyClaimResult:
    earned: int
    capped: bool
    new_balance: int
    message: str | None
    already_claimed: bool
    streak: int


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def award_cost(tier: SubscriptionTier | str, wax_type: str) -> int | None:
    """Cost for a user on ``tier`` to award ``wax_type`` Wax, or None when
    the tier cannot award that type."""
    config = TIER_CONFIGS[SubscriptionTier(tier)]
    return {
        "standard": config.standard_wax_cost,
        "premium": config.premium_wax_cost,
        "gold": config.gold_wax_cost,
    }.get(wax_type)


def can_award(tier: SubscriptionTier | str, wax_type: str) -> bool:
    return award_cost(tier, wax_type) is not None


class WaxLedger:
    """Atomic earn / spend / claim operations over a user's Wax wallet."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self.clock: Callable[[], datetime] = clock or (lambda: datetime.now(timezone.utc))
        self.tz = ZoneInfo(get_settings().LEDGER_TIMEZONE)

    # ── Unit of work ────────────────────────────────────────────────

    @asynccontextmanager
    async def _atomic(self, db: AsyncSession) -> AsyncIterator[None]:
        try:
            yield
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    async def _lock_wallet(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> tuple[WaxWallet, SubscriptionTier] | None:
        """Lock the user's wallet row for the rest of the transaction."""
        stmt = (
            select(WaxWallet, User.subscription_tier)
            .join(User, User.id == WaxWallet.user_id)
            .where(WaxWallet.user_id == user_id)
            .with_for_update(of=WaxWallet)
            .execution_options(populate_existing=True)
        )
        row = (await db.execute(stmt)).one_or_none()
        if row is None:
            return None
        wallet, tier = row
        return wallet, SubscriptionTier(tier)

    @staticmethod
    def _ensure_writable(wallet: WaxWallet) -> None:
        if wallet.is_frozen:
            raise WalletFrozenError(wallet.user_id, wallet.frozen_reason)

    def _today(self) -> date:
        return _as_utc(self.clock()).astimezone(self.tz).date()

    # ── Low-level mutations (caller holds the lock) ─────────────────

    @staticmethod
    def _append(
        db: AsyncSession,
        wallet: WaxWallet,
        amount: int,
        tx_type: TxType,
        description: str,
        metadata: dict | None,
    ) -> None:
        wallet.balance = wallet.balance + amount
        db.add(
            WaxTransaction(
                user_id=wallet.user_id,
                amount=amount,
                type=tx_type.value,
                description=description,
                metadata_=metadata,
            )
        )

    def _roll_weekly_window(self, wallet: WaxWallet) -> None:
        now = _as_utc(self.clock())
        if now - _as_utc(wallet.weekly_reset_at) >= WEEKLY_WINDOW:
            wallet.weekly_earned = 0
            wallet.weekly_reset_at = now

    def _apply_earn(
        self,
        db: AsyncSession,
        wallet: WaxWallet,
        tier: SubscriptionTier,
        base_amount: int,
        tx_type: TxType,
        description: str,
        metadata: dict | None,
    ) -> EarnResult:
        config = TIER_CONFIGS[tier]
        earned = math.floor(base_amount * config.earn_multiplier)
        self._roll_weekly_window(wallet)

        capped = False
        if config.weekly_earn_cap is not None:
            remaining = config.weekly_earn_cap - wallet.weekly_earned
            if remaining <= 0:
                return EarnResult(
                    earned=0,
                    capped=True,
                    new_balance=wallet.balance,
                    message="Weekly Wax cap reached. Upgrade to remove limits!",
                )
            if earned > remaining:
                earned = remaining
                capped = True

        if earned <= 0:
            return EarnResult(earned=0, capped=capped, new_balance=wallet.balance)

        self._append(db, wallet, earned, tx_type, description, metadata)
        wallet.lifetime_earned = wallet.lifetime_earned + earned
        wallet.weekly_earned = wallet.weekly_earned + earned

        return EarnResult(
            earned=earned,
            capped=capped,
            new_balance=wallet.balance,
            message=(
                f"Earned {earned} Wax (capped). Upgrade for unlimited earning!"
                if capped
                else None
            ),
        )

    # ── Public API: credits ─────────────────────────────────────────

    async def earn(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        amount: int,
        type: TxType,
        description: str,
        metadata: dict | None = None,
    ) -> EarnResult:
        """Credit ``amount`` scaled by the tier multiplier, subject to the
        weekly cap.

        Raises
        ------
        UserNotFoundError
            If the user has no wallet.
        WalletFrozenError
            If the wallet is frozen.
        """
        log = logger.bind(user_id=str(user_id), type=type.value)

        async with self._atomic(db):
            locked = await self._lock_wallet(db, user_id)
            if locked is None:
                raise UserNotFoundError(user_id)
            wallet, tier = locked
            self._ensure_writable(wallet)
            result = self._apply_earn(db, wallet, tier, amount, type, description, metadata)

        log.info(
            "wax_earned",
            earned=result.earned,
            capped=result.capped,
            new_balance=result.new_balance,
        )
        return result

    async def grant(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        amount: int,
        type: TxType,
        description: str,
        metadata: dict | None = None,
        commit: bool = True,
    ) -> EarnResult:
        """System reward: no multiplier, no weekly cap, not counted towards
        the weekly total.

        With ``commit=False`` the caller owns the transaction, so the credit
        can commit atomically with the caller's own writes.
        """
        if amount <= 0:
            raise ValueError("Grant amount must be positive")

        async def _do() -> EarnResult:
            locked = await self._lock_wallet(db, user_id)
            if locked is None:
                raise UserNotFoundError(user_id)
            wallet, _ = locked
            self._ensure_writable(wallet)
            self._append(db, wallet, amount, type, description, metadata)
            wallet.lifetime_earned = wallet.lifetime_earned + amount
            return EarnResult(earned=amount, capped=False, new_balance=wallet.balance)

        if commit:
            async with self._atomic(db):
                result = await _do()
        else:
            result = await _do()
            await db.flush()

        logger.info(
            "wax_granted",
            user_id=str(user_id),
            type=type.value,
            amount=amount,
            new_balance=result.new_balance,
        )
        return result

    async def claim_daily(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> DailyClaimResult:
        """Daily login bonus, at most once per calendar day.

        The streak continues when the previous claim was yesterday and
        otherwise restarts at 1.  Credit is ``5 + min((streak - 1) * 2, 20)``
        and goes through the normal earn rules.  The claim marker commits in
        the same transaction as the credit.
        """
        log = logger.bind(user_id=str(user_id))
        today = self._today()

        async with self._atomic(db):
            locked = await self._lock_wallet(db, user_id)
            if locked is None:
                raise UserNotFoundError(user_id)
            wallet, tier = locked

            if wallet.last_daily_claim_on == today:
                log.info("daily_claim_already_claimed")
                return DailyClaimResult(
                    earned=0,
                    capped=False,
                    new_balance=wallet.balance,
                    message="Already claimed today!",
                    already_claimed=True,
                    streak=wallet.current_streak,
                )

            self._ensure_writable(wallet)

            if wallet.last_daily_claim_on == today - timedelta(days=1):
                streak = wallet.current_streak + 1
            else:
                streak = 1
            bonus = min((streak - 1) * STREAK_BONUS_PER_DAY, STREAK_BONUS_MAX)

            wallet.current_streak = streak
            wallet.last_daily_claim_on = today

            description = "Daily login bonus"
            if bonus > 0:
                description += f" (+{bonus} streak bonus)"
            earned = self._apply_earn(
                db,
                wallet,
                tier,
                DAILY_LOGIN + bonus,
                TxType.DAILY_CLAIM,
                description,
                {"streak": streak, "streak_bonus": bonus, "day": today.isoformat()},
            )

        log.info(
            "daily_claim_complete",
            earned=earned.earned,
            streak=streak,
            new_balance=earned.new_balance,
        )
        return DailyClaimResult(
            earned=earned.earned,
            capped=earned.capped,
            new_balance=earned.new_balance,
            message=earned.message,
            already_claimed=False,
            streak=streak,
        )

    async def claim_first_review_of_day(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> EarnResult | None:
        """First-review-of-the-day bonus.  Returns None if already claimed."""
        today = self._today()

        async with self._atomic(db):
            locked = await self._lock_wallet(db, user_id)
            if locked is None:
                raise UserNotFoundError(user_id)
            wallet, tier = locked
            if wallet.last_review_reward_on == today:
                return None
            self._ensure_writable(wallet)

            wallet.last_review_reward_on = today
            result = self._apply_earn(
                db,
                wallet,
                tier,
                FIRST_REVIEW_OF_DAY,
                TxType.REVIEW_REWARD,
                "First review of the day bonus",
                None,
            )

        logger.info("review_reward_claimed", user_id=str(user_id), earned=result.earned)
        return result

    async def grant_wax_received(
        self, db: AsyncSession, recipient_id: uuid.UUID, wax_type: str
    ) -> EarnResult:
        if wax_type not in RECEIVED_WAX:
            raise ValueError(f"Unknown wax type {wax_type!r}")
        return await self.earn(
            db,
            recipient_id,
            RECEIVED_WAX[wax_type],
            TxType.WAX_RECEIVED,
            f"Received {wax_type} Wax on your review",
            {"wax_type": wax_type},
        )

    async def grant_trending_bonus(
        self, db: AsyncSession, user_id: uuid.UUID, review_id: uuid.UUID
    ) -> EarnResult:
        return await self.earn(
            db,
            user_id,
            TRENDING_REVIEW,
            TxType.TRENDING_BONUS,
            "Your review is trending!",
            {"review_id": str(review_id)},
        )

    async def grant_referral_bonus(
        self, db: AsyncSession, user_id: uuid.UUID, referred_user_id: uuid.UUID
    ) -> EarnResult:
        return await self.earn(
            db,
            user_id,
            REFERRAL_SIGNUP,
            TxType.REFERRAL_BONUS,
            "Referral bonus - new user signed up!",
            {"referred_user_id": str(referred_user_id)},
        )

    # ── Public API: debits ──────────────────────────────────────────

    async def spend(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        amount: int,
        type: TxType,
        description: str,
        metadata: dict | None = None,
    ) -> SpendResult:
        """Debit ``amount`` if the balance covers it.  An insufficient
        balance is a normal result with no writes."""
        if amount <= 0:
            raise ValueError("Spend amount must be positive")
        log = logger.bind(user_id=str(user_id), type=type.value, amount=amount)

        async with self._atomic(db):
            locked = await self._lock_wallet(db, user_id)
            if locked is None:
                log.warning("wax_spend_unknown_user")
                return SpendResult(
                    success=False, spent=0, new_balance=0, error="User not found"
                )
            wallet, _ = locked
            self._ensure_writable(wallet)

            if wallet.balance < amount:
                log.info("wax_spend_insufficient", balance=wallet.balance)
                return SpendResult(
                    success=False,
                    spent=0,
                    new_balance=wallet.balance,
                    error=f"Insufficient Wax. Need {amount}, have {wallet.balance}",
                )

            self._append(db, wallet, -amount, type, description, metadata)
            wallet.lifetime_spent = wallet.lifetime_spent + amount
            new_balance = wallet.balance

        log.info("wax_spent", new_balance=new_balance)
        return SpendResult(success=True, spent=amount, new_balance=new_balance)

    async def spend_action(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        action: str,
        target_id: str | None = None,
    ) -> SpendResult:
        """Spend on a named action from ``SPEND_ACTIONS``."""
        spec = SPEND_ACTIONS.get(action)
        if spec is None:
            raise ValueError(f"Unknown spend action {action!r}")

        user = await db.get(User, user_id)
        if user is None:
            return SpendResult(success=False, spent=0, new_balance=0, error="User not found")

        if spec.free_for_subscribers and user.tier is not SubscriptionTier.FREE:
            wallet = await db.get(WaxWallet, user_id)
            logger.info("wax_spend_action_free", user_id=str(user_id), action=action)
            return SpendResult(
                success=True, spent=0, new_balance=wallet.balance if wallet else 0
            )

        metadata = {"action": action}
        if target_id is not None:
            metadata["target_id"] = str(target_id)
        return await self.spend(
            db, user_id, spec.cost, spec.tx_type, spec.description, metadata
        )

    async def award_wax(
        self,
        db: AsyncSession,
        giver_id: uuid.UUID,
        recipient_id: uuid.UUID,
        wax_type: str,
        review_id: uuid.UUID | None = None,
    ) -> SpendResult:
        """Giver pays their tier's award cost; the recipient earns the
        received-wax rate.  Both wallets change in one transaction."""
        if giver_id == recipient_id:
            raise ValueError("Cannot award Wax to yourself")
        if wax_type not in WAX_TYPES:
            raise ValueError(f"Unknown wax type {wax_type!r}")
        log = logger.bind(giver_id=str(giver_id), recipient_id=str(recipient_id))

        async with self._atomic(db):
            # Fixed lock order so two opposite awards cannot deadlock.
            locked: dict[uuid.UUID, tuple[WaxWallet, SubscriptionTier]] = {}
            for uid in sorted((giver_id, recipient_id), key=str):
                row = await self._lock_wallet(db, uid)
                if row is None:
                    raise UserNotFoundError(uid)
                locked[uid] = row

            giver, giver_tier = locked[giver_id]
            recipient, recipient_tier = locked[recipient_id]
            self._ensure_writable(giver)
            self._ensure_writable(recipient)

            cost = award_cost(giver_tier, wax_type)
            if cost is None:
                return SpendResult(
                    success=False,
                    spent=0,
                    new_balance=giver.balance,
                    error=f"{wax_type.capitalize()} Wax is not available on your tier",
                )
            if giver.balance < cost:
                return SpendResult(
                    success=False,
                    spent=0,
                    new_balance=giver.balance,
                    error=f"Insufficient Wax. Need {cost}, have {giver.balance}",
                )

            metadata = {"wax_type": wax_type}
            if review_id is not None:
                metadata["review_id"] = str(review_id)
            self._append(
                db,
                giver,
                -cost,
                TxType.AWARD_WAX,
                f"Awarded {wax_type} Wax",
                {**metadata, "recipient_id": str(recipient_id)},
            )
            giver.lifetime_spent = giver.lifetime_spent + cost
            self._apply_earn(
                db,
                recipient,
                recipient_tier,
                RECEIVED_WAX[wax_type],
                TxType.WAX_RECEIVED,
                f"Received {wax_type} Wax on your review",
                metadata,
            )
            new_balance = giver.balance

        log.info("wax_awarded", wax_type=wax_type, cost=cost)
        return SpendResult(success=True, spent=cost, new_balance=new_balance)

    # ── Public API: reads & reconciliation ──────────────────────────

    async def ledger_sum(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        stmt = select(func.coalesce(func.sum(WaxTransaction.amount), 0)).where(
            WaxTransaction.user_id == user_id
        )
        return int((await db.execute(stmt)).scalar_one())

    async def verify_wallet(self, db: AsyncSession, user_id: uuid.UUID) -> dict:
        """Recompute the balance from the transaction log.

        Returns
        -------
        dict with keys: user_id, balance, ledger_sum, consistent, is_frozen

        Raises
        ------
        LedgerIntegrityError
            When the balance disagrees with the log.  The wallet is frozen
            (and the freeze committed) before raising.
        """
        log = logger.bind(user_id=str(user_id))
        mismatch = False

        async with self._atomic(db):
            locked = await self._lock_wallet(db, user_id)
            if locked is None:
                raise UserNotFoundError(user_id)
            wallet, _ = locked
            total = await self.ledger_sum(db, user_id)
            balance = wallet.balance

            if total != balance:
                mismatch = True
                wallet.is_frozen = True
                wallet.frozen_reason = (
                    f"Balance {balance} does not match transaction sum {total}"
                )
            is_frozen = wallet.is_frozen

        if mismatch:
            log.error("ledger_integrity_violation", balance=balance, ledger_sum=total)
            raise LedgerIntegrityError(user_id, balance, total)

        log.info("ledger_verified", balance=balance)
        return {
            "user_id": user_id,
            "balance": balance,
            "ledger_sum": total,
            "consistent": True,
            "is_frozen": is_frozen,
        }

    async def recent_transactions(
        self, db: AsyncSession, user_id: uuid.UUID, limit: int = 20
    ) -> list[WaxTransaction]:
        stmt = (
            select(WaxTransaction)
            .where(WaxTransaction.user_id == user_id)
            .order_by(WaxTransaction.created_at.desc())
            .limit(limit)
        )
        return list((await db.execute(stmt)).scalars().all())

    async def wallet_stats(self, db: AsyncSession, user_id: uuid.UUID) -> dict:
        user = await db.get(User, user_id)
        wallet = await db.get(WaxWallet, user_id, populate_existing=True)
        if user is None or wallet is None:
            raise UserNotFoundError(user_id)

        config = TIER_CONFIGS[user.tier]
        review_count = (
            await db.execute(
                select(func.count()).select_from(Rating).where(Rating.user_id == user_id)
            )
        ).scalar_one()
        has_taste_id = (
            await db.execute(
                select(TasteProfile.id).where(TasteProfile.user_id == user_id)
            )
        ).scalar_one_or_none() is not None

        elapsed = _as_utc(self.clock()) - _as_utc(wallet.weekly_reset_at)
        days_until_reset = max(0, 7 - elapsed.days)
        weekly_earned = 0 if elapsed >= WEEKLY_WINDOW else wallet.weekly_earned

        return {
            "balance": wallet.balance,
            "lifetime_earned": wallet.lifetime_earned,
            "lifetime_spent": wallet.lifetime_spent,
            "weekly_earned": weekly_earned,
            "weekly_cap": config.weekly_earn_cap,
            "weekly_remaining": (
                max(0, config.weekly_earn_cap - weekly_earned)
                if config.weekly_earn_cap is not None
                else None
            ),
            "days_until_reset": days_until_reset,
            "current_streak": wallet.current_streak,
            "can_claim_daily": wallet.last_daily_claim_on != self._today(),
            "tier": user.tier.value,
            "earn_multiplier": config.earn_multiplier,
            "is_frozen": wallet.is_frozen,
            "tastemaker_score": user.tastemaker_score,
            "gold_spin_count": user.gold_spin_count,
            "silver_spin_count": user.silver_spin_count,
            "bronze_spin_count": user.bronze_spin_count,
            "has_taste_id": has_taste_id,
            "review_count": int(review_count),
        }
