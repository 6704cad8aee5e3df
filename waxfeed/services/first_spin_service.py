"""
WAXFEED — First Spin: early-reviewer badges for albums that later trend.

  - Every new rating takes the next review position on its album
    (atomic increment of ``albums.total_reviews``).
  - When an album reaches its trend threshold, exactly one request flips
    ``is_trending`` (compare-and-set) and awards badges to the reviewers
    at positions 1-100:  GOLD <= 10,  SILVER <= 50,  BRONZE <= 100.
  - Badges pay out through the Wax ledger in the same transaction as the
    badge row and the tastemaker counters.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from waxfeed.config import get_settings
from waxfeed.errors import AlbumNotFoundError, UserNotFoundError, WalletFrozenError
from waxfeed.models.album import Album
from waxfeed.models.first_spin import BadgeType, FirstSpinBadge
from waxfeed.models.rating import Rating
from waxfeed.models.user import User
from waxfeed.models.wax import TxType
from waxfeed.services.wax_ledger import WaxLedger

logger = structlog.get_logger("waxfeed.first_spin_service")


class FirstSpinService:
    """Review positions, trending detection and badge awards."""

    GOLD_THRESHOLD: int = 10
    SILVER_THRESHOLD: int = 50
    BRONZE_THRESHOLD: int = 100

    BADGE_REWARDS: dict[BadgeType, int] = {
        BadgeType.GOLD: 100,
        BadgeType.SILVER: 50,
        BadgeType.BRONZE: 25,
    }
    TASTEMAKER_POINTS: dict[BadgeType, int] = {
        BadgeType.GOLD: 10,
        BadgeType.SILVER: 5,
        BadgeType.BRONZE: 2,
    }

    def __init__(self, ledger: WaxLedger | None = None) -> None:
        self.ledger = ledger or WaxLedger()
        self.trend_threshold: int = get_settings().FIRST_SPIN_TREND_THRESHOLD

    @classmethod
    def badge_for_position(cls, position: int) -> BadgeType | None:
        if position < 1:
            return None
        if position <= cls.GOLD_THRESHOLD:
            return BadgeType.GOLD
        if position <= cls.SILVER_THRESHOLD:
            return BadgeType.SILVER
        if position <= cls.BRONZE_THRESHOLD:
            return BadgeType.BRONZE
        return None

    # ── Review positions ────────────────────────────────────────────

    async def assign_review_position(
        self, db: AsyncSession, album_id: uuid.UUID
    ) -> int:
        """Increment the album's review counter and return the new value.

        Runs inside the caller's transaction; the row lock taken by the
        UPDATE keeps concurrent reviewers on distinct positions.
        """
        result = await db.execute(
            update(Album)
            .where(Album.id == album_id)
            .values(total_reviews=Album.total_reviews + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AlbumNotFoundError(album_id)

        stmt = (
            select(Album.total_reviews)
            .where(Album.id == album_id)
            .execution_options(populate_existing=True)
        )
        return int((await db.execute(stmt)).scalar_one())

    # ── Trending ────────────────────────────────────────────────────

    async def check_album_trending(self, db: AsyncSession, album_id: uuid.UUID) -> bool:
        """Flip the album to trending once it reaches its threshold.

        Returns True if the album is (now) trending.  Badges are awarded
        only by the request whose conditional UPDATE changed the row.
        """
        album = await db.get(Album, album_id, populate_existing=True)
        if album is None:
            return False
        if album.is_trending:
            return True

        threshold = album.trend_threshold or self.trend_threshold
        if album.total_reviews < threshold:
            return False

        result = await db.execute(
            update(Album)
            .where(
                Album.id == album_id,
                Album.is_trending.is_(False),
                Album.total_reviews >= threshold,
            )
            .values(is_trending=True, trended_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        if result.rowcount > 0:
            logger.info(
                "album_trending",
                album_id=str(album_id),
                total_reviews=album.total_reviews,
                threshold=threshold,
            )
            await self.award_trending_badges(db, album_id)
        return True

    async def award_trending_badges(
        self, db: AsyncSession, album_id: uuid.UUID
    ) -> list[FirstSpinBadge]:
        stmt = (
            select(Rating.user_id, Rating.review_position)
            .where(
                Rating.album_id == album_id,
                Rating.review_position.is_not(None),
                Rating.review_position <= self.BRONZE_THRESHOLD,
            )
            .order_by(Rating.review_position)
        )
        early = (await db.execute(stmt)).all()

        awarded: list[FirstSpinBadge] = []
        for user_id, position in early:
            try:
                badge = await self.award_badge(db, user_id, album_id, position)
            except WalletFrozenError as exc:
                logger.warning(
                    "first_spin_badge_skipped_frozen_wallet",
                    user_id=str(user_id),
                    album_id=str(album_id),
                    reason=exc.reason,
                )
                continue
            if badge is not None:
                awarded.append(badge)

        logger.info("first_spin_badges_awarded", album_id=str(album_id), count=len(awarded))
        return awarded

    # ── Badges ──────────────────────────────────────────────────────

    async def award_badge(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        album_id: uuid.UUID,
        position: int,
    ) -> FirstSpinBadge | None:
        """Award the badge for ``position``.  No-op (returns None) past
        position 100 or when the user already holds a badge for the album."""
        badge_type = self.badge_for_position(position)
        if badge_type is None:
            return None

        existing = await db.execute(
            select(FirstSpinBadge.id).where(
                FirstSpinBadge.user_id == user_id,
                FirstSpinBadge.album_id == album_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            return None

        album = await db.get(Album, album_id)
        title = album.title if album else "Album"
        reward = self.BADGE_REWARDS[badge_type]
        counter = getattr(User, f"{badge_type.value.lower()}_spin_count")

        badge = FirstSpinBadge(
            user_id=user_id,
            album_id=album_id,
            badge_type=badge_type.value,
            position=position,
            wax_awarded=reward,
        )
        try:
            db.add(badge)
            await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    {
                        User.tastemaker_score: User.tastemaker_score
                        + self.TASTEMAKER_POINTS[badge_type],
                        counter: counter + 1,
                    }
                )
                .execution_options(synchronize_session=False)
            )
            await self.ledger.grant(
                db,
                user_id,
                reward,
                TxType.FIRST_SPIN_BADGE,
                f"{badge_type.value.capitalize()} Spin: {title} (#{position})",
                {"album_id": str(album_id), "position": position, "badge_type": badge_type.value},
                commit=False,
            )
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.info(
                "first_spin_badge_duplicate", user_id=str(user_id), album_id=str(album_id)
            )
            return None
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "first_spin_badge_awarded",
            user_id=str(user_id),
            album_id=str(album_id),
            badge_type=badge_type.value,
            position=position,
            wax=reward,
        )
        return badge

    async def first_spin_stats(self, db: AsyncSession, user_id: uuid.UUID) -> dict:
        user = await db.get(User, user_id, populate_existing=True)
        if user is None:
            raise UserNotFoundError(user_id)
        return {
            "tastemaker_score": user.tastemaker_score,
            "gold_spin_count": user.gold_spin_count,
            "silver_spin_count": user.silver_spin_count,
            "bronze_spin_count": user.bronze_spin_count,
            "total_badges": user.gold_spin_count
            + user.silver_spin_count
            + user.bronze_spin_count,
        }

    async def list_badges(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> list[FirstSpinBadge]:
        stmt = (
            select(FirstSpinBadge)
            .where(FirstSpinBadge.user_id == user_id)
            .order_by(FirstSpinBadge.created_at.desc())
        )
        return list((await db.execute(stmt)).scalars().all())
